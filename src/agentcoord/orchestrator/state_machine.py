"""Assignment state machine for the coordinator.

A dispatch attempt moves through these states::

    selected -> locking -> marking_in_progress -> dispatched -> succeeded
                   |               |                  |-------> failed
                   v               v                  '-------> reclaimed
               abandoned       abandoned

``abandoned`` covers attempts that stop before an execution was started
(lock busy, tracker update failed, no session). ``reclaimed`` is stale
cleanup, which is bookkeeping only and says nothing about the real outcome.
"""

from __future__ import annotations

from enum import Enum

import structlog

logger = structlog.get_logger(__name__)


class DispatchState(str, Enum):
    """Lifecycle states of one assignment attempt."""

    SELECTED = "selected"
    LOCKING = "locking"
    MARKING_IN_PROGRESS = "marking_in_progress"
    DISPATCHED = "dispatched"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABANDONED = "abandoned"
    RECLAIMED = "reclaimed"


class InvalidTransitionError(Exception):
    """Raised when an invalid state transition is attempted.

    Attributes:
        current: The current state.
        target: The attempted target state.
        work_item_id: The work item whose attempt failed to transition.
    """

    def __init__(
        self,
        current: DispatchState,
        target: DispatchState,
        work_item_id: str | None = None,
    ):
        self.current = current
        self.target = target
        self.work_item_id = work_item_id
        msg = f"Invalid transition from {current.value} to {target.value}"
        if work_item_id:
            msg += f" for work item {work_item_id}"
        super().__init__(msg)


VALID_TRANSITIONS: dict[DispatchState, set[DispatchState]] = {
    DispatchState.SELECTED: {DispatchState.LOCKING},
    DispatchState.LOCKING: {DispatchState.MARKING_IN_PROGRESS, DispatchState.ABANDONED},
    DispatchState.MARKING_IN_PROGRESS: {DispatchState.DISPATCHED, DispatchState.ABANDONED},
    DispatchState.DISPATCHED: {
        DispatchState.SUCCEEDED,
        DispatchState.FAILED,
        DispatchState.RECLAIMED,
    },
    DispatchState.SUCCEEDED: set(),  # Terminal
    DispatchState.FAILED: set(),  # Terminal
    DispatchState.ABANDONED: set(),  # Terminal
    DispatchState.RECLAIMED: set(),  # Terminal
}

TERMINAL_STATES = frozenset(state for state, targets in VALID_TRANSITIONS.items() if not targets)


def validate_transition(current: DispatchState, target: DispatchState) -> bool:
    """Whether ``current -> target`` is allowed by ``VALID_TRANSITIONS``."""
    return target in VALID_TRANSITIONS.get(current, set())


class AssignmentLifecycle:
    """Tracks the state of a single dispatch attempt.

    Attributes:
        work_item_id: Work item the attempt is for.
        agent_type: Profile chosen for it.
        state: Current state.
        history: Every state visited, oldest first.
    """

    def __init__(self, work_item_id: str, agent_type: str) -> None:
        self.work_item_id = work_item_id
        self.agent_type = agent_type
        self.state = DispatchState.SELECTED
        self.history: list[DispatchState] = [DispatchState.SELECTED]
        self._logger = logger.bind(component="AssignmentLifecycle")

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, target: DispatchState, **log_fields: object) -> None:
        """Move to ``target``.

        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        if not validate_transition(self.state, target):
            raise InvalidTransitionError(self.state, target, self.work_item_id)

        previous = self.state
        self.state = target
        self.history.append(target)

        self._logger.debug(
            "assignment_transition",
            work_item_id=self.work_item_id,
            agent_type=self.agent_type,
            from_state=previous.value,
            to_state=target.value,
            **log_fields,
        )
