"""Registry of running assignments.

An ``Assignment`` links a running execution session to the work item it is
working and the agent profile running it. Assignments live only in memory;
after a restart the registry is empty and nothing in it is persisted.
"""

from __future__ import annotations

import asyncio
import threading
from collections import Counter
from dataclasses import dataclass, field

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class Assignment:
    """A running execution of a work item.

    Attributes:
        session_id: Execution session identifier, also the lock owner token.
        agent_type: Profile type running the work.
        work_item_id: Work item being worked.
        start_time: Monotonic timestamp taken when the assignment was tracked.
        parent_session_id: Session that spawned this one, for helpers.
        handle: Task running the execution; completes when the backend
            reports back.
    """

    session_id: str
    agent_type: str
    work_item_id: str
    start_time: float
    parent_session_id: str | None = None
    handle: asyncio.Task[None] | None = field(default=None, repr=False, compare=False)

    @property
    def is_helper(self) -> bool:
        return self.parent_session_id is not None

    def age(self, now: float) -> float:
        return now - self.start_time


class AssignmentRegistry:
    """Thread-safe map of session id to ``Assignment``."""

    def __init__(self) -> None:
        self._assignments: dict[str, Assignment] = {}
        self._mutex = threading.Lock()
        self._logger = logger.bind(component="AssignmentRegistry")

    def track(self, assignment: Assignment) -> None:
        with self._mutex:
            self._assignments[assignment.session_id] = assignment

        self._logger.debug(
            "assignment_tracked",
            session_id=assignment.session_id,
            work_item_id=assignment.work_item_id,
            agent_type=assignment.agent_type,
        )

    def untrack(self, session_id: str) -> Assignment | None:
        """Remove an assignment, returning it if it was tracked."""
        with self._mutex:
            assignment = self._assignments.pop(session_id, None)

        if assignment is not None:
            self._logger.debug(
                "assignment_untracked",
                session_id=session_id,
                work_item_id=assignment.work_item_id,
            )
        return assignment

    def get(self, session_id: str) -> Assignment | None:
        with self._mutex:
            return self._assignments.get(session_id)

    def is_tracked(self, assignment: Assignment) -> bool:
        """Whether this exact assignment object is still registered."""
        with self._mutex:
            return self._assignments.get(assignment.session_id) is assignment

    def count_active(self, agent_type: str | None = None) -> int:
        """Count running assignments, optionally of a single profile type."""
        with self._mutex:
            if agent_type is None:
                return len(self._assignments)
            return sum(1 for a in self._assignments.values() if a.agent_type == agent_type)

    def active_counts(self) -> dict[str, int]:
        """Running assignments per profile type."""
        with self._mutex:
            return dict(Counter(a.agent_type for a in self._assignments.values()))

    def all(self) -> list[Assignment]:
        with self._mutex:
            return list(self._assignments.values())

    def find_stale(self, now: float, max_age: float) -> list[Assignment]:
        """Assignments whose age strictly exceeds ``max_age``."""
        with self._mutex:
            return [a for a in self._assignments.values() if now - a.start_time > max_age]

    def find_by_work_item(self, item_id: str) -> list[Assignment]:
        with self._mutex:
            return [a for a in self._assignments.values() if a.work_item_id == item_id]

    def clear(self) -> None:
        with self._mutex:
            self._assignments.clear()

    def __len__(self) -> int:
        with self._mutex:
            return len(self._assignments)
