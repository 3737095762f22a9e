"""Assignment dispatcher.

Drives a single work item from "an agent was chosen" to "an execution is
running", and handles the execution's completion once the backend reports
back. Both the coordination cycle and helper spawning go through
``AssignmentDispatcher.dispatch`` so every assignment takes the same
lock -> mark in progress -> start session path.

Execution is fire-and-forget: ``dispatch`` returns as soon as the
execution task has been created. Outcomes are reported through events,
the profile registry's statistics, and a queue of ``CompletionRecord``.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import structlog

from agentcoord.agents.profiles import ProfileRegistry
from agentcoord.execution.base import ExecutionBackend, ExecutionResult, SessionFactory
from agentcoord.logging import bind_assignment_context
from agentcoord.orchestrator.events import (
    AgentAssigned,
    AgentCleaned,
    AgentCompleted,
    AgentFailed,
    AgentStarted,
    EventEmitter,
    HelperCompleted,
    HelperFailed,
    HelperStarted,
)
from agentcoord.orchestrator.locks import IssueLockTable
from agentcoord.orchestrator.prompts import build_agent_prompt
from agentcoord.orchestrator.registry import Assignment, AssignmentRegistry
from agentcoord.orchestrator.state_machine import AssignmentLifecycle, DispatchState
from agentcoord.tracker.base import Tracker, WorkItem, WorkItemStatus

logger = structlog.get_logger(__name__)

DEFAULT_COMPLETION_QUEUE_SIZE = 1000


@dataclass(frozen=True)
class CompletionRecord:
    """Outcome of a finished execution.

    Attributes:
        session_id: Session that ran the work.
        work_item_id: Work item it ran.
        agent_type: Profile that ran it.
        outcome: ``DispatchState.SUCCEEDED`` or ``DispatchState.FAILED``.
        duration_seconds: Time between dispatch and completion.
        error: Failure message, if any.
        parent_session_id: Spawning session, for helpers.
    """

    session_id: str
    work_item_id: str
    agent_type: str
    outcome: DispatchState
    duration_seconds: float
    error: str | None = None
    parent_session_id: str | None = None

    @property
    def success(self) -> bool:
        return self.outcome is DispatchState.SUCCEEDED


class AssignmentDispatcher:
    """Starts executions for chosen work items and settles their outcome.

    Attributes:
        completions: Queue receiving a ``CompletionRecord`` per finished
            execution. It is bounded; when full, the oldest record is
            dropped to make room.
    """

    def __init__(
        self,
        tracker: Tracker,
        session_factory: SessionFactory,
        backend: ExecutionBackend,
        profiles: ProfileRegistry,
        emitter: EventEmitter,
        locks: IssueLockTable,
        registry: AssignmentRegistry,
        working_dir: Path | None = None,
        clock: Callable[[], float] = time.monotonic,
        completion_queue_size: int = DEFAULT_COMPLETION_QUEUE_SIZE,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            tracker: Work item tracker to update statuses in.
            session_factory: Creates execution sessions.
            backend: Runs prompts.
            profiles: Receives execution statistics.
            emitter: Outbound event channel.
            locks: Shared issue lock table.
            registry: Shared assignment registry.
            working_dir: Directory sessions should run in.
            clock: Monotonic time source used for assignment ages.
            completion_queue_size: Records kept in ``completions`` before
                the oldest is discarded.
        """
        self._tracker = tracker
        self._session_factory = session_factory
        self._backend = backend
        self._profiles = profiles
        self._emitter = emitter
        self._locks = locks
        self._registry = registry
        self._working_dir = working_dir
        self._clock = clock

        self.completions: asyncio.Queue[CompletionRecord] = asyncio.Queue(
            maxsize=completion_queue_size
        )
        self._lifecycles: dict[str, AssignmentLifecycle] = {}
        self._logger = logger.bind(component="AssignmentDispatcher")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(
        self,
        item: WorkItem,
        agent_type: str,
        *,
        parent: Assignment | None = None,
        score: float | None = None,
        scope: str | None = None,
    ) -> Assignment | None:
        """Assign a work item to an agent profile and start its execution.

        Args:
            item: Work item to assign.
            agent_type: Profile chosen to run it.
            parent: Spawning assignment when dispatching a helper.
            score: Selection score, carried on the assigned event.
            scope: Project scope of the cycle, carried on events.

        Returns:
            The tracked Assignment, or None if the attempt was abandoned.
        """
        lifecycle = AssignmentLifecycle(item.id, agent_type)
        lifecycle.advance(DispatchState.LOCKING)

        if not self._locks.try_lock(item.id):
            lifecycle.advance(DispatchState.ABANDONED, reason="already_locked")
            self._logger.debug("dispatch_skipped_locked", work_item_id=item.id)
            return None

        lifecycle.advance(DispatchState.MARKING_IN_PROGRESS)
        try:
            await self._tracker.update_status(item.id, WorkItemStatus.IN_PROGRESS)
        except asyncio.CancelledError:
            await self._abandon_cancelled(item.id, lifecycle)
            raise
        except Exception as e:
            self._locks.release(item.id)
            lifecycle.advance(DispatchState.ABANDONED, reason="status_update_failed")
            self._logger.warning(
                "dispatch_status_update_failed",
                work_item_id=item.id,
                agent_type=agent_type,
                error=str(e),
            )
            return None

        label = f"{agent_type}: {item.title}"
        try:
            session = await self._session_factory.create_session(label, self._working_dir)
        except asyncio.CancelledError:
            await self._abandon_cancelled(item.id, lifecycle)
            raise
        except Exception as e:
            self._logger.error(
                "dispatch_session_create_failed",
                work_item_id=item.id,
                agent_type=agent_type,
                error=str(e),
            )
            try:
                await self._revert_to_open(item.id)
            finally:
                self._locks.release(item.id)
                lifecycle.advance(DispatchState.ABANDONED, reason="session_create_failed")
            return None

        prompt = build_agent_prompt(item)
        assignment = Assignment(
            session_id=session.id,
            agent_type=agent_type,
            work_item_id=item.id,
            start_time=self._clock(),
            parent_session_id=parent.session_id if parent is not None else None,
        )
        self._registry.track(assignment)
        self._locks.set_owner(item.id, session.id)
        lifecycle.advance(DispatchState.DISPATCHED, session_id=session.id)
        self._lifecycles[session.id] = lifecycle

        if assignment.is_helper:
            self._emitter.emit(
                HelperStarted(
                    work_item_id=item.id,
                    session_id=session.id,
                    parent_session_id=assignment.parent_session_id,
                    agent_type=agent_type,
                )
            )
        else:
            self._emitter.emit(
                AgentStarted(
                    work_item_id=item.id,
                    session_id=session.id,
                    agent_type=agent_type,
                    scope=scope,
                )
            )

        assignment.handle = asyncio.create_task(
            self._run_execution(assignment, prompt),
            name=f"assignment-{item.id}",
        )

        if not assignment.is_helper:
            self._emitter.emit(
                AgentAssigned(
                    work_item_id=item.id,
                    session_id=session.id,
                    agent_type=agent_type,
                    score=score,
                    scope=scope,
                )
            )

        self._logger.info(
            "agent_assigned",
            work_item_id=item.id,
            session_id=session.id,
            agent_type=agent_type,
            score=score,
            parent_session_id=assignment.parent_session_id,
        )
        return assignment

    # ------------------------------------------------------------------
    # Reclamation
    # ------------------------------------------------------------------

    def reclaim(self, assignment: Assignment, now: float) -> bool:
        """Drop a stale assignment from the books.

        The work item status is left as it is and the execution task is not
        cancelled; if it reports back later its outcome is ignored.

        Returns:
            True if the assignment was still tracked and has been reclaimed.
        """
        if not self._registry.is_tracked(assignment):
            return False

        self._registry.untrack(assignment.session_id)
        self._locks.release(assignment.work_item_id, owner=assignment.session_id)
        lifecycle = self._lifecycles.pop(assignment.session_id, None)
        if lifecycle is not None:
            lifecycle.advance(DispatchState.RECLAIMED)

        age = assignment.age(now)
        self._emitter.emit(
            AgentCleaned(
                work_item_id=assignment.work_item_id,
                session_id=assignment.session_id,
                agent_type=assignment.agent_type,
                age_seconds=age,
            )
        )
        self._logger.warning(
            "stale_assignment_reclaimed",
            work_item_id=assignment.work_item_id,
            session_id=assignment.session_id,
            agent_type=assignment.agent_type,
            age_seconds=round(age, 1),
        )
        return True

    def discard_lifecycles(self) -> None:
        """Forget lifecycle state of all assignments (used on stop)."""
        self._lifecycles.clear()

    # ------------------------------------------------------------------
    # Execution and completion
    # ------------------------------------------------------------------

    async def _run_execution(self, assignment: Assignment, prompt: str) -> None:
        bind_assignment_context(
            assignment.work_item_id,
            assignment.session_id,
            assignment.agent_type,
        )

        try:
            result = await self._backend.execute(
                prompt,
                force_agent_type=assignment.agent_type,
                session_id=assignment.session_id,
                working_dir=self._working_dir,
            )
        except asyncio.CancelledError:
            self._abort(assignment)
            raise
        except Exception as e:
            result = ExecutionResult(success=False, error=str(e) or type(e).__name__)

        await self._complete(assignment, result)

    async def _complete(self, assignment: Assignment, result: ExecutionResult) -> None:
        if not self._registry.is_tracked(assignment):
            self._logger.info(
                "late_completion_ignored",
                work_item_id=assignment.work_item_id,
                session_id=assignment.session_id,
                success=result.success,
            )
            return

        self._registry.untrack(assignment.session_id)
        duration = assignment.age(self._clock())
        outcome = DispatchState.SUCCEEDED if result.success else DispatchState.FAILED
        status = WorkItemStatus.CLOSED if result.success else WorkItemStatus.OPEN
        error = None if result.success else (result.error or "Execution reported failure")

        try:
            await self._tracker.update_status(assignment.work_item_id, status)
        except Exception:
            self._logger.exception(
                "completion_status_update_failed",
                work_item_id=assignment.work_item_id,
                target_status=status.value,
            )
        finally:
            self._locks.release(assignment.work_item_id, owner=assignment.session_id)

        lifecycle = self._lifecycles.pop(assignment.session_id, None)
        if lifecycle is not None:
            lifecycle.advance(outcome)

        self._profiles.record_execution(assignment.agent_type, result.success, duration)
        self._emit_outcome(assignment, duration, error)
        self._queue_completion(
            CompletionRecord(
                session_id=assignment.session_id,
                work_item_id=assignment.work_item_id,
                agent_type=assignment.agent_type,
                outcome=outcome,
                duration_seconds=duration,
                error=error,
                parent_session_id=assignment.parent_session_id,
            )
        )

        if result.success:
            self._logger.info(
                "agent_completed",
                duration_seconds=round(duration, 2),
            )
        else:
            self._logger.warning("agent_failed", error=error)

    def _queue_completion(self, record: CompletionRecord) -> None:
        if self.completions.full():
            dropped = self.completions.get_nowait()
            self._logger.debug(
                "completion_record_dropped",
                work_item_id=dropped.work_item_id,
                session_id=dropped.session_id,
            )
        self.completions.put_nowait(record)

    def _emit_outcome(self, assignment: Assignment, duration: float, error: str | None) -> None:
        common = {
            "work_item_id": assignment.work_item_id,
            "session_id": assignment.session_id,
            "agent_type": assignment.agent_type,
        }
        if assignment.is_helper:
            parent = assignment.parent_session_id
            if error is None:
                event = HelperCompleted(
                    **common, parent_session_id=parent, duration_seconds=duration
                )
            else:
                event = HelperFailed(**common, parent_session_id=parent, error=error)
        elif error is None:
            event = AgentCompleted(**common, duration_seconds=duration)
        else:
            event = AgentFailed(**common, error=error)
        self._emitter.emit(event)

    def _abort(self, assignment: Assignment) -> None:
        if self._registry.is_tracked(assignment):
            self._registry.untrack(assignment.session_id)
        self._locks.release(assignment.work_item_id, owner=assignment.session_id)
        self._lifecycles.pop(assignment.session_id, None)
        self._logger.info(
            "assignment_cancelled",
            work_item_id=assignment.work_item_id,
            session_id=assignment.session_id,
        )

    async def _abandon_cancelled(self, item_id: str, lifecycle: AssignmentLifecycle) -> None:
        # Lock stays held until the revert settles, and is released even on a
        # second cancellation.
        try:
            await self._revert_to_open(item_id)
        finally:
            self._locks.release(item_id)
            lifecycle.advance(DispatchState.ABANDONED, reason="cancelled")
            self._logger.info("dispatch_cancelled", work_item_id=item_id)

    async def _revert_to_open(self, item_id: str) -> None:
        try:
            await self._tracker.update_status(item_id, WorkItemStatus.OPEN)
        except Exception as e:
            self._logger.warning(
                "status_revert_failed",
                work_item_id=item_id,
                error=str(e),
            )
