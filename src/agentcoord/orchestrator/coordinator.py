"""Agent coordinator.

The coordinator periodically pulls ready work items from the tracker,
scores the registered agent profiles against each one and dispatches the
work to the best match. It owns the issue lock table, the assignment
registry and the dispatcher; nothing about a running coordinator lives in
module state, so several coordinators can run side by side.

A coordination cycle runs, strictly in order:

1. Stale cleanup: reclaim assignments older than ``max_agent_age_seconds``.
2. Capacity check: stop if running plus pending assignments already
   reach ``max_concurrent_agents``.
3. Fetch the tracker's ready list for the project scope.
4. Drop items that are locked or already in progress.
5. For each remaining item, score the auto-selectable profiles and
   dispatch to the winner when its score clears the threshold.

Cycles are triggered by an interval timer, by inbound ``work-ready``
events, or directly through ``run_cycle``. Concurrent cycles are safe:
the lock table makes sure a work item is only ever assigned once.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from uuid import uuid4
from datetime import datetime, timezone
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

from agentcoord.agents.profiles import ProfileRegistry
from agentcoord.config import CoordinatorConfig
from agentcoord.errors import (
    HelperDispatchError,
    HelperSpawningDisabledError,
    NoAutoSelectableProfilesError,
    ParentNotFoundError,
)
from agentcoord.execution.base import ExecutionBackend, SessionFactory
from agentcoord.logging import set_correlation_id
from agentcoord.orchestrator.dispatcher import AssignmentDispatcher, CompletionRecord
from agentcoord.orchestrator.events import (
    EventEmitter,
    HelperSpawned,
    WorkItemUpdated,
    WorkReady,
)
from agentcoord.orchestrator.locks import IssueLockTable
from agentcoord.orchestrator.registry import Assignment, AssignmentRegistry
from agentcoord.orchestrator.scorer import select_agent
from agentcoord.tracker.base import Tracker, WorkItem, WorkItemCreate, WorkItemStatus

logger = structlog.get_logger(__name__)

INBOUND_KINDS = frozenset({"work-ready", "work-item-updated"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CycleReport(BaseModel):
    """What a single coordination cycle did.

    Attributes:
        started_at: When the cycle began.
        correlation_id: Id attached to every log line of the cycle.
        project_scope: Scope passed to the tracker.
        reclaimed: Number of stale assignments reclaimed.
        candidates: Items returned by the tracker's ready list.
        eligible: Candidates that were neither locked nor in progress.
        dispatched: Ids of work items assigned in this cycle.
        skipped_capacity: Whether the cycle stopped because capacity was
            reached.
    """

    started_at: datetime = Field(default_factory=_utcnow)
    correlation_id: str = Field(default_factory=lambda: f"cycle-{uuid4().hex[:8]}")
    project_scope: str | None = None
    reclaimed: int = 0
    candidates: int = 0
    eligible: int = 0
    dispatched: list[str] = Field(default_factory=list)
    skipped_capacity: bool = False


class CoordinatorStats(BaseModel):
    """Point-in-time view of the coordinator."""

    active_agents: int
    locked_issues: int
    active_by_type: dict[str, int]
    total_assignments: int
    total_helpers_spawned: int
    total_completed: int
    total_failed: int
    total_reclaimed: int
    last_coordination_time: datetime | None
    running: bool


class HelperSpawnResult(BaseModel):
    """Identifiers produced by ``AgentCoordinator.spawn_helper``."""

    helper_session_id: str
    helper_work_item_id: str
    parent_work_item_id: str
    helper_agent_type: str


class AgentCoordinator:
    """Assigns ready work items to agent profiles.

    Attributes:
        config: Coordinator settings.
        profiles: Registry of available agent profiles.
        emitter: Event channel; outbound events are published here and
            inbound ``work-ready`` / ``work-item-updated`` events are
            consumed from it while running.
        locks: Issue lock table.
        registry: Running assignments.
        dispatcher: Assignment dispatcher.
    """

    def __init__(
        self,
        tracker: Tracker,
        session_factory: SessionFactory,
        backend: ExecutionBackend,
        profiles: ProfileRegistry | None = None,
        config: CoordinatorConfig | None = None,
        emitter: EventEmitter | None = None,
        working_dir: Path | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the coordinator.

        Args:
            tracker: Source of work items.
            session_factory: Creates execution sessions.
            backend: Runs agent prompts.
            profiles: Agent profiles. Defaults to the built-in set.
            config: Coordinator settings. Defaults to ``CoordinatorConfig()``.
            emitter: Event channel. A private one is created if omitted.
            working_dir: Directory executions run in.
            clock: Monotonic time source for assignment ages.
        """
        self.config = config or CoordinatorConfig()
        self.profiles = profiles or ProfileRegistry()
        self.emitter = emitter or EventEmitter()
        self.locks = IssueLockTable()
        self.registry = AssignmentRegistry()
        self.dispatcher = AssignmentDispatcher(
            tracker=tracker,
            session_factory=session_factory,
            backend=backend,
            profiles=self.profiles,
            emitter=self.emitter,
            locks=self.locks,
            registry=self.registry,
            working_dir=working_dir,
            clock=clock,
            completion_queue_size=self.config.completion_queue_size,
        )
        self._tracker = tracker
        self._clock = clock

        self._running = False
        self._scope: str | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._cycle_tasks: set[asyncio.Task[None]] = set()
        self._unsubscribe: Callable[[], None] | None = None

        self._total_assignments = 0
        self._total_helpers_spawned = 0
        self._total_completed = 0
        self._total_failed = 0
        self._total_reclaimed = 0
        self._last_coordination_time: datetime | None = None

        self.emitter.subscribe(
            self._count_outcome,
            kinds={"agent-completed", "helper-completed", "agent-failed", "helper-failed"},
        )
        self._logger = logger.bind(component="AgentCoordinator")

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, project_scope: str | None = None) -> None:
        """Start periodic coordination.

        Subscribes to inbound events, runs one cycle immediately and then
        keeps running cycles every ``coordination_interval_seconds`` until
        ``stop()`` is called.

        Args:
            project_scope: Scope passed to the tracker's ready list.

        Raises:
            RuntimeError: If the coordinator is already running.
        """
        if self._running:
            raise RuntimeError("Coordinator is already running")

        self._running = True
        self._scope = project_scope
        self._unsubscribe = self.emitter.subscribe(self._on_inbound_event, kinds=INBOUND_KINDS)

        self._logger.info(
            "coordinator_starting",
            project_scope=project_scope,
            interval_seconds=self.config.coordination_interval_seconds,
            max_concurrent_agents=self.config.max_concurrent_agents,
        )

        await self._guarded_cycle("startup", project_scope)
        self._loop_task = asyncio.create_task(
            self._coordination_loop(),
            name=f"coordinator-{project_scope or 'default'}",
        )

    async def stop(self) -> None:
        """Stop coordination.

        Cancels the interval loop, any out-of-band cycles and every
        in-flight execution, then clears the lock table and registry.
        Work item statuses in the tracker are left as they are. Safe to
        call when the coordinator is not running.
        """
        if not self._running:
            self._logger.debug("coordinator_stop_noop", reason="not running")
            return

        self._logger.info("coordinator_stopping", active_agents=len(self.registry))
        self._running = False

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        current = asyncio.current_task()
        tasks: list[asyncio.Task[None]] = []
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        tasks.extend(self._cycle_tasks)
        tasks.extend(a.handle for a in self.registry.all() if a.handle is not None)
        tasks = [t for t in tasks if t is not current and not t.done()]

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._loop_task = None
        self._cycle_tasks.clear()
        self.locks.clear()
        self.registry.clear()
        self.dispatcher.discard_lifecycles()

        self._logger.info("coordinator_stopped")

    async def _coordination_loop(self) -> None:
        interval = self.config.coordination_interval_seconds
        while self._running:
            await asyncio.sleep(interval)
            if not self._running:
                break
            await self._guarded_cycle("timer", self._scope)

    async def _guarded_cycle(self, trigger: str, project_scope: str | None) -> None:
        try:
            await self.run_cycle(project_scope)
        except NoAutoSelectableProfilesError:
            self._logger.error("coordination_cycle_skipped", trigger=trigger, reason="no_profiles")
        except Exception:
            self._logger.exception("coordination_cycle_failed", trigger=trigger)

    # ------------------------------------------------------------------
    # Coordination cycle
    # ------------------------------------------------------------------

    async def run_cycle(self, project_scope: str | None = None) -> CycleReport:
        """Run one coordination cycle.

        Args:
            project_scope: Scope for the tracker's ready list. Defaults to
                the scope given to ``start``.

        Returns:
            Report of what the cycle did.

        Raises:
            NoAutoSelectableProfilesError: If an item needs scoring and no
                auto-selectable profile is registered.
            TrackerError: If the ready list could not be fetched.
        """
        scope = project_scope if project_scope is not None else self._scope
        report = CycleReport(project_scope=scope)
        set_correlation_id(report.correlation_id)
        self._last_coordination_time = report.started_at

        report.reclaimed = len(self.cleanup_stale())

        if not self.config.enable_auto_assignment:
            self._logger.debug("auto_assignment_disabled")
            return report

        if self._at_capacity():
            report.skipped_capacity = True
            self._logger.debug("cycle_at_capacity", active_agents=len(self.registry))
            return report

        items = await self._tracker.list_ready(scope)
        report.candidates = len(items)

        eligible = [
            item
            for item in items
            if item.status != WorkItemStatus.IN_PROGRESS and not self.locks.is_locked(item.id)
        ]
        report.eligible = len(eligible)

        profiles = self.profiles.auto_selectable()
        for item in eligible:
            if self._at_capacity():
                report.skipped_capacity = True
                break

            selection = select_agent(
                profiles,
                item,
                self.registry.active_counts(),
                self.config.max_concurrent_agents,
            )
            if selection is None:
                self._logger.debug("no_agent_above_threshold", work_item_id=item.id)
                continue

            assignment = await self.dispatcher.dispatch(
                item,
                selection.agent_type,
                score=selection.score,
                scope=scope,
            )
            if assignment is not None:
                self._total_assignments += 1
                report.dispatched.append(item.id)

        self._logger.info(
            "coordination_cycle_complete",
            project_scope=scope,
            candidates=report.candidates,
            eligible=report.eligible,
            dispatched=len(report.dispatched),
            reclaimed=report.reclaimed,
            active_agents=len(self.registry),
        )
        return report

    def cleanup_stale(self, now: float | None = None) -> list[Assignment]:
        """Reclaim assignments older than ``max_agent_age_seconds``.

        The locks of reclaimed assignments are released and an
        ``agent-cleaned`` event is emitted for each; the work item status
        is not touched. Calling it again reclaims nothing new.

        Args:
            now: Monotonic time to measure ages against. Defaults to the
                coordinator's clock.

        Returns:
            The reclaimed assignments.
        """
        if now is None:
            now = self._clock()

        stale = self.registry.find_stale(now, self.config.max_agent_age_seconds)
        reclaimed = [a for a in stale if self.dispatcher.reclaim(a, now)]
        self._total_reclaimed += len(reclaimed)
        return reclaimed

    def _at_capacity(self) -> bool:
        in_use = len(self.registry) + self.locks.pending_count()
        return in_use >= self.config.max_concurrent_agents

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def spawn_helper(
        self,
        parent_session_id: str,
        helper_type: str,
        task_description: str,
    ) -> HelperSpawnResult:
        """Create a sub-task of a running assignment and dispatch it.

        The helper work item is parented to the parent assignment's work
        item and dispatched to ``helper_type`` directly, without scoring
        or capacity checks. It is still locked and tracked like any other
        assignment.

        Args:
            parent_session_id: Session of the running assignment asking for
                help.
            helper_type: Agent profile to run the helper.
            task_description: What the helper should do.

        Returns:
            Identifiers of the helper and its parent.

        Raises:
            ParentNotFoundError: If no running assignment has
                ``parent_session_id``.
            HelperSpawningDisabledError: If helper spawning is disabled.
            HelperDispatchError: If the helper item was created but could
                not be dispatched.
        """
        parent = self.registry.get(parent_session_id)
        if parent is None:
            raise ParentNotFoundError(parent_session_id)
        if not self.config.enable_helper_spawning:
            raise HelperSpawningDisabledError()

        title = f"Helper: {task_description[: self.config.helper_title_length]}..."
        helper_item = await self._tracker.create(
            WorkItemCreate(
                title=title,
                description=task_description,
                type="task",
                priority=self.config.helper_priority,
                parent_id=parent.work_item_id,
            )
        )
        self._logger.info(
            "helper_item_created",
            helper_work_item_id=helper_item.id,
            parent_work_item_id=parent.work_item_id,
            parent_session_id=parent_session_id,
        )

        assignment = await self.dispatcher.dispatch(helper_item, helper_type, parent=parent)
        if assignment is None:
            raise HelperDispatchError(helper_item.id, "dispatch was abandoned")

        self._total_assignments += 1
        self._total_helpers_spawned += 1
        self.emitter.emit(
            HelperSpawned(
                helper_work_item_id=helper_item.id,
                helper_session_id=assignment.session_id,
                parent_work_item_id=parent.work_item_id,
                parent_session_id=parent_session_id,
                agent_type=helper_type,
            )
        )
        return HelperSpawnResult(
            helper_session_id=assignment.session_id,
            helper_work_item_id=helper_item.id,
            parent_work_item_id=parent.work_item_id,
            helper_agent_type=helper_type,
        )

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    def notify_work_ready(self, project_scope: str | None = None) -> asyncio.Task[None] | None:
        """Schedule an immediate coordination cycle.

        Must be called from the event loop thread.

        Returns:
            The scheduled cycle task, or None when not running.
        """
        if not self._running:
            self._logger.debug("work_ready_ignored", reason="not running")
            return None

        scope = project_scope if project_scope is not None else self._scope
        task = asyncio.create_task(self._guarded_cycle("work_ready", scope))
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)
        return task

    def handle_work_item_updated(self, item: WorkItem) -> bool:
        """Drop the lock of a work item the tracker reports as closed.

        Returns:
            True if a lock was released.
        """
        if item.status != WorkItemStatus.CLOSED:
            return False

        released = self.locks.release(item.id)
        if released:
            self._logger.info("lock_released_on_close", work_item_id=item.id)
        return released

    def _on_inbound_event(self, event: BaseModel) -> None:
        if isinstance(event, WorkReady):
            self.notify_work_ready(event.scope)
        elif isinstance(event, WorkItemUpdated):
            self.handle_work_item_updated(event.item)

    def _count_outcome(self, event: BaseModel) -> None:
        if event.kind.endswith("-completed"):
            self._total_completed += 1
        else:
            self._total_failed += 1

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_stats(self) -> CoordinatorStats:
        return CoordinatorStats(
            active_agents=len(self.registry),
            locked_issues=len(self.locks),
            active_by_type=self.registry.active_counts(),
            total_assignments=self._total_assignments,
            total_helpers_spawned=self._total_helpers_spawned,
            total_completed=self._total_completed,
            total_failed=self._total_failed,
            total_reclaimed=self._total_reclaimed,
            last_coordination_time=self._last_coordination_time,
            running=self._running,
        )

    def active_assignments(self) -> list[Assignment]:
        return self.registry.all()

    def locked_issues(self) -> dict[str, str]:
        return self.locks.snapshot()

    def drain_completions(self) -> list[CompletionRecord]:
        """Take every completion record queued so far."""
        records: list[CompletionRecord] = []
        while not self.dispatcher.completions.empty():
            records.append(self.dispatcher.completions.get_nowait())
        return records
