"""Unit tests for helper spawning.

Tests cover:
- Unknown parent sessions
- Disabled helper spawning
- Helper work item creation (title, priority, parent)
- Dispatch bypassing capacity and scoring
- Helper events and dispatch failure
"""

from __future__ import annotations

import pytest
import pytest_asyncio

from agentcoord.agents.profiles import ProfileRegistry
from agentcoord.config import CoordinatorConfig
from agentcoord.errors import (
    HelperDispatchError,
    HelperSpawningDisabledError,
    ParentNotFoundError,
)
from agentcoord.orchestrator.coordinator import AgentCoordinator
from agentcoord.tracker.base import WorkItem, WorkItemStatus


@pytest_asyncio.fixture
async def parent(coordinator, tracker):
    """A running assignment to spawn helpers from."""
    tracker.add(WorkItem(id="bd-1", title="Build checkout flow"))
    await coordinator.run_cycle()
    return coordinator.active_assignments()[0]


async def _finish_all(coordinator: AgentCoordinator, backend) -> None:
    for assignment in coordinator.active_assignments():
        backend.succeed(assignment.session_id)
    for assignment in coordinator.active_assignments():
        await assignment.handle


class TestSpawnHelper:
    """Tests for AgentCoordinator.spawn_helper."""

    @pytest.mark.asyncio
    async def test_unknown_parent_creates_nothing(self, coordinator, tracker):
        with pytest.raises(ParentNotFoundError) as exc_info:
            await coordinator.spawn_helper("session-404", "testing", "write tests")

        assert "session-404" in str(exc_info.value)
        assert exc_info.value.parent_session_id == "session-404"
        assert tracker.status_history == {}

    @pytest.mark.asyncio
    async def test_spawning_disabled(self, tracker, session_factory, backend, clock):
        coordinator = AgentCoordinator(
            tracker=tracker,
            session_factory=session_factory,
            backend=backend,
            profiles=ProfileRegistry(),
            config=CoordinatorConfig(enable_helper_spawning=False),
            clock=clock,
        )
        tracker.add(WorkItem(id="bd-1", title="Build checkout flow"))
        await coordinator.run_cycle()
        parent = coordinator.active_assignments()[0]

        with pytest.raises(HelperSpawningDisabledError):
            await coordinator.spawn_helper(parent.session_id, "testing", "write tests")

        assert list(tracker.status_history) == ["bd-1"]
        await _finish_all(coordinator, backend)

    @pytest.mark.asyncio
    async def test_creates_parented_item(self, coordinator, tracker, backend, parent):
        description = "Write integration tests for the payment provider webhook handler"

        result = await coordinator.spawn_helper(parent.session_id, "testing", description)

        helper = await tracker.get(result.helper_work_item_id)
        assert helper.title == f"Helper: {description[:50]}..."
        assert helper.description == description
        assert helper.type == "task"
        assert helper.priority == 2
        assert helper.parent_id == "bd-1"
        assert helper.status == WorkItemStatus.IN_PROGRESS

        assert result.parent_work_item_id == "bd-1"
        assert result.helper_agent_type == "testing"

        await _finish_all(coordinator, backend)

    @pytest.mark.asyncio
    async def test_helper_is_tracked_and_locked(self, coordinator, backend, parent):
        result = await coordinator.spawn_helper(parent.session_id, "review", "review the diff")

        helper = coordinator.registry.get(result.helper_session_id)
        assert helper is not None
        assert helper.parent_session_id == parent.session_id
        assert helper.agent_type == "review"
        assert coordinator.locks.owner(result.helper_work_item_id) == result.helper_session_id
        assert coordinator.registry.count_active("review") == 1

        await _finish_all(coordinator, backend)

    @pytest.mark.asyncio
    async def test_bypasses_capacity(self, tracker, session_factory, backend, clock):
        coordinator = AgentCoordinator(
            tracker=tracker,
            session_factory=session_factory,
            backend=backend,
            config=CoordinatorConfig(max_concurrent_agents=1),
            clock=clock,
        )
        tracker.add(WorkItem(id="bd-1", title="Build checkout flow"))
        await coordinator.run_cycle()
        parent = coordinator.active_assignments()[0]

        await coordinator.spawn_helper(parent.session_id, "documentation", "document the API")

        assert len(coordinator.registry) == 2
        await _finish_all(coordinator, backend)

    @pytest.mark.asyncio
    async def test_events(self, coordinator, backend, parent, events):
        result = await coordinator.spawn_helper(parent.session_id, "testing", "write tests")

        kinds = [e.kind for e in events]
        assert kinds[-2:] == ["helper-started", "helper-spawned"]
        spawned = events[-1]
        assert spawned.helper_work_item_id == result.helper_work_item_id
        assert spawned.parent_session_id == parent.session_id

        backend.succeed(result.helper_session_id)
        await coordinator.registry.get(result.helper_session_id).handle
        assert events[-1].kind == "helper-completed"

        stats = coordinator.get_stats()
        assert stats.total_helpers_spawned == 1
        assert stats.total_completed == 1

        await _finish_all(coordinator, backend)

    @pytest.mark.asyncio
    async def test_dispatch_failure_raises(self, coordinator, session_factory, parent):
        session_factory.fail_with = RuntimeError("no sessions")

        with pytest.raises(HelperDispatchError) as exc_info:
            await coordinator.spawn_helper(parent.session_id, "testing", "write tests")

        helper_id = exc_info.value.work_item_id
        assert not coordinator.locks.is_locked(helper_id)
        assert coordinator.registry.find_by_work_item(helper_id) == []
