"""Unit tests for coordinator events and the event emitter."""

from __future__ import annotations

from datetime import timezone

import pytest
from pydantic import TypeAdapter, ValidationError

from agentcoord.orchestrator.events import (
    AgentCleaned,
    AgentFailed,
    CoordinatorEvent,
    EventEmitter,
    HelperSpawned,
    WorkItemUpdated,
    WorkReady,
)
from agentcoord.tracker.base import WorkItem, WorkItemStatus


class TestEventModels:
    """Tests for the event variants."""

    def test_timestamp_is_utc(self) -> None:
        event = AgentFailed(work_item_id="bd-1", session_id="s1", agent_type="debug", error="x")
        assert event.timestamp.tzinfo == timezone.utc

    def test_events_are_frozen(self) -> None:
        event = AgentCleaned(work_item_id="bd-1", session_id="s1", agent_type="debug", age_seconds=1)
        with pytest.raises(ValidationError):
            event.age_seconds = 2

    def test_union_discriminates_on_kind(self) -> None:
        adapter = TypeAdapter(CoordinatorEvent)

        event = adapter.validate_python(
            {
                "kind": "helper-spawned",
                "helper_work_item_id": "bd-2",
                "helper_session_id": "s2",
                "parent_work_item_id": "bd-1",
                "parent_session_id": "s1",
                "agent_type": "testing",
            }
        )
        assert isinstance(event, HelperSpawned)

        event = adapter.validate_python(
            {"kind": "work-item-updated", "item": {"id": "bd-1", "title": "t", "status": "closed"}}
        )
        assert isinstance(event, WorkItemUpdated)
        assert event.item.status == WorkItemStatus.CLOSED

    def test_union_rejects_unknown_kind(self) -> None:
        with pytest.raises(ValidationError):
            TypeAdapter(CoordinatorEvent).validate_python({"kind": "agent-exploded"})


class TestEventEmitter:
    """Tests for EventEmitter."""

    def test_delivers_to_all_subscribers(self) -> None:
        emitter = EventEmitter()
        first: list = []
        second: list = []
        emitter.subscribe(first.append)
        emitter.subscribe(second.append)

        event = WorkReady(scope="backend")
        emitter.emit(event)

        assert first == [event]
        assert second == [event]

    def test_kind_filter(self) -> None:
        emitter = EventEmitter()
        received: list = []
        emitter.subscribe(received.append, kinds={"work-ready"})

        emitter.emit(WorkItemUpdated(item=WorkItem(id="bd-1", title="t")))
        emitter.emit(WorkReady())

        assert [e.kind for e in received] == ["work-ready"]

    def test_unsubscribe(self) -> None:
        emitter = EventEmitter()
        received: list = []
        unsubscribe = emitter.subscribe(received.append)

        unsubscribe()
        unsubscribe()
        emitter.emit(WorkReady())

        assert received == []
        assert emitter.subscriber_count == 0

    def test_failing_subscriber_is_isolated(self) -> None:
        emitter = EventEmitter()
        received: list = []

        def broken(event) -> None:
            raise RuntimeError("subscriber bug")

        emitter.subscribe(broken)
        emitter.subscribe(received.append)

        emitter.emit(WorkReady())

        assert len(received) == 1
