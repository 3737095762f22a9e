"""Coordinator notifications.

Every lifecycle transition of an assignment is published as a typed event.
Each kind is its own model carrying only the fields that transition has;
``CoordinatorEvent`` is the discriminated union over all of them, keyed on
``kind``.

Outbound kinds (published by the coordinator):
    agent-assigned, agent-started, agent-completed, agent-failed,
    agent-cleaned, helper-started, helper-spawned, helper-completed,
    helper-failed

Inbound kinds (consumed by the coordinator):
    work-ready, work-item-updated
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Annotated, Literal, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field

from agentcoord.tracker.base import WorkItem

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=_utcnow)


class AgentAssigned(_Event):
    kind: Literal["agent-assigned"] = "agent-assigned"
    work_item_id: str
    session_id: str
    agent_type: str
    score: float | None = None
    scope: str | None = None


class AgentStarted(_Event):
    kind: Literal["agent-started"] = "agent-started"
    work_item_id: str
    session_id: str
    agent_type: str
    scope: str | None = None


class AgentCompleted(_Event):
    kind: Literal["agent-completed"] = "agent-completed"
    work_item_id: str
    session_id: str
    agent_type: str
    duration_seconds: float


class AgentFailed(_Event):
    kind: Literal["agent-failed"] = "agent-failed"
    work_item_id: str
    session_id: str
    agent_type: str
    error: str


class AgentCleaned(_Event):
    """Stale reclamation. Distinct from a failure: the real outcome is unknown."""

    kind: Literal["agent-cleaned"] = "agent-cleaned"
    work_item_id: str
    session_id: str
    agent_type: str
    age_seconds: float


class HelperStarted(_Event):
    kind: Literal["helper-started"] = "helper-started"
    work_item_id: str
    session_id: str
    parent_session_id: str
    agent_type: str


class HelperSpawned(_Event):
    kind: Literal["helper-spawned"] = "helper-spawned"
    helper_work_item_id: str
    helper_session_id: str
    parent_work_item_id: str
    parent_session_id: str
    agent_type: str


class HelperCompleted(_Event):
    kind: Literal["helper-completed"] = "helper-completed"
    work_item_id: str
    session_id: str
    parent_session_id: str
    agent_type: str
    duration_seconds: float


class HelperFailed(_Event):
    kind: Literal["helper-failed"] = "helper-failed"
    work_item_id: str
    session_id: str
    parent_session_id: str
    agent_type: str
    error: str


class WorkReady(_Event):
    """Inbound: new work may be ready; run a cycle now."""

    kind: Literal["work-ready"] = "work-ready"
    scope: str | None = None
    work_item_id: str | None = None


class WorkItemUpdated(_Event):
    """Inbound: the tracker reports a changed work item."""

    kind: Literal["work-item-updated"] = "work-item-updated"
    item: WorkItem


CoordinatorEvent = Annotated[
    Union[
        AgentAssigned,
        AgentStarted,
        AgentCompleted,
        AgentFailed,
        AgentCleaned,
        HelperStarted,
        HelperSpawned,
        HelperCompleted,
        HelperFailed,
        WorkReady,
        WorkItemUpdated,
    ],
    Field(discriminator="kind"),
]

EventCallback = Callable[[BaseModel], None]


class EventEmitter:
    """Synchronous publish/subscribe channel for coordinator events.

    Callbacks run inline in ``emit``. A failing callback is logged and does
    not stop delivery to the others, nor does it propagate to the emitter.
    """

    def __init__(self) -> None:
        self._subscribers: list[tuple[EventCallback, frozenset[str] | None]] = []
        self._mutex = threading.Lock()
        self._logger = logger.bind(component="EventEmitter")

    def subscribe(
        self,
        callback: EventCallback,
        kinds: Iterable[str] | None = None,
    ) -> Callable[[], None]:
        """Register a callback.

        Args:
            callback: Called with every matching event.
            kinds: Only deliver these event kinds. None delivers all.

        Returns:
            A function that removes the subscription when called.
        """
        entry = (callback, frozenset(kinds) if kinds is not None else None)
        with self._mutex:
            self._subscribers.append(entry)

        def unsubscribe() -> None:
            with self._mutex:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return unsubscribe

    def emit(self, event: BaseModel) -> None:
        kind = getattr(event, "kind", type(event).__name__)
        with self._mutex:
            subscribers = list(self._subscribers)

        for callback, kinds in subscribers:
            if kinds is not None and kind not in kinds:
                continue
            try:
                callback(event)
            except Exception:
                self._logger.exception("event_subscriber_error", event_kind=kind)

    @property
    def subscriber_count(self) -> int:
        with self._mutex:
            return len(self._subscribers)
