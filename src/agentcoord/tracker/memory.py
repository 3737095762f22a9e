"""In-memory, dependency-aware tracker.

Used by the test-suite and for local dry runs. Ready work follows the same
rule as the ``bd ready`` command: open items whose dependencies are all
closed, ordered by priority then creation order.
"""

from __future__ import annotations

import asyncio
import itertools

import structlog

from agentcoord.errors import TrackerError
from agentcoord.tracker.base import (
    DependencyType,
    WorkItem,
    WorkItemCreate,
    WorkItemStatus,
)

logger = structlog.get_logger(__name__)


class InMemoryTracker:
    """Tracker implementation backed by a dict.

    Attributes:
        prefix: Prefix used when generating work item ids.
        status_history: Every status a work item has held, oldest first.
    """

    def __init__(self, items: list[WorkItem] | None = None, prefix: str = "mem") -> None:
        self.prefix = prefix
        self._items: dict[str, WorkItem] = {}
        self._order: dict[str, int] = {}
        self._counter = itertools.count(1)
        self._lock = asyncio.Lock()
        self.status_history: dict[str, list[WorkItemStatus]] = {}
        self._logger = logger.bind(component="InMemoryTracker")

        for item in items or []:
            self.add(item)

    def add(self, item: WorkItem) -> WorkItem:
        """Insert an existing work item, keeping its id."""
        self._items[item.id] = item
        self._order[item.id] = next(self._counter)
        self.status_history[item.id] = [item.status]
        return item

    async def list_ready(self, scope: str | None = None) -> list[WorkItem]:
        async with self._lock:
            ready = [
                item
                for item in self._items.values()
                if item.status == WorkItemStatus.OPEN and self._dependencies_closed(item)
            ]
        ready.sort(key=lambda i: (i.priority, self._order[i.id]))
        return [item.model_copy() for item in ready]

    async def get(self, item_id: str) -> WorkItem:
        async with self._lock:
            return self._require(item_id).model_copy()

    async def update_status(self, item_id: str, status: WorkItemStatus) -> WorkItem:
        async with self._lock:
            item = self._require(item_id)
            item.status = status
            self.status_history[item_id].append(status)
            self._logger.debug("status_updated", work_item_id=item_id, status=status.value)
            return item.model_copy()

    async def create(self, data: WorkItemCreate) -> WorkItem:
        async with self._lock:
            item_id = f"{self.prefix}-{len(self._items) + 1}"
            while item_id in self._items:
                item_id = f"{item_id}x"
            item = WorkItem(
                id=item_id,
                title=data.title,
                description=data.description,
                type=data.type,
                priority=data.priority,
                labels=list(data.labels),
                parent_id=data.parent_id,
            )
            self.add(item)
            self._logger.debug("work_item_created", work_item_id=item_id, parent_id=data.parent_id)
            return item.model_copy()

    async def add_dependency(
        self,
        item_id: str,
        depends_on_id: str,
        dep_type: DependencyType = DependencyType.BLOCKS,
    ) -> None:
        async with self._lock:
            item = self._require(item_id)
            self._require(depends_on_id)
            if dep_type == DependencyType.BLOCKS and depends_on_id not in item.dependencies:
                item.dependencies.append(depends_on_id)

    def _dependencies_closed(self, item: WorkItem) -> bool:
        for dep_id in item.dependencies:
            dep = self._items.get(dep_id)
            if dep is None or dep.status != WorkItemStatus.CLOSED:
                return False
        return True

    def _require(self, item_id: str) -> WorkItem:
        item = self._items.get(item_id)
        if item is None:
            raise TrackerError("get", f"work item {item_id} not found")
        return item
