"""Work item model and the tracker contract consumed by the coordinator.

The coordinator never owns work items. It reads and writes them through a
``Tracker``, an external dependency-aware issue tracker such as the ``bd``
CLI. This module defines the shapes exchanged with that collaborator.
"""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class WorkItemStatus(str, Enum):
    """Tracker status of a work item.

    The coordinator only ever writes ``OPEN``, ``IN_PROGRESS`` and ``CLOSED``;
    the remaining values can be observed on items read from the tracker.
    """

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DEFERRED = "deferred"
    CLOSED = "closed"


class DependencyType(str, Enum):
    """Relationship kinds accepted by ``Tracker.add_dependency``."""

    BLOCKS = "blocks"
    RELATED = "related"
    PARENT = "parent-child"
    DISCOVERED_FROM = "discovered-from"


class WorkItem(BaseModel):
    """A unit of work held by the external tracker.

    Attributes:
        id: Opaque unique identifier assigned by the tracker.
        title: Short summary.
        description: Free-form body text.
        type: Issue type (``task``, ``bug``, ``feature``...). Accepts the
            tracker's ``issue_type`` key.
        priority: 0 (highest) to 4 (lowest).
        labels: Free-form labels.
        status: Current tracker status.
        parent_id: Parent work item for helper sub-tasks.
        dependencies: Ids of work items this one depends on.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str
    title: str
    description: str = ""
    type: str = Field(
        default="task",
        validation_alias=AliasChoices("type", "issue_type"),
    )
    priority: int = Field(default=2, ge=0, le=4)
    labels: list[str] = Field(default_factory=list)
    status: WorkItemStatus = WorkItemStatus.OPEN
    parent_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("parent_id", "parentId", "parent"),
    )
    dependencies: list[str] = Field(default_factory=list)


class WorkItemCreate(BaseModel):
    """Input for creating a work item through the tracker."""

    title: str
    description: str = ""
    type: str = "task"
    priority: int = Field(default=2, ge=0, le=4)
    labels: list[str] = Field(default_factory=list)
    parent_id: str | None = None


@runtime_checkable
class Tracker(Protocol):
    """Contract of the external work item tracker.

    Every method is a suspension point for the coordinator and is expected
    to enforce its own timeout.
    """

    async def list_ready(self, scope: str | None = None) -> list[WorkItem]:
        """Return items whose dependencies are satisfied, in tracker order."""
        ...

    async def get(self, item_id: str) -> WorkItem:
        """Return a single work item."""
        ...

    async def update_status(self, item_id: str, status: WorkItemStatus) -> WorkItem:
        """Set the status of a work item and return the updated item."""
        ...

    async def create(self, data: WorkItemCreate) -> WorkItem:
        """Create a work item and return it with its assigned id."""
        ...

    async def add_dependency(
        self,
        item_id: str,
        depends_on_id: str,
        dep_type: DependencyType = DependencyType.BLOCKS,
    ) -> None:
        """Record that ``item_id`` depends on ``depends_on_id``."""
        ...
