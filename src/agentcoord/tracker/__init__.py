"""Work item tracker contract and adapters."""

from __future__ import annotations

from agentcoord.tracker.base import (
    DependencyType,
    Tracker,
    WorkItem,
    WorkItemCreate,
    WorkItemStatus,
)
from agentcoord.tracker.beads_cli import BeadsCliTracker
from agentcoord.tracker.memory import InMemoryTracker

__all__ = [
    "BeadsCliTracker",
    "DependencyType",
    "InMemoryTracker",
    "Tracker",
    "WorkItem",
    "WorkItemCreate",
    "WorkItemStatus",
]
