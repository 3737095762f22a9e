"""Unit tests for the tracker adapters.

Tests cover:
- WorkItem parsing from bd JSON
- InMemoryTracker readiness, ordering and history
- BeadsCliTracker command construction and error handling
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from agentcoord.config import TrackerConfig
from agentcoord.errors import TrackerError
from agentcoord.tracker.base import (
    DependencyType,
    Tracker,
    WorkItem,
    WorkItemCreate,
    WorkItemStatus,
)
from agentcoord.tracker.beads_cli import BeadsCliTracker
from agentcoord.tracker.memory import InMemoryTracker


def _process(stdout: object = b"", stderr: bytes = b"", returncode: int = 0) -> AsyncMock:
    """Create a fake asyncio subprocess."""
    if not isinstance(stdout, bytes):
        stdout = json.dumps(stdout).encode()
    proc = AsyncMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.kill = MagicMock()
    return proc


def _bd_issue(issue_id: str = "bd-1", **overrides) -> dict:
    issue = {
        "id": issue_id,
        "title": "Fix flaky test",
        "description": "It fails on CI",
        "status": "open",
        "priority": 1,
        "issue_type": "bug",
        "labels": ["ci"],
        "created_at": "2025-01-01T00:00:00Z",
    }
    issue.update(overrides)
    return issue


# ===========================================================================
# WorkItem
# ===========================================================================


class TestWorkItem:
    """Tests for WorkItem parsing."""

    def test_parses_bd_payload(self) -> None:
        item = WorkItem.model_validate(_bd_issue(parentId="bd-0"))

        assert item.type == "bug"
        assert item.priority == 1
        assert item.status == WorkItemStatus.OPEN
        assert item.parent_id == "bd-0"
        assert item.labels == ["ci"]

    def test_priority_bounds(self) -> None:
        with pytest.raises(ValueError):
            WorkItem(id="bd-1", title="t", priority=5)


# ===========================================================================
# InMemoryTracker
# ===========================================================================


class TestInMemoryTracker:
    """Tests for InMemoryTracker."""

    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryTracker(), Tracker)

    @pytest.mark.asyncio
    async def test_ready_orders_by_priority_then_insertion(self) -> None:
        tracker = InMemoryTracker(
            [
                WorkItem(id="a", title="a", priority=3),
                WorkItem(id="b", title="b", priority=1),
                WorkItem(id="c", title="c", priority=3),
                WorkItem(id="d", title="d", priority=0, status=WorkItemStatus.CLOSED),
            ]
        )

        ready = await tracker.list_ready()

        assert [i.id for i in ready] == ["b", "a", "c"]

    @pytest.mark.asyncio
    async def test_blocking_dependency(self) -> None:
        tracker = InMemoryTracker([WorkItem(id="a", title="a"), WorkItem(id="b", title="b")])
        await tracker.add_dependency("b", "a")

        assert [i.id for i in await tracker.list_ready()] == ["a"]

        await tracker.update_status("a", WorkItemStatus.CLOSED)
        assert [i.id for i in await tracker.list_ready()] == ["b"]

    @pytest.mark.asyncio
    async def test_non_blocking_dependency_is_ignored(self) -> None:
        tracker = InMemoryTracker([WorkItem(id="a", title="a"), WorkItem(id="b", title="b")])
        await tracker.add_dependency("b", "a", DependencyType.RELATED)

        assert [i.id for i in await tracker.list_ready()] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_returns_copies(self) -> None:
        tracker = InMemoryTracker([WorkItem(id="a", title="a")])

        ready = await tracker.list_ready()
        ready[0].status = WorkItemStatus.CLOSED

        assert (await tracker.get("a")).status == WorkItemStatus.OPEN

    @pytest.mark.asyncio
    async def test_status_history(self) -> None:
        tracker = InMemoryTracker([WorkItem(id="a", title="a")])
        await tracker.update_status("a", WorkItemStatus.IN_PROGRESS)
        await tracker.update_status("a", WorkItemStatus.OPEN)

        assert tracker.status_history["a"] == [
            WorkItemStatus.OPEN,
            WorkItemStatus.IN_PROGRESS,
            WorkItemStatus.OPEN,
        ]

    @pytest.mark.asyncio
    async def test_create(self) -> None:
        tracker = InMemoryTracker(prefix="t")

        item = await tracker.create(WorkItemCreate(title="New", parent_id="p-1", labels=["x"]))

        assert item.id == "t-1"
        assert item.parent_id == "p-1"
        assert (await tracker.get("t-1")).labels == ["x"]

    @pytest.mark.asyncio
    async def test_unknown_item_raises(self) -> None:
        tracker = InMemoryTracker()

        with pytest.raises(TrackerError):
            await tracker.get("missing")
        with pytest.raises(TrackerError):
            await tracker.update_status("missing", WorkItemStatus.OPEN)


# ===========================================================================
# BeadsCliTracker
# ===========================================================================


@pytest.fixture
def bd_config(tmp_path: Path) -> TrackerConfig:
    return TrackerConfig(command="bd", project_path=tmp_path, timeout_seconds=5)


class TestBeadsCliTracker:
    """Tests for BeadsCliTracker."""

    def test_satisfies_protocol(self, bd_config: TrackerConfig) -> None:
        assert isinstance(BeadsCliTracker(bd_config), Tracker)

    @pytest.mark.asyncio
    async def test_list_ready(self, bd_config: TrackerConfig) -> None:
        tracker = BeadsCliTracker(bd_config)
        proc = _process([_bd_issue("bd-1"), _bd_issue("bd-2", priority=3)])

        with patch("asyncio.create_subprocess_exec", return_value=proc) as mock_exec:
            ready = await tracker.list_ready()

        assert [i.id for i in ready] == ["bd-1", "bd-2"]
        args, kwargs = mock_exec.call_args
        assert args == ("bd", "ready", "--json")
        assert kwargs["cwd"] == str(bd_config.project_path)

    @pytest.mark.asyncio
    async def test_list_ready_uses_scope_as_cwd(self, bd_config: TrackerConfig) -> None:
        tracker = BeadsCliTracker(bd_config)

        with patch("asyncio.create_subprocess_exec", return_value=_process([])) as mock_exec:
            assert await tracker.list_ready("/srv/other") == []

        assert mock_exec.call_args.kwargs["cwd"] == "/srv/other"

    @pytest.mark.asyncio
    async def test_list_ready_not_initialised(self, bd_config: TrackerConfig) -> None:
        tracker = BeadsCliTracker(bd_config)
        proc = _process(b"", b"Error: no beads database found, run bd init", returncode=1)

        with patch("asyncio.create_subprocess_exec", return_value=proc):
            assert await tracker.list_ready() == []

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises(self, bd_config: TrackerConfig) -> None:
        tracker = BeadsCliTracker(bd_config)
        proc = _process(b"", b"database is locked", returncode=2)

        with patch("asyncio.create_subprocess_exec", return_value=proc):
            with pytest.raises(TrackerError) as exc_info:
                await tracker.list_ready()

        assert exc_info.value.returncode == 2
        assert "database is locked" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_executable(self, bd_config: TrackerConfig) -> None:
        tracker = BeadsCliTracker(bd_config)

        with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError("bd")):
            with pytest.raises(TrackerError, match="not found"):
                await tracker.get("bd-1")

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self, bd_config: TrackerConfig) -> None:
        tracker = BeadsCliTracker(bd_config)
        proc = _process()
        proc.communicate = AsyncMock(side_effect=asyncio.TimeoutError())

        with patch("asyncio.create_subprocess_exec", return_value=proc):
            with pytest.raises(TrackerError, match="timed out"):
                await tracker.update_status("bd-1", WorkItemStatus.CLOSED)

        proc.kill.assert_called_once()

    @pytest.mark.asyncio
    async def test_cancel_kills_process(self, bd_config: TrackerConfig) -> None:
        tracker = BeadsCliTracker(bd_config)
        proc = _process()
        started = asyncio.Event()

        async def hang():
            started.set()
            await asyncio.Event().wait()

        proc.communicate = hang

        with patch("asyncio.create_subprocess_exec", return_value=proc):
            task = asyncio.create_task(tracker.list_ready())
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        proc.kill.assert_called_once()
        proc.wait.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invalid_json(self, bd_config: TrackerConfig) -> None:
        tracker = BeadsCliTracker(bd_config)

        with patch("asyncio.create_subprocess_exec", return_value=_process(b"not json")):
            with pytest.raises(TrackerError, match="invalid JSON"):
                await tracker.get("bd-1")

    @pytest.mark.asyncio
    async def test_update_status(self, bd_config: TrackerConfig) -> None:
        tracker = BeadsCliTracker(bd_config)
        proc = _process([_bd_issue(status="in_progress")])

        with patch("asyncio.create_subprocess_exec", return_value=proc) as mock_exec:
            item = await tracker.update_status("bd-1", WorkItemStatus.IN_PROGRESS)

        assert item.status == WorkItemStatus.IN_PROGRESS
        assert mock_exec.call_args.args == (
            "bd", "update", "bd-1", "--status", "in_progress", "--json",
        )

    @pytest.mark.asyncio
    async def test_get_accepts_single_object(self, bd_config: TrackerConfig) -> None:
        tracker = BeadsCliTracker(bd_config)

        with patch("asyncio.create_subprocess_exec", return_value=_process(_bd_issue("bd-7"))):
            item = await tracker.get("bd-7")

        assert item.id == "bd-7"

    @pytest.mark.asyncio
    async def test_create_with_parent_adds_dependency(self, bd_config: TrackerConfig) -> None:
        tracker = BeadsCliTracker(bd_config)
        create_proc = _process(_bd_issue("bd-9", title="Helper: write tests..."))
        dep_proc = _process(b"")

        with patch(
            "asyncio.create_subprocess_exec",
            side_effect=[create_proc, dep_proc],
        ) as mock_exec:
            item = await tracker.create(
                WorkItemCreate(
                    title="Helper: write tests...",
                    description="write tests",
                    priority=2,
                    labels=["helper"],
                    parent_id="bd-1",
                )
            )

        assert item.id == "bd-9"
        assert item.parent_id == "bd-1"

        create_args = mock_exec.call_args_list[0].args
        assert create_args == (
            "bd", "create", "Helper: write tests...",
            "--type", "task",
            "--priority", "2",
            "--description", "write tests",
            "--labels", "helper",
            "--json",
        )
        dep_args = mock_exec.call_args_list[1].args
        assert dep_args == ("bd", "dep", "add", "bd-9", "bd-1", "--type", "parent-child")
