"""Tracker adapter for the Beads ``bd`` command line tool.

Every call shells out to ``bd ... --json`` inside the configured project
directory and parses the JSON it prints. Calls are bounded by the tracker
timeout so a hung ``bd`` process cannot stall a coordination cycle.

Example:
    >>> tracker = BeadsCliTracker(TrackerConfig(project_path=Path("/srv/repo")))
    >>> ready = await tracker.list_ready()
    >>> await tracker.update_status(ready[0].id, WorkItemStatus.IN_PROGRESS)
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import structlog

from agentcoord.config import TrackerConfig
from agentcoord.errors import TrackerError
from agentcoord.tracker.base import (
    DependencyType,
    WorkItem,
    WorkItemCreate,
    WorkItemStatus,
)

logger = structlog.get_logger(__name__)

# stderr fragments printed by bd when the repository has no beads database
_NOT_INITIALISED_MARKERS = ("no beads database", "not initialized", "bd init")


class BeadsCliTracker:
    """Tracker backed by the ``bd`` CLI.

    Attributes:
        config: Tracker configuration (command, project path, timeout).
    """

    def __init__(self, config: TrackerConfig) -> None:
        self.config = config
        self._logger = logger.bind(component="BeadsCliTracker")

    async def list_ready(self, scope: str | None = None) -> list[WorkItem]:
        """Return ready work, or an empty list if beads is not initialised.

        Args:
            scope: Optional project directory overriding the configured one.
        """
        try:
            payload = await self._run_json("list_ready", ["ready"], cwd=scope)
        except TrackerError as e:
            if self._is_not_initialised(str(e)):
                self._logger.info("beads_not_initialised", project_path=scope or str(self.config.project_path))
                return []
            raise
        return [WorkItem.model_validate(raw) for raw in self._as_list(payload)]

    async def get(self, item_id: str) -> WorkItem:
        payload = await self._run_json("get", ["show", item_id])
        return WorkItem.model_validate(self._first(payload, "get"))

    async def update_status(self, item_id: str, status: WorkItemStatus) -> WorkItem:
        payload = await self._run_json(
            "update_status",
            ["update", item_id, "--status", status.value],
        )
        return WorkItem.model_validate(self._first(payload, "update_status"))

    async def create(self, data: WorkItemCreate) -> WorkItem:
        args = ["create", data.title, "--type", data.type, "--priority", str(data.priority)]
        if data.description:
            args += ["--description", data.description]
        if data.labels:
            args += ["--labels", ",".join(data.labels)]

        payload = await self._run_json("create", args)
        item = WorkItem.model_validate(self._first(payload, "create"))

        if data.parent_id is not None:
            await self.add_dependency(item.id, data.parent_id, DependencyType.PARENT)
            item = item.model_copy(update={"parent_id": data.parent_id})

        return item

    async def add_dependency(
        self,
        item_id: str,
        depends_on_id: str,
        dep_type: DependencyType = DependencyType.BLOCKS,
    ) -> None:
        await self._run("add_dependency", ["dep", "add", item_id, depends_on_id, "--type", dep_type.value])

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_json(self, operation: str, args: list[str], cwd: str | None = None) -> Any:
        stdout = await self._run(operation, [*args, "--json"], cwd=cwd)
        try:
            return json.loads(stdout) if stdout.strip() else []
        except json.JSONDecodeError as e:
            raise TrackerError(operation, f"invalid JSON from bd: {e}") from e

    async def _run(self, operation: str, args: list[str], cwd: str | None = None) -> str:
        """Run a bd command and return its stdout.

        Raises:
            TrackerError: On non-zero exit, timeout, or a missing executable.
        """
        cmd = [self.config.command, *args]
        workdir = cwd or str(self.config.project_path)

        self._logger.debug("running_tracker_command", command=" ".join(cmd), cwd=workdir)

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=workdir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise TrackerError(operation, f"{self.config.command} not found") from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(), timeout=self.config.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            self._logger.error(
                "tracker_command_timeout",
                command=" ".join(cmd),
                timeout=self.config.timeout_seconds,
            )
            raise TrackerError(operation, f"timed out after {self.config.timeout_seconds}s") from e
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            self._logger.debug("tracker_command_cancelled", command=" ".join(cmd))
            raise

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")

        if proc.returncode != 0:
            self._logger.warning(
                "tracker_command_failed",
                command=" ".join(cmd),
                returncode=proc.returncode,
                stderr=stderr[:500],
            )
            raise TrackerError(operation, stderr.strip() or f"exit code {proc.returncode}", proc.returncode)

        return stdout

    @staticmethod
    def _as_list(payload: Any) -> list[dict[str, Any]]:
        if payload is None:
            return []
        if isinstance(payload, list):
            return payload
        return [payload]

    @classmethod
    def _first(cls, payload: Any, operation: str) -> dict[str, Any]:
        # bd prints a single object for some commands and a one-element list for others
        items = cls._as_list(payload)
        if not items:
            raise TrackerError(operation, "bd returned no work item")
        return items[0]

    @staticmethod
    def _is_not_initialised(message: str) -> bool:
        lowered = message.lower()
        return any(marker in lowered for marker in _NOT_INITIALISED_MARKERS)
