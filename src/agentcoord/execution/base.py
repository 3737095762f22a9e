"""Contracts for the execution backend and session factory.

The coordinator does not run work itself. For every dispatch it asks a
``SessionFactory`` for an execution unit id, then hands a prompt and an
agent type hint to an ``ExecutionBackend`` and stops caring until the
backend's coroutine finishes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field


class ExecutionResult(BaseModel):
    """Outcome reported by an execution backend.

    Attributes:
        success: Whether the work item was completed.
        output: Captured output, if any.
        error: Failure description when ``success`` is False.
    """

    success: bool
    output: str = ""
    error: str | None = None


class SessionHandle(BaseModel):
    """Identity of one execution unit.

    Attributes:
        id: Opaque session identifier used as the lock owner token.
        label: Human readable label (``"Agent: <title>"``).
        working_dir: Directory the execution runs in.
        created_at: UTC creation time.
    """

    id: str
    label: str
    working_dir: Path | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


@runtime_checkable
class SessionFactory(Protocol):
    """Creates execution sessions, one per dispatch."""

    async def create_session(self, label: str, working_dir: Path | None = None) -> SessionHandle:
        ...


@runtime_checkable
class ExecutionBackend(Protocol):
    """Runs a prompt with a given agent profile.

    Implementations either return an ``ExecutionResult`` or raise; both
    paths are handled by the dispatcher's completion logic.
    """

    async def execute(
        self,
        prompt: str,
        *,
        force_agent_type: str,
        session_id: str,
        working_dir: Path | None = None,
    ) -> ExecutionResult:
        ...
