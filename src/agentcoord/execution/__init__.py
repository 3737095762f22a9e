"""Execution backend contracts and the subprocess implementation."""

from __future__ import annotations

from agentcoord.execution.base import (
    ExecutionBackend,
    ExecutionResult,
    SessionFactory,
    SessionHandle,
)
from agentcoord.execution.command import CommandExecutionBackend, LocalSessionFactory

__all__ = [
    "CommandExecutionBackend",
    "ExecutionBackend",
    "ExecutionResult",
    "LocalSessionFactory",
    "SessionFactory",
    "SessionHandle",
]
