"""Structured logging for agentcoord.

All modules emit through structlog; stdlib logging only supplies the
handler (stdout or a size-rotated file). Two pieces of context ride along
with every line:

- a correlation id, set per coordination cycle so one cycle's lines can be
  grepped together;
- assignment identifiers (work item, session, agent type), bound inside
  each execution task.

Example:
    >>> from agentcoord.config import LoggingConfig
    >>> from agentcoord.logging import setup_logging, get_logger, bind_assignment_context
    >>> setup_logging(LoggingConfig(level="INFO", format="console"))
    >>> log = get_logger(__name__)
    >>> bind_assignment_context(work_item_id="bd-12", session_id="session-ab12")
    >>> log.info("assignment_started", agent_type="debug")
"""

from __future__ import annotations

import contextvars
import logging
import logging.handlers
import sys
from typing import Any

import structlog

from agentcoord.config import LoggingConfig

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "agentcoord_correlation_id", default=None
)

_BYTES_PER_MB = 1024 * 1024


def add_correlation_id(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor copying the current correlation id into the event.

    Events logged while no correlation id is set are passed through as-is.
    """
    current = _correlation_id.get()
    if current is not None:
        event_dict["correlation_id"] = current
    return event_dict


def set_correlation_id(correlation_id: str | None) -> None:
    """Set (or clear, with None) the correlation id of the current context."""
    _correlation_id.set(correlation_id)


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def bind_assignment_context(
    work_item_id: str,
    session_id: str,
    agent_type: str | None = None,
) -> None:
    """Bind assignment identifiers to all subsequent logs in this context.

    Execution tasks run in their own copy of the context, so binding here
    from inside an assignment's task does not leak into the coordinator.

    Args:
        work_item_id: Work item the assignment is working
        session_id: Execution session identifier
        agent_type: Agent profile type, if known
    """
    values: dict[str, Any] = {"work_item_id": work_item_id, "session_id": session_id}
    if agent_type is not None:
        values["agent_type"] = agent_type
    structlog.contextvars.bind_contextvars(**values)


def _make_handler(config: LoggingConfig) -> logging.Handler:
    if config.file is None:
        return logging.StreamHandler(sys.stdout)

    config.file.parent.mkdir(parents=True, exist_ok=True)
    return logging.handlers.RotatingFileHandler(
        filename=config.file,
        maxBytes=config.rotation_size_mb * _BYTES_PER_MB,
        backupCount=config.retention_count,
        encoding="utf-8",
    )


def setup_logging(config: LoggingConfig) -> None:
    """Install the handler and structlog pipeline described by ``config``.

    Replaces any handlers already on the root logger, so calling it again
    (for example after ``--verbose`` raises the level) is safe.

    Args:
        config: Logging section of AgentcoordConfig
    """
    level = logging.getLevelName(config.level)

    handler = _make_handler(config)
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    renderer: Any
    if config.format == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_correlation_id,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named ``name`` (usually ``__name__``)."""
    return structlog.get_logger(name)
