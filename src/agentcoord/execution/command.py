"""Subprocess-based execution backend and local session factory.

``CommandExecutionBackend`` starts the configured command once per
assignment, writes the prompt to its stdin and treats exit code 0 as
success. The forced agent type and session id are passed through the
environment so wrapper scripts can pick a system prompt.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from pathlib import Path

import structlog

from agentcoord.config import ExecutionConfig
from agentcoord.errors import ExecutionError
from agentcoord.execution.base import ExecutionResult, SessionHandle

logger = structlog.get_logger(__name__)

AGENT_TYPE_ENV = "AGENTCOORD_AGENT_TYPE"
SESSION_ID_ENV = "AGENTCOORD_SESSION_ID"


class LocalSessionFactory:
    """Issues opaque session ids without contacting any service."""

    def __init__(self, default_working_dir: Path | None = None) -> None:
        self.default_working_dir = default_working_dir
        self._logger = logger.bind(component="LocalSessionFactory")

    async def create_session(self, label: str, working_dir: Path | None = None) -> SessionHandle:
        session = SessionHandle(
            id=f"session-{uuid.uuid4().hex[:12]}",
            label=label,
            working_dir=working_dir or self.default_working_dir,
        )
        self._logger.debug("session_created", session_id=session.id, label=label)
        return session


class CommandExecutionBackend:
    """Execution backend that runs an external command per assignment.

    Attributes:
        config: Execution configuration (command line, working dir, timeout).
    """

    def __init__(self, config: ExecutionConfig) -> None:
        self.config = config
        self._logger = logger.bind(component="CommandExecutionBackend")

    async def execute(
        self,
        prompt: str,
        *,
        force_agent_type: str,
        session_id: str,
        working_dir: Path | None = None,
    ) -> ExecutionResult:
        """Run the command and wait for it to exit.

        Args:
            prompt: Prompt written to the process stdin.
            force_agent_type: Agent profile the process must act as.
            session_id: Session the execution belongs to.
            working_dir: Overrides the configured working directory.

        Returns:
            ExecutionResult with ``success`` set from the exit code.

        Raises:
            ExecutionError: If the command cannot be started or times out.
        """
        cwd = working_dir or self.config.working_dir
        env = {
            **os.environ,
            AGENT_TYPE_ENV: force_agent_type,
            SESSION_ID_ENV: session_id,
        }

        self._logger.info(
            "execution_starting",
            session_id=session_id,
            agent_type=force_agent_type,
            command=" ".join(self.config.command),
        )

        try:
            proc = await asyncio.create_subprocess_exec(
                *self.config.command,
                cwd=str(cwd) if cwd is not None else None,
                env=env,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise ExecutionError(f"Cannot start {self.config.command[0]}: {e}") from e

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(
                proc.communicate(prompt.encode("utf-8")),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise ExecutionError(
                f"Execution timed out after {self.config.timeout_seconds}s"
            ) from e
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")

        if proc.returncode == 0:
            self._logger.info("execution_succeeded", session_id=session_id)
            return ExecutionResult(success=True, output=stdout)

        self._logger.warning(
            "execution_failed",
            session_id=session_id,
            returncode=proc.returncode,
            stderr=stderr[:500],
        )
        return ExecutionResult(
            success=False,
            output=stdout,
            error=stderr.strip() or f"exit code {proc.returncode}",
        )
