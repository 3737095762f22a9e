"""Shared fakes for coordinator unit tests."""

from __future__ import annotations

import asyncio
import itertools
from datetime import datetime, timezone
from pathlib import Path

import pytest

from agentcoord.agents.profiles import ProfileRegistry
from agentcoord.config import CoordinatorConfig
from agentcoord.execution.base import ExecutionResult, SessionHandle
from agentcoord.orchestrator.coordinator import AgentCoordinator
from agentcoord.orchestrator.events import EventEmitter
from agentcoord.tracker.memory import InMemoryTracker


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSessionFactory:
    """Issues sequential session ids; can be told to fail."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.fail_with: Exception | None = None
        self.created: list[SessionHandle] = []

    async def create_session(self, label: str, working_dir: Path | None = None) -> SessionHandle:
        if self.fail_with is not None:
            raise self.fail_with
        handle = SessionHandle(
            id=f"session-{next(self._ids)}",
            label=label,
            working_dir=working_dir,
            created_at=datetime.now(timezone.utc),
        )
        self.created.append(handle)
        return handle


class ControlledBackend:
    """Execution backend whose runs finish only when the test says so."""

    def __init__(self) -> None:
        self.calls: list[dict] = []
        self._futures: dict[str, asyncio.Future[ExecutionResult]] = {}

    def _future(self, session_id: str) -> asyncio.Future[ExecutionResult]:
        if session_id not in self._futures:
            self._futures[session_id] = asyncio.get_running_loop().create_future()
        return self._futures[session_id]

    async def execute(
        self,
        prompt: str,
        *,
        force_agent_type: str,
        session_id: str,
        working_dir: Path | None = None,
    ) -> ExecutionResult:
        self.calls.append(
            {"prompt": prompt, "agent_type": force_agent_type, "session_id": session_id}
        )
        return await self._future(session_id)

    def succeed(self, session_id: str, output: str = "done") -> None:
        self._future(session_id).set_result(ExecutionResult(success=True, output=output))

    def fail(self, session_id: str, error: str = "agent crashed") -> None:
        self._future(session_id).set_result(ExecutionResult(success=False, error=error))

    def raise_error(self, session_id: str, exc: Exception) -> None:
        self._future(session_id).set_exception(exc)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker() -> InMemoryTracker:
    return InMemoryTracker()


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()


@pytest.fixture
def backend() -> ControlledBackend:
    return ControlledBackend()


@pytest.fixture
def emitter() -> EventEmitter:
    return EventEmitter()


@pytest.fixture
def events(emitter: EventEmitter) -> list:
    """Every event published on the emitter, in order."""
    received: list = []
    emitter.subscribe(received.append)
    return received


@pytest.fixture
def coordinator_config() -> CoordinatorConfig:
    return CoordinatorConfig(
        coordination_interval_seconds=3600,
        max_concurrent_agents=5,
        max_agent_age_seconds=7200,
    )


@pytest.fixture
def coordinator(
    tracker: InMemoryTracker,
    session_factory: FakeSessionFactory,
    backend: ControlledBackend,
    coordinator_config: CoordinatorConfig,
    emitter: EventEmitter,
    clock: FakeClock,
) -> AgentCoordinator:
    return AgentCoordinator(
        tracker=tracker,
        session_factory=session_factory,
        backend=backend,
        profiles=ProfileRegistry(),
        config=coordinator_config,
        emitter=emitter,
        clock=clock,
    )
