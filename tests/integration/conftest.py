"""Pytest fixtures for CLI integration tests.

The CLI is exercised end to end through Typer's CliRunner. The ``bd``
tracker is swapped for an in-memory tracker so that no external
executable is required.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pytest
import structlog
from typer.testing import CliRunner

from agentcoord.tracker.base import WorkItem
from agentcoord.tracker.memory import InMemoryTracker


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers bound to the runner's captured stdout after each test."""
    yield
    logging.getLogger().handlers.clear()
    structlog.reset_defaults()


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI runner."""
    return CliRunner()


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Run the CLI from an empty directory with an empty HOME.

    Keeps load_config from picking up configuration files on the host.
    """
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def memory_tracker(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> InMemoryTracker:
    """In-memory tracker installed in place of the bd adapter."""
    tracker = InMemoryTracker(
        [
            WorkItem(
                id="bd-1",
                title="Fix crash when saving drafts",
                description="Stack trace shows a null session",
                type="bug",
                priority=1,
                labels=["editor"],
            ),
        ]
    )
    monkeypatch.setattr("agentcoord.main.BeadsCliTracker", lambda config: tracker)
    return tracker
