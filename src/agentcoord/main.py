"""Main CLI entry point for agentcoord.

This module provides the main Typer application with commands for
inspecting agent profiles, scoring a work item and running the
coordinator.

Usage:
    agentcoord agents
    agentcoord score bd-42
    agentcoord run --scope backend
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console

from agentcoord.agents.profiles import ProfileRegistry
from agentcoord.cli import agents as agents_cli
from agentcoord.cli import coordinator as coordinator_cli
from agentcoord.config import AgentcoordConfig, load_config
from agentcoord.logging import setup_logging
from agentcoord.tracker import BeadsCliTracker, Tracker

app = typer.Typer(
    name="agentcoord",
    help="agentcoord: assign tracker work items to AI agent profiles",
    no_args_is_help=True,
)

app.command(name="agents")(agents_cli.agents)
app.command(name="score")(agents_cli.score)
app.command(name="run")(coordinator_cli.run)

console = Console()


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded agentcoord configuration
        tracker: Tracker adapter for the configured project
        profiles: Agent profile registry
    """

    def __init__(self, config: AgentcoordConfig):
        """Initialize application context.

        Args:
            config: agentcoord configuration
        """
        self.config = config
        self.tracker: Tracker = BeadsCliTracker(config.tracker)
        self.profiles = ProfileRegistry()


# Global context holder
_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Get the shared application context.

    Returns:
        AppContext instance with config and collaborators

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: AgentcoordConfig) -> AppContext:
    """Initialize the global application context.

    Args:
        config: agentcoord configuration

    Returns:
        Initialized AppContext instance
    """
    global _app_context
    _app_context = AppContext(config)
    return _app_context


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure global options and initialize application context.

    Args:
        config_path: Optional path to TOML configuration file
        verbose: Enable debug-level logging
    """
    try:
        config = load_config(config_path)
    except Exception as e:
        console.print(f"[red]Error loading configuration:[/red] {e}")
        raise typer.Exit(code=1)

    logging_config = config.logging
    if verbose:
        logging_config = logging_config.model_copy(update={"level": "DEBUG"})
    setup_logging(logging_config)

    try:
        initialize_context(config)
    except Exception as e:
        console.print(f"[red]Error initializing application:[/red] {e}")
        raise typer.Exit(code=1)

    if verbose:
        console.print("[dim]Debug logging enabled[/dim]")


if __name__ == "__main__":
    app()
