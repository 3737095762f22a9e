"""Coordinator control CLI commands.

This module provides the command that runs the coordinator until it is
interrupted.
"""

from __future__ import annotations

import asyncio
import signal
from collections import deque
from collections.abc import Iterable
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from agentcoord.execution import CommandExecutionBackend, LocalSessionFactory
from agentcoord.orchestrator.coordinator import AgentCoordinator
from agentcoord.orchestrator.dispatcher import CompletionRecord

console = Console()

RECENT_OUTCOMES = 5


def run(
    scope: Annotated[
        Optional[str],
        typer.Option("--scope", "-s", help="Project scope passed to the tracker"),
    ] = None,
) -> None:
    """Run the coordinator.

    Pulls ready work items from the tracker on every coordination interval,
    assigns them to agent profiles and runs them through the configured
    execution command until interrupted with Ctrl+C.

    Args:
        scope: Optional project scope for the tracker's ready list
    """
    from agentcoord.main import get_app_context

    ctx = get_app_context()
    settings = ctx.config.coordinator
    working_dir = ctx.config.execution.working_dir or ctx.config.tracker.project_path

    console.print()
    console.print(
        Panel(
            f"[bold cyan]agentcoord Coordinator[/bold cyan]\n\n"
            f"[bold]Project:[/bold] {ctx.config.tracker.project_path}\n"
            f"[bold]Scope:[/bold] {scope or '-'}\n"
            f"[bold]Max Agents:[/bold] {settings.max_concurrent_agents}\n"
            f"[bold]Interval:[/bold] {settings.coordination_interval_seconds} seconds",
            title="Starting Coordinator",
            border_style="cyan",
        )
    )
    console.print()

    coordinator = AgentCoordinator(
        tracker=ctx.tracker,
        session_factory=LocalSessionFactory(working_dir),
        backend=CommandExecutionBackend(ctx.config.execution),
        profiles=ctx.profiles,
        config=settings,
        working_dir=working_dir,
    )

    shutdown_event = asyncio.Event()

    def signal_handler(sig, frame):
        console.print()
        console.print("[yellow]Shutdown signal received. Stopping coordinator...[/yellow]")
        shutdown_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    async def run_coordinator():
        try:
            await coordinator.start(scope)

            console.print("[bold green]Coordinator running[/bold green]")
            console.print("[dim]Press Ctrl+C to stop[/dim]")
            console.print()

            recent: deque[CompletionRecord] = deque(maxlen=RECENT_OUTCOMES)
            with Live(generate_status_table(coordinator), refresh_per_second=1) as live:
                while not shutdown_event.is_set():
                    await asyncio.sleep(0.5)
                    recent.extend(coordinator.drain_completions())
                    live.update(generate_status_table(coordinator, recent))

        except Exception as e:
            console.print(f"[red]Coordinator error:[/red] {e}")
            raise
        finally:
            await coordinator.stop()
            console.print()
            console.print("[green]Coordinator stopped[/green]")

    try:
        asyncio.run(run_coordinator())
    except Exception as e:
        console.print(f"[red]Fatal error:[/red] {e}")
        raise typer.Exit(code=1)


def generate_status_table(
    coordinator: AgentCoordinator,
    recent: Iterable[CompletionRecord] = (),
) -> Table:
    """Generate a status table for the coordinator.

    Args:
        coordinator: Coordinator instance to get status from
        recent: Latest completion records, oldest first

    Returns:
        Rich Table with current coordinator status
    """
    stats = coordinator.get_stats()

    table = Table(title="Coordinator Status", show_header=False)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value")

    status_text = "[green]Running[/green]" if stats.running else "[dim]Stopped[/dim]"
    table.add_row("Status", status_text)
    table.add_row("Active Agents", str(stats.active_agents))
    table.add_row("Locked Issues", str(stats.locked_issues))

    by_type = ", ".join(f"{t}={n}" for t, n in sorted(stats.active_by_type.items()))
    table.add_row("By Type", by_type or "-")

    table.add_row("Assignments", str(stats.total_assignments))
    table.add_row("Helpers Spawned", str(stats.total_helpers_spawned))
    table.add_row("Completed", str(stats.total_completed))
    table.add_row("Failed", str(stats.total_failed))
    table.add_row("Reclaimed", str(stats.total_reclaimed))

    last = stats.last_coordination_time
    table.add_row("Last Cycle", last.strftime("%H:%M:%S") if last else "-")

    for record in reversed(list(recent)):
        if record.success:
            mark = "[green]ok[/green]"
        else:
            mark = f"[red]failed[/red] {escape(record.error or '')}"
        table.add_row(
            record.work_item_id,
            f"{record.agent_type} {mark} ({record.duration_seconds:.0f}s)",
        )

    return table
