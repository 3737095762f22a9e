"""Agent profile CLI commands.

This module provides CLI commands for listing agent profiles and scoring
them against a work item.
"""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from agentcoord.errors import TrackerError
from agentcoord.orchestrator.scorer import ASSIGNMENT_THRESHOLD, score_all

console = Console()


def agents() -> None:
    """List registered agent profiles and their statistics."""
    from agentcoord.main import get_app_context

    ctx = get_app_context()

    table = Table(title=f"Agent Profiles ({len(ctx.profiles.all())})")
    table.add_column("Type", style="cyan")
    table.add_column("Name")
    table.add_column("Priority", justify="right")
    table.add_column("Auto", justify="center")
    table.add_column("Capabilities")
    table.add_column("Runs", justify="right")
    table.add_column("Success", justify="right")

    for profile in ctx.profiles.all():
        stats = ctx.profiles.stats(profile.type)
        usage = stats.usage_count if stats else 0
        rate = f"{stats.success_rate:.0%}" if stats and usage else "-"
        table.add_row(
            profile.type,
            profile.name,
            str(profile.priority_weight),
            "[green]yes[/green]" if profile.auto_selectable else "[dim]no[/dim]",
            ", ".join(c.name for c in profile.capabilities),
            str(usage),
            rate,
        )

    console.print(table)


def score(
    item_id: Annotated[str, typer.Argument(help="Work item id to score")],
) -> None:
    """Score every auto-selectable profile against a work item.

    Args:
        item_id: Id of the work item in the tracker
    """
    from agentcoord.main import get_app_context

    ctx = get_app_context()

    try:
        item = asyncio.run(ctx.tracker.get(item_id))
    except TrackerError as e:
        console.print(f"[red]Error fetching work item:[/red] {e}")
        raise typer.Exit(code=1)

    profiles = ctx.profiles.auto_selectable()
    if not profiles:
        console.print("[red]No auto-selectable agent profiles are registered[/red]")
        raise typer.Exit(code=1)

    results = score_all(profiles, item, {}, ctx.config.coordinator.max_concurrent_agents)
    best = max(results, key=lambda r: r.score)

    table = Table(title=f"Scores for {item.id}: {item.title}")
    table.add_column("Agent", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Capability", justify="right")
    table.add_column("Success Rate", justify="right")
    table.add_column("Availability", justify="right")

    for result in results:
        marker = " *" if result is best and best.score >= ASSIGNMENT_THRESHOLD else ""
        table.add_row(
            f"{result.agent_type}{marker}",
            f"{result.score:.3f}",
            f"{result.capability_match:.2f}",
            f"{result.success_rate:.2f}",
            f"{result.availability:.2f}",
        )

    console.print(table)
    if best.score >= ASSIGNMENT_THRESHOLD:
        console.print(f"[green]Selected:[/green] {best.agent_type}")
    else:
        console.print(
            f"[yellow]No profile reaches the threshold of {ASSIGNMENT_THRESHOLD}[/yellow]"
        )
