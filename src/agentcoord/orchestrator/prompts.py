"""Prompt text handed to the execution backend for a work item."""

from __future__ import annotations

from agentcoord.tracker.base import WorkItem


def build_agent_prompt(item: WorkItem) -> str:
    """Build the task assignment prompt for a work item.

    Args:
        item: Work item being assigned.

    Returns:
        Markdown prompt describing the task.
    """
    parts = [
        "## Task Assignment",
        "",
        "You have been assigned to work on the following task:",
        "",
        f"**Title**: {item.title}",
        "",
        "**Description**:",
        item.description or "No description provided.",
        "",
        f"**Priority**: P{item.priority}",
        "",
        f"**Type**: {item.type}",
    ]
    if item.labels:
        parts += ["", f"**Labels**: {', '.join(item.labels)}"]
    if item.parent_id:
        parts += ["", f"**Parent**: {item.parent_id}"]
    parts += [
        "",
        "Please analyze this task and implement a solution following best practices.",
        "",
        "1. Start by understanding the requirements",
        "2. Plan your approach",
        "3. Implement the solution",
        "4. Test your changes",
        "5. Clean up and finalize",
        "",
        "Update the issue status as you progress.",
        "",
    ]
    return "\n".join(parts)
