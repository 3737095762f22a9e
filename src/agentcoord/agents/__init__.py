"""Agent profile definitions and statistics."""

from __future__ import annotations

from agentcoord.agents.profiles import (
    DEFAULT_PROFILES,
    AgentProfile,
    AgentStats,
    AgentType,
    Capability,
    ProfileRegistry,
)

__all__ = [
    "DEFAULT_PROFILES",
    "AgentProfile",
    "AgentStats",
    "AgentType",
    "Capability",
    "ProfileRegistry",
]
