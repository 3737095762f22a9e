"""Agent profiles and the registry that tracks their execution statistics.

An agent profile describes one specialised worker type: what it is good at
(capabilities with associated tool names), how strongly it should be
preferred when nothing matches (``priority_weight``) and whether the
coordination cycle may pick it automatically.

The registry also keeps per-type execution statistics. Each finished
assignment feeds ``record_execution``, and the resulting success rate is
what the scorer reads on later cycles.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger(__name__)

# Exponential moving average factor for success rate and duration
STATS_DECAY = 0.9


class AgentType(str, Enum):
    """Built-in agent profile types.

    Profiles are keyed by the string value, so custom types can be
    registered alongside these.
    """

    PLANNING = "planning"
    IMPLEMENTATION = "implementation"
    TESTING = "testing"
    REVIEW = "review"
    DEBUG = "debug"
    DOCUMENTATION = "documentation"
    REFACTORING = "refactoring"
    GENERIC = "generic"


class Capability(BaseModel):
    """A declared skill of an agent profile.

    Attributes:
        name: Capability name matched against work item text.
        description: Human readable description.
        tools: Tool names that also count as a match.
        confidence: How well the profile performs this capability (0-1).
    """

    name: str
    description: str = ""
    tools: list[str] = Field(default_factory=list)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


class AgentProfile(BaseModel):
    """Static configuration of a worker type.

    Attributes:
        type: Profile type (an ``AgentType`` value or a custom string).
        name: Display name.
        description: What the profile is for.
        capabilities: Ordered capability list.
        priority_weight: Preference used as the scoring fallback (higher wins).
        auto_selectable: Whether the coordination cycle may choose it.
        success_rate: Historical success rate; None when unknown.
    """

    type: str
    name: str = ""
    description: str = ""
    capabilities: list[Capability] = Field(default_factory=list)
    priority_weight: int = Field(default=1, ge=0)
    auto_selectable: bool = True
    success_rate: float | None = Field(default=None, ge=0.0, le=1.0)


@dataclass
class AgentStats:
    """Usage statistics for one profile type.

    Attributes:
        usage_count: Finished executions recorded.
        success_rate: Moving average of outcomes (1.0 = always succeeds).
        avg_duration_seconds: Moving average of execution duration.
        last_used: Wall-clock time of the last recorded execution.
    """

    usage_count: int = 0
    success_rate: float = 1.0
    avg_duration_seconds: float = 0.0
    last_used: float = 0.0


def _cap(name: str, description: str, tools: list[str], confidence: float) -> Capability:
    return Capability(name=name, description=description, tools=tools, confidence=confidence)


DEFAULT_PROFILES: tuple[AgentProfile, ...] = (
    AgentProfile(
        type=AgentType.PLANNING.value,
        name="Planning Agent",
        description="Creates specifications and breaks down features into tasks",
        priority_weight=10,
        capabilities=[
            _cap("create-specification", "Create detailed specifications", ["read", "grep", "glob"], 0.95),
            _cap("breakdown-tasks", "Break down features into tasks", ["read", "grep"], 0.9),
            _cap("identify-dependencies", "Identify task dependencies", ["grep", "read"], 0.85),
            _cap("analyze-requirements", "Analyze requirements", ["read"], 0.9),
        ],
    ),
    AgentProfile(
        type=AgentType.IMPLEMENTATION.value,
        name="Implementation Agent",
        description="Writes code and implements features",
        priority_weight=8,
        capabilities=[
            _cap("write-code", "Write implementation code", ["write", "edit", "read"], 0.95),
            _cap("follow-patterns", "Follow existing code patterns", ["read", "grep"], 0.9),
            _cap("handle-errors", "Implement error handling", ["write", "edit"], 0.85),
            _cap("integrate-api", "Integrate with APIs", ["write", "edit", "read"], 0.85),
        ],
    ),
    AgentProfile(
        type=AgentType.TESTING.value,
        name="Testing Agent",
        description="Writes tests and verifies functionality",
        priority_weight=7,
        capabilities=[
            _cap("write-unit-tests", "Write unit tests", ["write", "edit"], 0.95),
            _cap("write-integration-tests", "Write integration tests", ["write", "edit"], 0.85),
            _cap("mock-dependencies", "Mock test dependencies", ["write", "edit"], 0.9),
            _cap("verify-coverage", "Verify test coverage", ["bash"], 0.8),
        ],
    ),
    AgentProfile(
        type=AgentType.REVIEW.value,
        name="Review Agent",
        description="Reviews code for quality, security, and best practices",
        priority_weight=5,
        capabilities=[
            _cap("review-code", "Review code for quality", ["read", "grep"], 0.9),
            _cap("check-security", "Check for security issues", ["read", "grep"], 0.85),
            _cap("identify-smells", "Identify code smells", ["read"], 0.85),
            _cap("suggest-improvements", "Suggest improvements", ["read"], 0.85),
        ],
    ),
    AgentProfile(
        type=AgentType.DEBUG.value,
        name="Debug Agent",
        description="Diagnoses and fixes bugs",
        priority_weight=9,
        capabilities=[
            _cap("diagnose-bug", "Diagnose bugs", ["read", "grep", "bash"], 0.95),
            _cap("trace-execution", "Trace code execution", ["read"], 0.9),
            _cap("fix-bug", "Fix bugs", ["edit", "write"], 0.95),
            _cap("add-logging", "Add debug logging", ["edit"], 0.9),
        ],
    ),
    AgentProfile(
        type=AgentType.DOCUMENTATION.value,
        name="Documentation Agent",
        description="Writes and updates documentation",
        priority_weight=4,
        capabilities=[
            _cap("write-readme", "Write README files", ["write", "read"], 0.95),
            _cap("document-api", "Document APIs", ["edit", "read"], 0.9),
            _cap("write-examples", "Write usage examples", ["write"], 0.9),
            _cap("create-guides", "Create guides", ["write", "read"], 0.85),
        ],
    ),
    AgentProfile(
        type=AgentType.REFACTORING.value,
        name="Refactoring Agent",
        description="Improves code structure and maintainability",
        priority_weight=6,
        capabilities=[
            _cap("extract-function", "Extract to functions", ["edit", "read"], 0.9),
            _cap("simplify-code", "Simplify complex code", ["edit", "read"], 0.9),
            _cap("remove-duplication", "Remove duplicated code", ["edit", "read", "grep"], 0.9),
            _cap("improve-names", "Improve naming", ["edit"], 0.85),
        ],
    ),
    AgentProfile(
        type=AgentType.GENERIC.value,
        name="Generic Agent",
        description="Handles general-purpose tasks",
        priority_weight=1,
        capabilities=[
            _cap("general-assistance", "General coding assistance", ["read", "write", "edit", "bash"], 0.8),
            _cap("answer-questions", "Answer codebase questions", ["read", "grep", "glob"], 0.85),
            _cap("explore-code", "Explore codebase", ["read", "glob", "grep"], 0.9),
        ],
    ),
)


class ProfileRegistry:
    """Holds agent profiles and their execution statistics.

    Attributes:
        clock: Wall-clock source used for ``last_used`` timestamps.
    """

    def __init__(
        self,
        profiles: list[AgentProfile] | tuple[AgentProfile, ...] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the registry.

        Args:
            profiles: Profiles to register. Defaults to ``DEFAULT_PROFILES``.
            clock: Callable returning the current wall-clock time in seconds.
        """
        self.clock = clock
        self._profiles: dict[str, AgentProfile] = {}
        self._stats: dict[str, AgentStats] = {}
        self._logger = logger.bind(component="ProfileRegistry")

        for profile in DEFAULT_PROFILES if profiles is None else profiles:
            self.register(profile)

    def register(self, profile: AgentProfile) -> None:
        """Add or replace a profile. Replacing a profile resets its stats."""
        self._profiles[profile.type] = profile
        self._stats[profile.type] = self._initial_stats(profile)
        self._logger.debug(
            "profile_registered",
            agent_type=profile.type,
            capabilities=len(profile.capabilities),
            auto_selectable=profile.auto_selectable,
        )

    def get(self, agent_type: str) -> AgentProfile | None:
        """Return the profile for a type with its current success rate."""
        profile = self._profiles.get(agent_type)
        if profile is None:
            return None
        return self._with_stats(profile)

    def all(self) -> list[AgentProfile]:
        return [self._with_stats(p) for p in self._profiles.values()]

    def types(self) -> list[str]:
        return list(self._profiles)

    def auto_selectable(self) -> list[AgentProfile]:
        """Auto-selectable profiles, highest priority weight first.

        The ordering is stable, so among equal weights registration order
        is kept. Scoring ties resolve to the earlier profile in this list.
        """
        profiles = [p for p in self._profiles.values() if p.auto_selectable]
        profiles.sort(key=lambda p: p.priority_weight, reverse=True)
        return [self._with_stats(p) for p in profiles]

    def record_execution(self, agent_type: str, success: bool, duration_seconds: float) -> None:
        """Fold one finished execution into the profile's statistics.

        Args:
            agent_type: Profile type that ran the execution.
            success: Outcome of the execution.
            duration_seconds: How long the execution ran.
        """
        stats = self._stats.get(agent_type)
        if stats is None:
            self._logger.warning("unknown_agent_type", agent_type=agent_type)
            return

        stats.usage_count += 1
        outcome = 1.0 if success else 0.0
        stats.success_rate = stats.success_rate * STATS_DECAY + outcome * (1 - STATS_DECAY)

        if stats.avg_duration_seconds == 0:
            stats.avg_duration_seconds = duration_seconds
        else:
            stats.avg_duration_seconds = (
                stats.avg_duration_seconds * STATS_DECAY
                + duration_seconds * (1 - STATS_DECAY)
            )
        stats.last_used = self.clock()

        self._logger.debug(
            "execution_recorded",
            agent_type=agent_type,
            success=success,
            success_rate=round(stats.success_rate, 4),
            usage_count=stats.usage_count,
        )

    def stats(self, agent_type: str) -> AgentStats | None:
        stats = self._stats.get(agent_type)
        if stats is None:
            return None
        return AgentStats(**vars(stats))

    def reset_stats(self, agent_type: str | None = None) -> None:
        """Reset statistics for one type, or for every type when None."""
        targets = [agent_type] if agent_type is not None else list(self._profiles)
        for target in targets:
            profile = self._profiles.get(target)
            if profile is not None:
                self._stats[target] = self._initial_stats(profile)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _initial_stats(profile: AgentProfile) -> AgentStats:
        initial_rate = profile.success_rate if profile.success_rate is not None else 1.0
        return AgentStats(success_rate=initial_rate)

    def _with_stats(self, profile: AgentProfile) -> AgentProfile:
        stats = self._stats[profile.type]
        if stats.usage_count == 0:
            return profile
        return profile.model_copy(update={"success_rate": stats.success_rate})
