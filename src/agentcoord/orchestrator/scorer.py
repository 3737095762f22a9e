"""Agent scoring for work item assignment.

Each auto-selectable profile is scored against a work item on three
factors, combined with fixed weights:

- capability match: fraction of the profile's capabilities whose name or
  tool names occur in the work item text,
- success rate: the profile's historical success rate,
- availability: headroom the profile type has under the global
  concurrency ceiling.

The best profile is assigned only if its weighted score reaches
``ASSIGNMENT_THRESHOLD``. Everything here is pure: identical inputs give
identical results.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from pydantic import BaseModel, ConfigDict

from agentcoord.agents.profiles import AgentProfile
from agentcoord.errors import NoAutoSelectableProfilesError
from agentcoord.tracker.base import WorkItem

CAPABILITY_WEIGHT = 0.4
SUCCESS_RATE_WEIGHT = 0.4
AVAILABILITY_WEIGHT = 0.2

# Minimum weighted score for a profile to be assigned
ASSIGNMENT_THRESHOLD = 0.5

# Capability match for a profile that declares no capabilities
NEUTRAL_CAPABILITY_MATCH = 0.5

# Floor for profiles with no textual match: FALLBACK_BASE + priority_weight * FALLBACK_PER_PRIORITY
FALLBACK_BASE = 0.1
FALLBACK_PER_PRIORITY = 0.04

DEFAULT_SUCCESS_RATE = 1.0


class ScoreResult(BaseModel):
    """Score of one agent profile against one work item.

    Attributes:
        agent_type: Profile that was scored.
        score: Weighted score.
        capability_match: Capability factor in [0, 1] (fallback may differ).
        success_rate: Success rate factor in [0, 1].
        availability: Availability factor in [0, 1].
    """

    model_config = ConfigDict(frozen=True)

    agent_type: str
    score: float
    capability_match: float
    success_rate: float
    availability: float


def build_haystack(item: WorkItem) -> str:
    """Lowercased text a work item is matched on."""
    return " ".join([item.title, item.description or "", item.type, *item.labels]).lower()


def capability_match(profile: AgentProfile, item: WorkItem) -> float:
    """Fraction of the profile's capabilities that textually match the item.

    A capability matches when its name, or any of its tool names, is a
    substring of the item's title, description, type and labels. A profile
    without capabilities gets ``NEUTRAL_CAPABILITY_MATCH``. When nothing
    matches, the result falls back to a floor proportional to the profile's
    priority weight so that no profile scores zero.
    """
    if not profile.capabilities:
        return NEUTRAL_CAPABILITY_MATCH

    haystack = build_haystack(item)
    matches = 0
    for capability in profile.capabilities:
        if capability.name.lower() in haystack:
            matches += 1
        elif any(tool.lower() in haystack for tool in capability.tools):
            matches += 1

    ratio = matches / len(profile.capabilities)
    if ratio == 0:
        return FALLBACK_BASE + profile.priority_weight * FALLBACK_PER_PRIORITY
    return ratio


def availability(active_count: int, max_concurrent: int) -> float:
    """Headroom of a profile type under the concurrency ceiling, in [0, 1]."""
    if max_concurrent <= 0:
        return 0.0
    return min(1.0, max(0.0, 1 - active_count / max_concurrent))


def score(
    profile: AgentProfile,
    item: WorkItem,
    active_count: int,
    max_concurrent: int,
) -> ScoreResult:
    """Score a profile for a work item.

    Args:
        profile: Profile to score.
        item: Candidate work item.
        active_count: Running assignments of this profile type.
        max_concurrent: Global concurrency ceiling.

    Returns:
        ScoreResult with the weighted score and its three factors.
    """
    match = capability_match(profile, item)
    rate = profile.success_rate if profile.success_rate is not None else DEFAULT_SUCCESS_RATE
    avail = availability(active_count, max_concurrent)

    weighted = (
        match * CAPABILITY_WEIGHT
        + rate * SUCCESS_RATE_WEIGHT
        + avail * AVAILABILITY_WEIGHT
    )

    return ScoreResult(
        agent_type=profile.type,
        score=weighted,
        capability_match=match,
        success_rate=rate,
        availability=avail,
    )


def score_all(
    profiles: Sequence[AgentProfile],
    item: WorkItem,
    active_counts: Mapping[str, int],
    max_concurrent: int,
) -> list[ScoreResult]:
    """Score every profile, preserving input order."""
    return [
        score(profile, item, active_counts.get(profile.type, 0), max_concurrent)
        for profile in profiles
    ]


def select_agent(
    profiles: Sequence[AgentProfile],
    item: WorkItem,
    active_counts: Mapping[str, int],
    max_concurrent: int,
    threshold: float = ASSIGNMENT_THRESHOLD,
) -> ScoreResult | None:
    """Pick the best profile for a work item, if any clears the threshold.

    Ties go to the profile that comes first in ``profiles``.

    Returns:
        The winning ScoreResult, or None when the best score is below
        ``threshold``.

    Raises:
        NoAutoSelectableProfilesError: If ``profiles`` is empty.
    """
    if not profiles:
        raise NoAutoSelectableProfilesError()

    results = score_all(profiles, item, active_counts, max_concurrent)
    best = max(results, key=lambda r: r.score)
    if best.score < threshold:
        return None
    return best
