"""Coordination engine for agentcoord.

This module implements agent scoring, the issue lock table, the assignment
registry and state machine, the dispatcher, the periodic coordination
cycle with helper spawning, and the event channel they publish to.
"""

from __future__ import annotations

from agentcoord.orchestrator.coordinator import (
    AgentCoordinator,
    CoordinatorStats,
    CycleReport,
    HelperSpawnResult,
)
from agentcoord.orchestrator.dispatcher import AssignmentDispatcher, CompletionRecord
from agentcoord.orchestrator.events import (
    AgentAssigned,
    AgentCleaned,
    AgentCompleted,
    AgentFailed,
    AgentStarted,
    CoordinatorEvent,
    EventEmitter,
    HelperCompleted,
    HelperFailed,
    HelperSpawned,
    HelperStarted,
    WorkItemUpdated,
    WorkReady,
)
from agentcoord.orchestrator.locks import ASSIGNING, IssueLockTable
from agentcoord.orchestrator.prompts import build_agent_prompt
from agentcoord.orchestrator.registry import Assignment, AssignmentRegistry
from agentcoord.orchestrator.scorer import ASSIGNMENT_THRESHOLD, ScoreResult, score, select_agent
from agentcoord.orchestrator.state_machine import (
    VALID_TRANSITIONS,
    AssignmentLifecycle,
    DispatchState,
    InvalidTransitionError,
    validate_transition,
)

__all__ = [
    # Coordinator
    "AgentCoordinator",
    "CoordinatorStats",
    "CycleReport",
    "HelperSpawnResult",
    # Dispatcher
    "AssignmentDispatcher",
    "CompletionRecord",
    # Events
    "AgentAssigned",
    "AgentCleaned",
    "AgentCompleted",
    "AgentFailed",
    "AgentStarted",
    "CoordinatorEvent",
    "EventEmitter",
    "HelperCompleted",
    "HelperFailed",
    "HelperSpawned",
    "HelperStarted",
    "WorkItemUpdated",
    "WorkReady",
    # Locks and registry
    "ASSIGNING",
    "Assignment",
    "AssignmentRegistry",
    "IssueLockTable",
    # Scoring
    "ASSIGNMENT_THRESHOLD",
    "ScoreResult",
    "score",
    "select_agent",
    # State machine
    "VALID_TRANSITIONS",
    "AssignmentLifecycle",
    "DispatchState",
    "InvalidTransitionError",
    "validate_transition",
    # Prompts
    "build_agent_prompt",
]
