"""Agentcoord - assigns tracker work items to AI agent profiles.

This package provides the coordination engine that scores agent profiles
against ready work items, locks and dispatches them to execution sessions,
reclaims stale assignments and spawns parented helper tasks on request.
"""

__version__ = "0.1.0"
