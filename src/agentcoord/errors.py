"""Exception hierarchy for agentcoord."""

from __future__ import annotations


class CoordinatorError(Exception):
    """Base class for all coordinator errors."""


class NoAutoSelectableProfilesError(CoordinatorError):
    """Raised when a cycle has no auto-selectable agent profiles to score.

    This is a configuration problem, not a runtime condition; callers that
    drive cycles periodically treat it as "skip this cycle".
    """

    def __init__(self) -> None:
        super().__init__("No auto-selectable agent profiles are registered")


class ParentNotFoundError(CoordinatorError):
    """Raised when a helper is requested for a session that is not tracked.

    Attributes:
        parent_session_id: The session id that could not be found.
    """

    def __init__(self, parent_session_id: str) -> None:
        self.parent_session_id = parent_session_id
        super().__init__(f"Parent session {parent_session_id} not found")


class HelperSpawningDisabledError(CoordinatorError):
    """Raised when helper spawning is switched off in configuration."""

    def __init__(self) -> None:
        super().__init__("Helper spawning is disabled")


class HelperDispatchError(CoordinatorError):
    """Raised when a freshly created helper work item could not be dispatched.

    Attributes:
        work_item_id: The helper work item that was created but not started.
    """

    def __init__(self, work_item_id: str, reason: str) -> None:
        self.work_item_id = work_item_id
        super().__init__(f"Helper work item {work_item_id} could not be dispatched: {reason}")


class TrackerError(CoordinatorError):
    """Raised when the external work item tracker rejects or fails a call.

    Attributes:
        operation: Tracker operation that failed (e.g. ``"update_status"``).
        returncode: Process exit code when the tracker is a CLI, if known.
    """

    def __init__(self, operation: str, message: str, returncode: int | None = None) -> None:
        self.operation = operation
        self.returncode = returncode
        super().__init__(f"Tracker {operation} failed: {message}")


class ExecutionError(CoordinatorError):
    """Raised by execution backends when an execution cannot be carried out."""
