"""In-memory issue lock table.

The lock table is the one guard against assigning the same work item
twice. A work item is locked with the ``ASSIGNING`` sentinel while a
dispatch is in progress, then handed to the session that runs it, and
released when that session finishes, fails or is reclaimed.

All mutations go through a ``threading.Lock`` and never suspend while it
is held, so a timer-driven cycle, a work-ready cycle and a helper spawn
coming from another thread all see one consistent check-and-set.

Example:
    >>> locks = IssueLockTable()
    >>> locks.try_lock("bd-1")
    True
    >>> locks.try_lock("bd-1")
    False
    >>> locks.set_owner("bd-1", "session-ab12")
    >>> locks.release("bd-1")
    True
"""

from __future__ import annotations

import threading

import structlog

logger = structlog.get_logger(__name__)

# Owner value held while the decision to assign has been made but dispatch
# has not yet produced a session id
ASSIGNING = "assigning"


class IssueLockTable:
    """Maps work item ids to the token of whoever holds them."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}
        self._mutex = threading.Lock()
        self._logger = logger.bind(component="IssueLockTable")

    def try_lock(self, item_id: str) -> bool:
        """Lock a work item if nobody holds it.

        Returns:
            True if the lock was taken, False if it was already held.
        """
        with self._mutex:
            if item_id in self._entries:
                return False
            self._entries[item_id] = ASSIGNING

        self._logger.debug("issue_locked", work_item_id=item_id)
        return True

    def set_owner(self, item_id: str, session_id: str) -> None:
        """Replace the ``ASSIGNING`` sentinel with the owning session id."""
        with self._mutex:
            self._entries[item_id] = session_id

        self._logger.debug("lock_owner_set", work_item_id=item_id, session_id=session_id)

    def release(self, item_id: str, owner: str | None = None) -> bool:
        """Remove a lock.

        Args:
            item_id: Work item to unlock.
            owner: When given, only release if this token currently holds
                the lock. Used by completion paths so a stale session can
                never drop a lock taken by a newer one.

        Returns:
            True if an entry was removed.
        """
        with self._mutex:
            current = self._entries.get(item_id)
            if current is None:
                return False
            if owner is not None and current != owner:
                return False
            del self._entries[item_id]

        self._logger.debug("issue_unlocked", work_item_id=item_id, owner=current)
        return True

    def is_locked(self, item_id: str) -> bool:
        with self._mutex:
            return item_id in self._entries

    def owner(self, item_id: str) -> str | None:
        with self._mutex:
            return self._entries.get(item_id)

    def pending_count(self) -> int:
        """Number of locks still held by the ``ASSIGNING`` sentinel."""
        with self._mutex:
            return sum(1 for value in self._entries.values() if value == ASSIGNING)

    def snapshot(self) -> dict[str, str]:
        """Copy of all current entries."""
        with self._mutex:
            return dict(self._entries)

    def clear(self) -> None:
        with self._mutex:
            self._entries.clear()

    def __len__(self) -> int:
        with self._mutex:
            return len(self._entries)
