"""
Refresh capability handed to work running under QuorumLockManager.run_locked.
"""

import logging
from typing import TYPE_CHECKING

from quorumlock.exceptions import LockRefreshError
from quorumlock.types.lock import Lock

if TYPE_CHECKING:
    from quorumlock.lock_manager import QuorumLockManager

logger = logging.getLogger(__name__)


class LockRefresher:
    """
    Extends the lock held by one run_locked call.

    Tracks the current Lock so that every refresh replaces the handle used by
    the next refresh and by the final release. Not safe to call from several
    tasks at once; it belongs to the single unit of work it was given to.
    """

    def __init__(self, manager: "QuorumLockManager", lock: Lock):
        self._manager = manager
        self._lock: Lock | None = lock
        self.resource = lock.resource
        self.refreshes = 0
        self.lost = False

    @property
    def current(self) -> Lock | None:
        """The lock held right now, or None once it has been lost."""
        return self._lock

    async def attempt_refresh(self) -> bool:
        """
        Release the current lock and acquire a new one.

        Returns:
            True once the new lock is held.

        Raises:
            LockRefreshError: If the lock could not be re-acquired (or was
                already lost). Nothing is held afterwards; let it propagate so
                the enclosing run_locked aborts the work.
        """
        if self._lock is None:
            raise LockRefreshError(self.resource)

        new_lock = await self._manager.refresh_lock(self._lock)
        if new_lock is None:
            self._lock = None
            self.lost = True
            raise LockRefreshError(self.resource)

        self._lock = new_lock
        self.refreshes += 1
        logger.debug(
            "Lock refreshed",
            extra={"resource": self.resource, "refreshes": self.refreshes},
        )
        return True

    async def __call__(self) -> bool:
        return await self.attempt_refresh()

    def detach(self) -> Lock | None:
        """Hand over the current lock for release; later refreshes will fail."""
        lock, self._lock = self._lock, None
        return lock
