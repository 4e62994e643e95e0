"""
In-memory lock store for testing and single-process development.
"""

import time
from collections.abc import Callable


class InMemoryLockStore:
    """
    Lock store backed by a dict of ``key -> (value, expires_at)``.

    Operations never await, so each one is atomic with respect to other
    coroutines on the same event loop.
    """

    def __init__(
        self,
        name: str = "memory",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self.available = True

    def _live(self, key: str) -> tuple[str, float] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._entries[key]
            return None
        return entry

    def _check_available(self) -> None:
        if not self.available:
            raise ConnectionError(f"store {self.name} is unavailable")

    async def try_set(self, key: str, value: str, ttl_ms: int) -> bool:
        self._check_available()
        if self._live(key) is not None:
            return False
        self._entries[key] = (value, self._clock() + ttl_ms / 1000.0)
        return True

    async def compare_delete(self, key: str, value: str) -> bool:
        self._check_available()
        entry = self._live(key)
        if entry is None or entry[0] != value:
            return False
        del self._entries[key]
        return True

    async def close(self) -> None:
        self._entries.clear()

    def get(self, key: str) -> str | None:
        """Current value of ``key``, or None if absent or expired."""
        entry = self._live(key)
        return entry[0] if entry else None

    def __repr__(self) -> str:
        return f"InMemoryLockStore({self.name!r})"
