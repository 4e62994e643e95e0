"""
Lock store contract.

One store per independent key-value endpoint. Both operations must be atomic
on the server side.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class LockStore(Protocol):
    """Minimal store interface consumed by the quorum lock engine."""

    name: str

    async def try_set(self, key: str, value: str, ttl_ms: int) -> bool:
        """Set ``key`` to ``value`` with a TTL only if it does not exist."""
        ...

    async def compare_delete(self, key: str, value: str) -> bool:
        """Delete ``key`` only if it currently holds ``value``."""
        ...

    async def close(self) -> None:
        """Release connections held by the store."""
        ...
