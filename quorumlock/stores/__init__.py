"""
Lock store implementations.
"""

from quorumlock.stores.base import LockStore
from quorumlock.stores.memory import InMemoryLockStore
from quorumlock.stores.redis import RedisLockStore

__all__ = [
    "LockStore",
    "InMemoryLockStore",
    "RedisLockStore",
]
