"""
Type definitions for the lock engine.
"""

from quorumlock.types.lock import Lock

__all__ = [
    "Lock",
]
