"""
Lock-related type definitions.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Lock:
    """
    Handle returned by a successful acquisition.

    Owned by the caller that acquired it and passed back to unlock/refresh.
    The validity window is computed once at acquisition time; the engine does
    not track expiry, so callers must finish (or refresh) before it elapses.
    """

    resource: str
    token: str = field(repr=False)
    ttl_ms: int
    validity_ms: float
    acquired_at: float = 0.0  # clock reading (seconds) when the attempt finished

    @property
    def expires_at(self) -> float:
        """Clock reading (seconds) after which the lock must be assumed lost."""
        return self.acquired_at + self.validity_ms / 1000.0

    def remaining_ms(self, now: float) -> float:
        """Validity left at clock reading ``now``, never negative."""
        return max(0.0, (self.expires_at - now) * 1000.0)

    def is_valid(self, now: float) -> bool:
        """Check whether the advisory validity window is still open."""
        return self.remaining_ms(now) > 0
