"""
Exception hierarchy for the lock engine and the overlap-guard protocol.

Failing to obtain a lock is an expected outcome and is reported with a return
value by the engine. These exceptions cover the cases where continuing would
be unsafe or where the caller asked for an exception explicitly.
"""


class QuorumLockError(Exception):
    """Base class for all lock errors."""


class LockAcquisitionError(QuorumLockError):
    """Quorum not reached (or validity used up) after all retries."""

    def __init__(self, resource: str, attempts: int):
        self.resource = resource
        self.attempts = attempts
        super().__init__(
            f"Could not acquire lock on {resource!r} after {attempts} attempts"
        )


class LockRefreshError(QuorumLockError):
    """A held lock was released and could not be re-acquired."""

    def __init__(self, resource: str, message: str | None = None):
        self.resource = resource
        super().__init__(message or f"Lost lock on {resource!r} during refresh")


class OverlapRefreshError(LockRefreshError):
    """An overlap-guard job could not take ownership of its resource for a run."""

    def __init__(self, resource: str):
        super().__init__(
            resource,
            f"Could not take ownership of {resource!r}; job run skipped",
        )


class StoreError(QuorumLockError):
    """A single lock store failed to answer."""

    def __init__(self, store: str, operation: str, cause: Exception):
        self.store = store
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed on {store}: {cause}")
