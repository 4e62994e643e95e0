"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class LockOutcome(StrEnum):
    """Result of a single acquisition attempt."""

    ACQUIRED = "acquired"
    NO_QUORUM = "no_quorum"
    EXPIRED = "expired"  # quorum reached but validity window used up


class JobRunState(StrEnum):
    """
    Overlap-guard job states.

    State transitions:
    - IDLE -> QUEUED (dedupe lock acquired, job pushed)
    - IDLE -> REJECTED (another instance holds the resource)
    - QUEUED -> RUNNING (ownership lock acquired)
    - QUEUED -> LOCK_LOST (ownership lock not obtained)
    - RUNNING -> SUCCEEDED (job body returned)
    - RUNNING -> FAILED (job body raised)
    """

    IDLE = "idle"
    QUEUED = "queued"
    REJECTED = "rejected"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    LOCK_LOST = "lock_lost"


# Default values
DEFAULT_LOCK_TTL_MS = 300_000
DEFAULT_RETRY_COUNT = 3
DEFAULT_RETRY_DELAY_MIN_MS = 100
DEFAULT_RETRY_DELAY_MAX_MS = 300
DEFAULT_CLOCK_DRIFT_FACTOR = 0.01
DEFAULT_DRIFT_SLACK_MS = 2
TOKEN_BYTES = 16  # 128 bits

# Atomic compare-and-delete, executed server side
COMPARE_DELETE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

# Metrics names
METRIC_LOCK_ATTEMPTS = "lock_attempts_total"
METRIC_LOCK_ACQUIRE_DURATION = "lock_acquire_duration_seconds"
METRIC_LOCK_RELEASES = "lock_releases_total"
METRIC_LOCK_REFRESHES = "lock_refreshes_total"
METRIC_STORE_ERRORS = "lock_store_errors_total"
METRIC_JOBS_QUEUED = "overlap_jobs_queued_total"
METRIC_JOBS_COMPLETED = "overlap_jobs_completed_total"
METRIC_JOB_DURATION = "overlap_job_duration_seconds"

# Trace span names
SPAN_ACQUIRE_LOCK = "acquire_lock"
SPAN_RELEASE_LOCK = "release_lock"
SPAN_REFRESH_LOCK = "refresh_lock"
SPAN_QUEUE_JOB = "queue_job"
SPAN_EXECUTE_JOB = "execute_job"
