"""
Prometheus metrics collection.
"""

from prometheus_client import (
    Counter,
    Histogram,
    CollectorRegistry,
    start_http_server,
    REGISTRY,
)

from quorumlock.constants import (
    METRIC_LOCK_ATTEMPTS,
    METRIC_LOCK_ACQUIRE_DURATION,
    METRIC_LOCK_RELEASES,
    METRIC_LOCK_REFRESHES,
    METRIC_STORE_ERRORS,
    METRIC_JOBS_QUEUED,
    METRIC_JOBS_COMPLETED,
    METRIC_JOB_DURATION,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the lock engine.
    
    Collects metrics for:
    - Acquisition attempts and their outcome
    - Acquisition latency
    - Releases and refreshes
    - Per-store failures
    - Overlap-guard job runs
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.
        
        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        # One increment per attempt (a lock() call may make several)
        self.lock_attempts = Counter(
            METRIC_LOCK_ATTEMPTS,
            "Total number of lock acquisition attempts",
            ["outcome"],
            registry=self._registry,
        )

        # Whole lock() call, retries and backoff included
        self.acquire_duration = Histogram(
            METRIC_LOCK_ACQUIRE_DURATION,
            "Lock acquisition duration in seconds",
            ["acquired"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
            registry=self._registry,
        )

        self.lock_releases = Counter(
            METRIC_LOCK_RELEASES,
            "Total number of lock releases",
            registry=self._registry,
        )

        self.lock_refreshes = Counter(
            METRIC_LOCK_REFRESHES,
            "Total number of lock refreshes",
            ["success"],
            registry=self._registry,
        )

        self.store_errors = Counter(
            METRIC_STORE_ERRORS,
            "Total number of failed store calls",
            ["store", "operation"],
            registry=self._registry,
        )

        self.jobs_queued = Counter(
            METRIC_JOBS_QUEUED,
            "Total number of overlap-guard enqueue attempts",
            ["job_type", "accepted"],
            registry=self._registry,
        )

        self.jobs_completed = Counter(
            METRIC_JOBS_COMPLETED,
            "Total number of overlap-guard job runs",
            ["job_type", "status"],
            registry=self._registry,
        )

        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Overlap-guard job execution duration in seconds",
            ["job_type", "status"],
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=self._registry,
        )

    def record_attempt(self, outcome: str) -> None:
        """Record one acquisition attempt."""
        self.lock_attempts.labels(outcome=outcome).inc()

    def record_acquire(self, acquired: bool, duration_seconds: float) -> None:
        """Record a finished lock() call."""
        self.acquire_duration.labels(acquired=str(acquired).lower()).observe(
            duration_seconds
        )

    def record_release(self) -> None:
        """Record a release."""
        self.lock_releases.inc()

    def record_refresh(self, success: bool) -> None:
        """Record a refresh."""
        self.lock_refreshes.labels(success=str(success).lower()).inc()

    def record_store_error(self, store: str, operation: str) -> None:
        """Record a failed store call."""
        self.store_errors.labels(store=store, operation=operation).inc()

    def record_job_queued(self, job_type: str, accepted: bool) -> None:
        """Record an enqueue attempt."""
        self.jobs_queued.labels(job_type=job_type, accepted=str(accepted).lower()).inc()

    def record_job_completed(
        self,
        job_type: str,
        status: str,
        duration_seconds: float,
    ) -> None:
        """Record a job run."""
        self.jobs_completed.labels(job_type=job_type, status=status).inc()
        self.job_duration.labels(job_type=job_type, status=status).observe(
            duration_seconds
        )


def setup_metrics(port: int | None = None) -> MetricsCollector:
    """
    Set up and return the metrics collector.
    
    Args:
        port: If given, expose the registry over HTTP on this port.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    if port is not None:
        start_http_server(port)
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance.
    
    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
