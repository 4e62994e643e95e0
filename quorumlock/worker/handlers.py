"""
Registry of recurring overlap-guard jobs.

Registered job classes are constructed with the lock manager alone and
queued by the scheduler on every tick. Their ``run()`` must tolerate being
skipped: a tick is dropped whenever the previous run still holds the key.
"""

import logging
from collections.abc import Callable

from quorumlock.jobs.overlap import OverlapGuardJob

logger = logging.getLogger(__name__)

JobClass = type[OverlapGuardJob]

# Job registry
_jobs: dict[str, JobClass] = {}


def register_job(name: str) -> Callable[[JobClass], JobClass]:
    """
    Decorator to register a recurring job class.

    Args:
        name: Registry name of the job.

    Returns:
        Decorator function.

    Example:
        @register_job("purge_sessions")
        class PurgeSessions(OverlapGuardJob):
            async def run(self) -> None:
                ...
    """
    def decorator(job_class: JobClass) -> JobClass:
        _jobs[name] = job_class
        logger.info(f"Registered recurring job: {name}")
        return job_class
    return decorator


def get_job_class(name: str) -> JobClass | None:
    """Get the job class registered under a name, or None."""
    return _jobs.get(name)


def list_jobs() -> list[str]:
    """List all registered job names."""
    return list(_jobs.keys())


def unregister_job(name: str) -> None:
    """Remove a job from the registry."""
    _jobs.pop(name, None)


# ============================================================================
# Built-in jobs
# ============================================================================


@register_job("heartbeat")
class HeartbeatJob(OverlapGuardJob):
    """
    Logs that the fleet is alive, once per tick across all workers.
    """

    def lock_ttl_ms(self) -> int:
        return 30_000

    async def run(self) -> dict[str, float]:
        now = self.lock_manager.now()
        logger.info("Heartbeat", extra={"stores": len(self.lock_manager.stores)})
        return {"at": now}
