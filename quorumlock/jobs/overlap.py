"""
Overlap-guard job protocol.

A recurring job is locked twice on the same resource key: briefly when it is
queued, so two producers cannot queue it at the same time, and for the whole
run when a worker executes it, so two runs never overlap. Because both phases
share the key, a producer also sees a run in progress and backs off.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from quorumlock.constants import (
    SPAN_EXECUTE_JOB,
    SPAN_QUEUE_JOB,
    JobRunState,
)
from quorumlock.exceptions import OverlapRefreshError
from quorumlock.jobs.dispatcher import Dispatcher
from quorumlock.lock_manager import QuorumLockManager
from quorumlock.observability.tracing import create_span

logger = logging.getLogger(__name__)


class OverlapGuardJob(ABC):
    """
    Base class for jobs that must never be queued or run concurrently.

    Subclasses implement ``run()`` and may override ``lock_resource_suffix()``
    to scope the exclusion to one instance (for example one account), and
    ``lock_ttl_ms()`` to match how long a run can take.

    Example:
        class RebuildIndex(OverlapGuardJob):
            def __init__(self, lock_manager, index_name):
                super().__init__(lock_manager)
                self.index_name = index_name

            def lock_resource_suffix(self):
                return self.index_name

            async def run(self):
                ...

        await RebuildIndex(manager, "products").queue(dispatcher)
    """

    def __init__(self, lock_manager: QuorumLockManager):
        self.lock_manager = lock_manager
        self.ran = False
        self.state = JobRunState.IDLE
        self.result: Any = None

    @classmethod
    def job_type(cls) -> str:
        """Stable name of the job class, used as the first part of the resource key."""
        return f"{cls.__module__}.{cls.__qualname__}"

    def lock_resource_suffix(self) -> str | None:
        """Instance identity appended to the resource key. None locks per job type."""
        return None

    def lock_ttl_ms(self) -> int:
        """Lock lifetime in milliseconds for both phases. Defaults to the manager's."""
        return self.lock_manager.default_ttl_ms

    @property
    def resource_key(self) -> str:
        return f"{self.job_type()}:{self.lock_resource_suffix() or ''}:"

    @abstractmethod
    async def run(self) -> Any:
        """Job body."""

    async def queue(self, dispatcher: Dispatcher) -> bool:
        """
        Push this job onto a dispatcher unless another instance holds its key.

        The dedupe lock only covers the push itself and is released right
        after it.

        Returns:
            True if the job was pushed, False if the key was already locked.
        """
        resource = self.resource_key
        with create_span(SPAN_QUEUE_JOB, job_type=self.job_type(), resource=resource):
            lock = await self.lock_manager.lock(resource, self.lock_ttl_ms())
            if lock is None:
                self.state = JobRunState.REJECTED
                self.lock_manager.metrics.record_job_queued(self.job_type(), False)
                logger.info(
                    "Job already queued or running; not queued again",
                    extra={"resource": resource},
                )
                return False

            try:
                await dispatcher.push(self)
                self.state = JobRunState.QUEUED
            finally:
                await self.lock_manager.unlock(lock)

        self.lock_manager.metrics.record_job_queued(self.job_type(), True)
        logger.info("Job queued", extra={"resource": resource})
        return True

    async def handle(self) -> None:
        """
        Run the job body while holding the ownership lock.

        Raises:
            OverlapRefreshError: If ownership could not be established; the
                body did not run and must be treated as not executed.
        """
        resource = self.resource_key
        lock = await self.lock_manager.lock(resource, self.lock_ttl_ms())
        if lock is None:
            self.state = JobRunState.LOCK_LOST
            logger.error("Could not take job ownership", extra={"resource": resource})
            raise OverlapRefreshError(resource)

        self.state = JobRunState.RUNNING
        started = time.monotonic()
        try:
            with create_span(SPAN_EXECUTE_JOB, job_type=self.job_type(), resource=resource):
                self.result = await self.run()
            self.ran = True
            self.state = JobRunState.SUCCEEDED
        except Exception:
            self.state = JobRunState.FAILED
            raise
        finally:
            await self.lock_manager.unlock(lock)
            self.lock_manager.metrics.record_job_completed(
                self.job_type(),
                str(self.state),
                time.monotonic() - started,
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(resource_key={self.resource_key!r}, state={self.state})"
