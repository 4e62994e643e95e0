"""
Worker process for recurring overlap-guard jobs.

The scheduler queues every registered job on a fixed interval; the worker
pulls jobs off the dispatcher and runs them. Any number of these processes
can share the same lock servers: each job is queued and run at most once at
a time across all of them.
"""

import asyncio
import logging
import os
import signal

from quorumlock.config import get_settings
from quorumlock.exceptions import OverlapRefreshError
from quorumlock.jobs.dispatcher import AsyncQueueDispatcher
from quorumlock.lock_manager import QuorumLockManager
from quorumlock.observability.logging import bind_context, setup_logging
from quorumlock.observability.metrics import setup_metrics
from quorumlock.observability.tracing import setup_tracing
from quorumlock.worker.handlers import get_job_class, list_jobs

logger = logging.getLogger(__name__)


class Worker:
    """
    Executes jobs taken from a dispatcher.

    Features:
    - Ownership is checked by each job's handle(); lost ownership skips the run
    - A failing job is logged and never stops the loop
    - Graceful shutdown finishes the job in progress
    """

    def __init__(
        self,
        dispatcher: AsyncQueueDispatcher,
        worker_id: str | None = None,
        poll_interval: float | None = None,
    ):
        """
        Initialize the worker.

        Args:
            dispatcher: Queue to take jobs from.
            worker_id: Unique worker identifier. Defaults to hostname + PID.
            poll_interval: Seconds to wait for a job before checking for shutdown.
        """
        settings = get_settings()

        self.dispatcher = dispatcher
        self.worker_id = worker_id or settings.worker_id or f"{os.uname().nodename}-{os.getpid()}"
        self.poll_interval = poll_interval or settings.worker_poll_interval_seconds

        self._running = False
        self.processed = 0
        self.skipped = 0
        self.failed = 0

    async def start(self) -> None:
        """Start the worker."""
        logger.info("Worker starting", extra={"worker_id": self.worker_id})
        self._running = True

        while self._running:
            await self.run_once()

        logger.info(
            "Worker stopped",
            extra={
                "worker_id": self.worker_id,
                "processed": self.processed,
                "skipped": self.skipped,
                "failed": self.failed,
            },
        )

    async def stop(self) -> None:
        """Stop the worker gracefully."""
        logger.info("Worker stopping", extra={"worker_id": self.worker_id})
        self._running = False

    async def run_once(self) -> bool:
        """
        Take and execute at most one job.

        Returns:
            True if a job was taken off the dispatcher.
        """
        job = await self.dispatcher.pop(timeout=self.poll_interval)
        if job is None:
            return False

        try:
            await job.handle()
            self.processed += 1
        except OverlapRefreshError as e:
            self.skipped += 1
            logger.warning(
                "Job run skipped: ownership not obtained",
                extra={"worker_id": self.worker_id, "resource": e.resource},
            )
        except Exception as e:
            self.failed += 1
            logger.exception(
                "Job raised",
                extra={"worker_id": self.worker_id, "job": repr(job), "error": str(e)},
            )
        finally:
            self.dispatcher.task_done()

        return True


class Scheduler:
    """
    Queues every registered job on a fixed interval.
    """

    def __init__(
        self,
        lock_manager: QuorumLockManager,
        dispatcher: AsyncQueueDispatcher,
        interval_seconds: float | None = None,
        job_names: list[str] | None = None,
    ):
        settings = get_settings()
        self.lock_manager = lock_manager
        self.dispatcher = dispatcher
        self.interval = interval_seconds or settings.scheduler_interval_seconds
        self.job_names = job_names
        self._running = False

    async def start(self) -> None:
        """Start the scheduler loop."""
        logger.info(f"Scheduler starting with interval {self.interval}s")
        self._running = True

        while self._running:
            try:
                await self.tick()
            except Exception as e:
                logger.exception(f"Error in scheduler loop: {e}")

            await asyncio.sleep(self.interval)

        logger.info("Scheduler stopped")

    async def stop(self) -> None:
        """Stop the scheduler."""
        logger.info("Scheduler stopping")
        self._running = False

    async def tick(self) -> int:
        """
        Queue each job once.

        Returns:
            Number of jobs actually queued.
        """
        queued = 0
        for name in self.job_names or list_jobs():
            job_class = get_job_class(name)
            if job_class is None:
                logger.error(f"No recurring job registered as {name}")
                continue
            if await job_class(self.lock_manager).queue(self.dispatcher):
                queued += 1
        return queued


async def run_async() -> None:
    """Run the scheduler and worker asynchronously."""
    settings = get_settings()
    setup_logging()
    setup_tracing()
    setup_metrics(port=settings.prometheus_port)

    lock_manager = QuorumLockManager.from_settings(settings)
    dispatcher = AsyncQueueDispatcher()
    worker = Worker(dispatcher)
    scheduler = Scheduler(lock_manager, dispatcher)
    bind_context(worker_id=worker.worker_id)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    async def shutdown() -> None:
        await scheduler.stop()
        await worker.stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(shutdown())
        )

    scheduler_task = asyncio.create_task(scheduler.start())
    try:
        await worker.start()
    finally:
        scheduler_task.cancel()
        try:
            await scheduler_task
        except asyncio.CancelledError:
            pass
        await lock_manager.close()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
