"""
Job dispatchers.

A dispatcher is a push-only sink; whatever consumes it calls ``handle()`` on
each job later, possibly on another host.
"""

import asyncio
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from quorumlock.jobs.overlap import OverlapGuardJob


class Dispatcher(Protocol):
    """Queue that accepts jobs for later execution."""

    async def push(self, job: "OverlapGuardJob") -> None: ...


class AsyncQueueDispatcher:
    """In-process dispatcher backed by an asyncio.Queue."""

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue["OverlapGuardJob"] = asyncio.Queue(maxsize=maxsize)

    async def push(self, job: "OverlapGuardJob") -> None:
        await self._queue.put(job)

    async def pop(self, timeout: float | None = None) -> "OverlapGuardJob | None":
        """
        Take the next job.

        Args:
            timeout: Seconds to wait for a job. None waits forever.

        Returns:
            The job, or None if the timeout elapsed first.
        """
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every pushed job has been marked done."""
        await self._queue.join()

    def qsize(self) -> int:
        return self._queue.qsize()
