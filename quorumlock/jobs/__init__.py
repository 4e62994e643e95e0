"""
Overlap-guard jobs and dispatchers.
"""

from quorumlock.jobs.dispatcher import AsyncQueueDispatcher, Dispatcher
from quorumlock.jobs.overlap import OverlapGuardJob

__all__ = [
    "AsyncQueueDispatcher",
    "Dispatcher",
    "OverlapGuardJob",
]
