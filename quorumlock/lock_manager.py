"""
Quorum lock engine.

A lock on a resource is held when a majority of N independent stores accepted
the same random token for it and enough of the requested TTL is left after
subtracting the time spent asking them and a clock-drift margin.

Two callers cannot both reach quorum on the same resource while their
validity windows overlap, as long as clock drift and network delay between
the stores stay below the drift margin. This is not consensus: there is no
fencing and no ordering between competing callers.
"""

import asyncio
import logging
import random
import secrets
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Literal, TypeVar

from quorumlock.config import Settings, get_settings
from quorumlock.constants import (
    DEFAULT_CLOCK_DRIFT_FACTOR,
    DEFAULT_DRIFT_SLACK_MS,
    DEFAULT_LOCK_TTL_MS,
    DEFAULT_RETRY_COUNT,
    DEFAULT_RETRY_DELAY_MAX_MS,
    DEFAULT_RETRY_DELAY_MIN_MS,
    SPAN_ACQUIRE_LOCK,
    SPAN_REFRESH_LOCK,
    SPAN_RELEASE_LOCK,
    TOKEN_BYTES,
    LockOutcome,
)
from quorumlock.exceptions import LockAcquisitionError, LockRefreshError
from quorumlock.guard import LockRefresher
from quorumlock.observability.metrics import MetricsCollector, get_metrics
from quorumlock.observability.tracing import create_span
from quorumlock.stores.base import LockStore
from quorumlock.stores.redis import RedisLockStore
from quorumlock.types.lock import Lock

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Unit of work for run_locked
LockedWork = Callable[[LockRefresher], Awaitable[T]]


def generate_token() -> str:
    """Fresh random lock token (128 bits)."""
    return secrets.token_hex(TOKEN_BYTES)


class QuorumLockManager:
    """
    Acquires, refreshes and releases locks across a fixed set of stores.

    The instance holds no per-lock state and can be shared by any number of
    concurrent callers. Create it once and pass it to whatever needs locking.
    """

    def __init__(
        self,
        stores: Sequence[LockStore],
        *,
        default_ttl_ms: int = DEFAULT_LOCK_TTL_MS,
        retry_count: int = DEFAULT_RETRY_COUNT,
        retry_delay_ms: tuple[float, float] = (
            DEFAULT_RETRY_DELAY_MIN_MS,
            DEFAULT_RETRY_DELAY_MAX_MS,
        ),
        clock_drift_factor: float = DEFAULT_CLOCK_DRIFT_FACTOR,
        drift_slack_ms: float = DEFAULT_DRIFT_SLACK_MS,
        clock: Callable[[], float] = time.monotonic,
        token_factory: Callable[[], str] = generate_token,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        metrics: MetricsCollector | None = None,
    ):
        """
        Initialize the lock manager.

        Args:
            stores: Independent lock stores, one per server. Fixed for the
                lifetime of the manager.
            default_ttl_ms: Lock lifetime used by callers that do not pick their own.
            retry_count: Acquisition attempts per lock() call.
            retry_delay_ms: (min, max) bounds of the random pause between attempts.
            clock_drift_factor: Fraction of the TTL reserved for clock drift.
            drift_slack_ms: Fixed margin added to the drift allowance.
            clock: Monotonic clock returning seconds.
            token_factory: Generates a fresh token for every attempt.
            rng: Random source for retry jitter. Defaults to SystemRandom.
            sleep: Coroutine used for the retry pause.
            metrics: Metrics collector. Defaults to the process-wide one.
        """
        _check_retry_settings(retry_count, retry_delay_ms)

        self._stores: tuple[LockStore, ...] = tuple(stores)
        self.quorum = len(self._stores) // 2 + 1
        self.default_ttl_ms = default_ttl_ms
        self.retry_count = retry_count
        self.retry_delay_ms = retry_delay_ms
        self.clock_drift_factor = clock_drift_factor
        self.drift_slack_ms = drift_slack_ms

        self._clock = clock
        self._token_factory = token_factory
        self._rng = rng or random.SystemRandom()
        self._sleep = sleep
        self._metrics = metrics or get_metrics()

        if not self._stores:
            logger.warning("Lock manager created without stores; every lock will fail")

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs) -> "QuorumLockManager":
        """
        Build a manager with one Redis store per configured server.

        Args:
            settings: Settings to use. Defaults to the cached application settings.
            **kwargs: Overrides passed through to the constructor.
        """
        settings = settings or get_settings()
        stores = [
            RedisLockStore.from_server(
                server,
                socket_timeout=settings.redis_socket_timeout_seconds,
            )
            for server in settings.lock_servers
        ]
        options = {
            "default_ttl_ms": settings.lock_default_ttl_ms,
            "retry_count": settings.lock_retry_count,
            "retry_delay_ms": (
                settings.lock_retry_delay_min_ms,
                settings.lock_retry_delay_max_ms,
            ),
            "clock_drift_factor": settings.lock_clock_drift_factor,
            "drift_slack_ms": settings.lock_drift_slack_ms,
        }
        options.update(kwargs)
        return cls(stores, **options)

    @property
    def stores(self) -> tuple[LockStore, ...]:
        return self._stores

    @property
    def metrics(self) -> MetricsCollector:
        """Collector shared by this manager and the jobs that lock through it."""
        return self._metrics

    def now(self) -> float:
        """Current reading of the manager's clock, comparable with Lock.acquired_at."""
        return self._clock()

    async def lock(
        self,
        resource: str,
        ttl_ms: int,
        retry_count: int | None = None,
        retry_delay_ms: tuple[float, float] | None = None,
    ) -> Lock | None:
        """
        Try to acquire a lock on a resource.

        Args:
            resource: Name of the resource to lock.
            ttl_ms: Requested lock lifetime in milliseconds.
            retry_count: Overrides the manager's attempt count.
            retry_delay_ms: Overrides the manager's retry pause bounds.

        Returns:
            The Lock on success, or None if no attempt reached quorum with a
            positive validity window. Contention is an ordinary outcome, so
            this never raises for it.
        """
        if ttl_ms <= 0:
            raise ValueError(f"ttl_ms must be positive, got {ttl_ms}")
        retries = self.retry_count if retry_count is None else retry_count
        delay_range = retry_delay_ms or self.retry_delay_ms
        _check_retry_settings(retries, delay_range)

        started = self._clock()

        with create_span(SPAN_ACQUIRE_LOCK, resource=resource, ttl_ms=ttl_ms) as span:
            for attempt in range(1, retries + 1):
                token, lock, outcome = await self._attempt(resource, ttl_ms)
                self._metrics.record_attempt(outcome)

                if lock is not None:
                    span.set_attribute("attempts", attempt)
                    self._metrics.record_acquire(True, self._clock() - started)
                    logger.debug(
                        "Lock acquired",
                        extra={
                            "resource": resource,
                            "attempt": attempt,
                            "validity_ms": round(lock.validity_ms, 1),
                        },
                    )
                    return lock

                # Undo a partial acquisition before anyone else has to wait for its TTL
                await self._delete_everywhere(resource, token)

                logger.debug(
                    "Lock attempt failed",
                    extra={"resource": resource, "attempt": attempt, "outcome": str(outcome)},
                )

                if attempt < retries:
                    await self._sleep(self._retry_delay(delay_range))

            span.set_attribute("attempts", retries)

        self._metrics.record_acquire(False, self._clock() - started)
        logger.info(
            "Lock not acquired",
            extra={"resource": resource, "attempts": retries},
        )
        return None

    async def unlock(self, lock: Lock) -> None:
        """
        Release a lock on every store.

        Only entries still holding this lock's token are deleted, so releasing
        an expired or already released lock is harmless. Store failures are
        logged and otherwise ignored; keys on unreachable stores expire on
        their own.
        """
        with create_span(SPAN_RELEASE_LOCK, resource=lock.resource):
            deleted = await self._delete_everywhere(lock.resource, lock.token)

        self._metrics.record_release()
        logger.debug(
            "Lock released",
            extra={"resource": lock.resource, "deleted": deleted},
        )

    async def refresh_lock(self, lock: Lock) -> Lock | None:
        """
        Release a lock and acquire the same resource again.

        The new lock has a new token and a fresh validity window; the old
        handle must not be used afterwards. On None the old lock is already
        gone and nothing is held.
        """
        with create_span(SPAN_REFRESH_LOCK, resource=lock.resource):
            await self.unlock(lock)
            new_lock = await self.lock(lock.resource, lock.ttl_ms)

        self._metrics.record_refresh(new_lock is not None)
        if new_lock is None:
            logger.warning("Lock refresh failed", extra={"resource": lock.resource})
        return new_lock

    async def run_locked(
        self,
        resource: str,
        ttl_ms: int,
        work: LockedWork[T],
    ) -> T | Literal[False]:
        """
        Run a unit of work while holding a lock.

        ``work`` receives a LockRefresher. Calling it extends the lock; if the
        refresh fails the work is aborted with LockRefreshError and this
        returns False. Whatever lock is held when the work exits, by any path,
        is released exactly once.

        Returns:
            The work's return value, or False if the lock could not be
            acquired or was lost during a refresh.
        """
        lock = await self.lock(resource, ttl_ms)
        if lock is None:
            return False

        refresher = LockRefresher(self, lock)
        try:
            return await work(refresher)
        except LockRefreshError:
            if not refresher.lost:
                raise
            logger.warning(
                "Lock lost during refresh; work aborted",
                extra={"resource": resource, "refreshes": refresher.refreshes},
            )
            return False
        finally:
            held = refresher.detach()
            if held is not None:
                await self.unlock(held)

    @asynccontextmanager
    async def locked(self, resource: str, ttl_ms: int) -> AsyncIterator[Lock]:
        """
        Hold a lock for the duration of an ``async with`` block.

        Raises:
            LockAcquisitionError: If the lock could not be acquired.
        """
        lock = await self.lock(resource, ttl_ms)
        if lock is None:
            raise LockAcquisitionError(resource, self.retry_count)
        try:
            yield lock
        finally:
            await self.unlock(lock)

    async def close(self) -> None:
        """Close every store."""
        await asyncio.gather(*(store.close() for store in self._stores))

    async def _attempt(
        self,
        resource: str,
        ttl_ms: int,
    ) -> tuple[str, Lock | None, LockOutcome]:
        """One voting round across all stores."""
        token = self._token_factory()
        start = self._clock()

        votes = await asyncio.gather(
            *(self._try_set(store, resource, token, ttl_ms) for store in self._stores)
        )
        successes = sum(votes)

        now = self._clock()
        elapsed_ms = (now - start) * 1000.0
        drift_ms = ttl_ms * self.clock_drift_factor + self.drift_slack_ms
        validity_ms = ttl_ms - elapsed_ms - drift_ms

        if successes < self.quorum:
            return token, None, LockOutcome.NO_QUORUM
        if validity_ms <= 0:
            return token, None, LockOutcome.EXPIRED

        lock = Lock(
            resource=resource,
            token=token,
            ttl_ms=ttl_ms,
            validity_ms=validity_ms,
            acquired_at=now,
        )
        return token, lock, LockOutcome.ACQUIRED

    async def _try_set(self, store: LockStore, key: str, token: str, ttl_ms: int) -> bool:
        try:
            return bool(await store.try_set(key, token, ttl_ms))
        except Exception as e:
            # An unreachable store is a "no" vote
            self._metrics.record_store_error(store.name, "try_set")
            logger.warning(
                "Lock store failed during acquisition",
                extra={"store": store.name, "resource": key, "error": str(e)},
            )
            return False

    async def _compare_delete(self, store: LockStore, key: str, token: str) -> bool:
        try:
            return bool(await store.compare_delete(key, token))
        except Exception as e:
            self._metrics.record_store_error(store.name, "compare_delete")
            logger.warning(
                "Lock store failed during release",
                extra={"store": store.name, "resource": key, "error": str(e)},
            )
            return False

    async def _delete_everywhere(self, key: str, token: str) -> int:
        results = await asyncio.gather(
            *(self._compare_delete(store, key, token) for store in self._stores)
        )
        return sum(results)

    def _retry_delay(self, delay_range: tuple[float, float]) -> float:
        low, high = delay_range
        return self._rng.uniform(low, high) / 1000.0


def _check_retry_settings(retry_count: int, retry_delay_ms: tuple[float, float]) -> None:
    if retry_count < 1:
        raise ValueError(f"retry_count must be at least 1, got {retry_count}")
    low, high = retry_delay_ms
    if low < 0 or high < low:
        raise ValueError(f"invalid retry delay bounds {retry_delay_ms}")
