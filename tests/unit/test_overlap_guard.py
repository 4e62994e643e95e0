"""
Unit tests for the overlap-guard job protocol.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import CollectorRegistry

from quorumlock.constants import DEFAULT_LOCK_TTL_MS, JobRunState
from quorumlock.exceptions import OverlapRefreshError
from quorumlock.jobs.dispatcher import AsyncQueueDispatcher
from quorumlock.jobs.overlap import OverlapGuardJob
from quorumlock.lock_manager import QuorumLockManager
from quorumlock.observability.metrics import MetricsCollector
from quorumlock.stores.memory import InMemoryLockStore
from quorumlock.types.lock import Lock
from tests.conftest import ScriptedStore


class SyncAccountJob(OverlapGuardJob):
    """Job scoped to one account with a custom lock time."""

    def __init__(self, lock_manager, account_id: int = 1000):
        super().__init__(lock_manager)
        self.account_id = account_id

    def lock_resource_suffix(self) -> str:
        return str(self.account_id)

    def lock_ttl_ms(self) -> int:
        return 1_000_000

    async def run(self) -> str:
        return f"synced {self.account_id}"


class DefaultLockTimeJob(OverlapGuardJob):
    """Job relying on every default."""

    async def run(self) -> None:
        return None


class FailingJob(OverlapGuardJob):
    async def run(self) -> None:
        raise RuntimeError("job body failed")


@pytest.fixture
def lock() -> Lock:
    return Lock("key", "1111", ttl_ms=2, validity_ms=2)


@pytest.fixture
def manager(lock: Lock) -> MagicMock:
    """Lock manager double returning a fixed lock."""
    manager = MagicMock(spec=QuorumLockManager)
    manager.lock = AsyncMock(return_value=lock)
    manager.unlock = AsyncMock(return_value=None)
    manager.default_ttl_ms = DEFAULT_LOCK_TTL_MS
    manager.metrics = MetricsCollector(registry=CollectorRegistry())
    return manager


@pytest.fixture
def dispatcher() -> MagicMock:
    dispatcher = MagicMock()
    dispatcher.push = AsyncMock(return_value=None)
    return dispatcher


class TestResourceKey:
    """Tests for job identity."""

    def test_key_with_suffix(self, manager):
        job = SyncAccountJob(manager)

        assert job.resource_key == f"{__name__}.SyncAccountJob:1000:"

    def test_key_default(self, manager):
        job = DefaultLockTimeJob(manager)

        assert job.resource_key == f"{__name__}.DefaultLockTimeJob::"
        assert job.lock_ttl_ms() == DEFAULT_LOCK_TTL_MS == 300000

    def test_instances_have_distinct_keys(self, manager):
        assert SyncAccountJob(manager, 1).resource_key != SyncAccountJob(manager, 2).resource_key


class TestOverlapGuard:
    """Tests for queue() and handle()."""

    async def test_all_of_it(self, manager, dispatcher, lock):
        """Queue then handle: lock, unlock, lock, unlock."""
        job = SyncAccountJob(manager)
        key = job.resource_key

        assert await job.queue(dispatcher) is True
        dispatcher.push.assert_awaited_once_with(job)
        assert job.state == JobRunState.QUEUED

        await job.handle()

        assert job.ran is True
        assert job.result == "synced 1000"
        assert job.state == JobRunState.SUCCEEDED
        assert manager.lock.await_count == 2
        for call in manager.lock.await_args_list:
            assert call.args == (key, 1_000_000)
        assert manager.unlock.await_count == 2
        for call in manager.unlock.await_args_list:
            assert call.args == (lock,)

    async def test_all_of_it_default_lock_time(self, manager, dispatcher):
        job = DefaultLockTimeJob(manager)

        await job.queue(dispatcher)
        await job.handle()

        assert job.ran is True
        for call in manager.lock.await_args_list:
            assert call.args == (f"{__name__}.DefaultLockTimeJob::", 300000)
        assert manager.unlock.await_count == 2

    async def test_fail_to_lock(self, manager, dispatcher):
        """A held key means the job is not queued."""
        manager.lock.return_value = None
        job = SyncAccountJob(manager)

        assert await job.queue(dispatcher) is False

        dispatcher.push.assert_not_awaited()
        manager.unlock.assert_not_awaited()
        assert manager.lock.await_count == 1
        assert job.state == JobRunState.REJECTED

    async def test_fail_to_refresh(self, manager, dispatcher, lock):
        """No ownership at run time raises and runs nothing."""
        manager.lock.side_effect = [lock, None]
        job = SyncAccountJob(manager)
        job.run = AsyncMock()

        await job.queue(dispatcher)

        with pytest.raises(OverlapRefreshError) as exc_info:
            await job.handle()

        assert exc_info.value.resource == job.resource_key
        job.run.assert_not_awaited()
        assert job.ran is False
        assert job.state == JobRunState.LOCK_LOST
        # Only the dedupe lock was ever released
        manager.unlock.assert_awaited_once_with(lock)

    async def test_body_error_releases(self, manager, lock):
        job = FailingJob(manager)

        with pytest.raises(RuntimeError):
            await job.handle()

        assert job.ran is False
        assert job.state == JobRunState.FAILED
        manager.unlock.assert_awaited_once_with(lock)

    async def test_push_error_releases(self, manager, dispatcher, lock):
        dispatcher.push.side_effect = ConnectionError("queue down")
        job = SyncAccountJob(manager)

        with pytest.raises(ConnectionError):
            await job.queue(dispatcher)

        manager.unlock.assert_awaited_once_with(lock)


class TestOverlapGuardWithStores:
    """The protocol over real store semantics."""

    @pytest.fixture
    def lock_manager(self, make_manager) -> QuorumLockManager:
        stores = [InMemoryLockStore(f"s{i}") for i in range(3)]
        return make_manager(stores, retry_count=1)

    async def test_second_producer_is_rejected_while_running(self, lock_manager):
        dispatcher = AsyncQueueDispatcher()
        observed = {}

        class ContendedJob(OverlapGuardJob):
            async def run(self) -> None:
                # A producer trying to queue while this run holds the key
                observed["queued"] = await ContendedJob(self.lock_manager).queue(dispatcher)

        job = ContendedJob(lock_manager)
        assert await job.queue(dispatcher) is True
        queued = await dispatcher.pop(timeout=1)

        await queued.handle()

        assert observed["queued"] is False
        assert dispatcher.qsize() == 0
        # Key free again after the run
        assert await ContendedJob(lock_manager).queue(dispatcher) is True

    async def test_dedupe_lock_not_held_while_queued(self, lock_manager):
        dispatcher = AsyncQueueDispatcher()

        job = DefaultLockTimeJob(lock_manager)
        assert await job.queue(dispatcher) is True

        # The dedupe lock was released right after the push
        assert all(store.get(job.resource_key) is None for store in lock_manager.stores)

        await (await dispatcher.pop(timeout=1)).handle()
        assert job.ran is True

    async def test_run_blocked_by_foreign_holder(self, lock_manager):
        job = DefaultLockTimeJob(lock_manager)
        for store in lock_manager.stores:
            await store.try_set(job.resource_key, "someone-else", 60000)

        with pytest.raises(OverlapRefreshError):
            await job.handle()

        assert all(s.get(job.resource_key) == "someone-else" for s in lock_manager.stores)


class TestManagerDefaults:
    """Jobs pick up the lock time and metrics of the manager they lock through."""

    async def test_configured_ttl_reaches_store(self, make_manager):
        """A job without its own lock time uses the manager's default TTL."""
        store = ScriptedStore()
        lock_manager = make_manager([store], default_ttl_ms=1234)
        job = DefaultLockTimeJob(lock_manager)

        await job.handle()

        assert job.lock_ttl_ms() == 1234
        assert store.last_ttl_ms == 1234

    async def test_job_override_beats_default(self, make_manager):
        store = ScriptedStore()
        lock_manager = make_manager([store], default_ttl_ms=1234)

        await SyncAccountJob(lock_manager).handle()

        assert store.last_ttl_ms == 1_000_000

    async def test_job_metrics_use_manager_collector(self, make_manager, metrics):
        """Lock and job metrics land in the same registry."""
        lock_manager = make_manager([ScriptedStore()])
        job = DefaultLockTimeJob(lock_manager)

        await job.queue(MagicMock(push=AsyncMock()))
        await job.handle()

        queued = metrics.jobs_queued.labels(job_type=job.job_type(), accepted="true")
        completed = metrics.jobs_completed.labels(job_type=job.job_type(), status="succeeded")
        assert queued._value.get() == 1
        assert completed._value.get() == 1
        assert metrics.lock_attempts.labels(outcome="acquired")._value.get() == 2
