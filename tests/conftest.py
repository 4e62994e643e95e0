"""
Pytest configuration and shared fixtures.
"""

from collections.abc import Callable, Iterable
from typing import Any
from unittest.mock import AsyncMock

import pytest
from prometheus_client import CollectorRegistry

from quorumlock.lock_manager import QuorumLockManager
from quorumlock.observability.metrics import MetricsCollector


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000.0


class ScriptedStore:
    """
    Lock store double that answers from scripted results and records calls.

    Results are consumed in order; the last one repeats once the script runs
    out. A result that is an exception instance is raised instead.
    """

    def __init__(
        self,
        name: str = "scripted",
        try_set: Iterable[Any] = (True,),
        compare_delete: Iterable[Any] = (True,),
        on_try_set: Callable[[], None] | None = None,
    ):
        self.name = name
        self._try_set = list(try_set)
        self._compare_delete = list(compare_delete)
        self._on_try_set = on_try_set
        self.calls: list[tuple[str, str, str]] = []
        self.closed = False

    @property
    def try_set_calls(self) -> list[tuple[str, str, str]]:
        return [c for c in self.calls if c[0] == "try_set"]

    @property
    def compare_delete_calls(self) -> list[tuple[str, str, str]]:
        return [c for c in self.calls if c[0] == "compare_delete"]

    @staticmethod
    def _next(script: list[Any]) -> Any:
        result = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(result, Exception):
            raise result
        return result

    async def try_set(self, key: str, value: str, ttl_ms: int) -> bool:
        self.calls.append(("try_set", key, value))
        self.last_ttl_ms = ttl_ms
        if self._on_try_set:
            self._on_try_set()
        return self._next(self._try_set)

    async def compare_delete(self, key: str, value: str) -> bool:
        self.calls.append(("compare_delete", key, value))
        return self._next(self._compare_delete)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    """A fake clock that only moves when told to."""
    return FakeClock()


@pytest.fixture
def metrics() -> MetricsCollector:
    """Metrics collector on a private registry."""
    return MetricsCollector(registry=CollectorRegistry())


@pytest.fixture
def sleep() -> AsyncMock:
    """Retry pause that returns immediately and records its delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def make_manager(clock: FakeClock, metrics: MetricsCollector, sleep: AsyncMock):
    """Factory for lock managers with test clock, metrics and sleep."""

    def factory(stores, **kwargs) -> QuorumLockManager:
        options = {"clock": clock, "metrics": metrics, "sleep": sleep}
        options.update(kwargs)
        return QuorumLockManager(stores, **options)

    return factory
