"""Tests for the cache keep-alive supervisor."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from bazaar.cache.keepalive import CacheKeepAlive, KeepAliveState


def _keepalive(store: object, **overrides: object) -> CacheKeepAlive:
    options = {
        "interval": 3600.0,
        "delay_initial": 1.0,
        "delay_max": 10.0,
        "multiplier": 2.0,
        "jitter": 0.0,
        "sleep": AsyncMock(),
    }
    options.update(overrides)
    return CacheKeepAlive(store, **options)  # type: ignore[arg-type]


class TestBackoff:
    """Test reconnect delays."""

    def test_exponential_until_cap(self, cache) -> None:
        """Delays double until they reach the maximum."""
        keepalive = _keepalive(cache)
        delays = [keepalive.next_delay(attempt) for attempt in range(6)]
        assert delays == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]

    def test_jitter_bounds(self, cache) -> None:
        """Jitter stays within the configured fraction."""
        keepalive = _keepalive(cache, jitter=0.2)
        for _ in range(50):
            assert 0.8 <= keepalive.next_delay(0) <= 1.2


class TestProbe:
    """Test health probing."""

    @pytest.mark.asyncio
    async def test_failed_probe_marks_unavailable(self, cache) -> None:
        """A failed ping switches the store to bypass."""
        cache.failing = True
        keepalive = _keepalive(cache)

        assert await keepalive.probe() is False
        assert cache._available is False

    @pytest.mark.asyncio
    async def test_successful_probe_restores(self, cache) -> None:
        """A healthy ping restores a store marked unavailable."""
        cache.mark_unavailable()
        keepalive = _keepalive(cache)

        assert await keepalive.probe() is True
        assert cache.available is True


class TestRecover:
    """Test the reconnect loop."""

    @pytest.mark.asyncio
    async def test_retries_with_backoff(self, cache) -> None:
        """Failed reconnects sleep with growing delays until one succeeds."""
        cache.reconnect = AsyncMock(side_effect=[False, False, True])
        sleep = AsyncMock()
        keepalive = _keepalive(cache, sleep=sleep)

        assert await keepalive.recover() == 2
        assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]
        assert keepalive.state is KeepAliveState.HEALTHY

    @pytest.mark.asyncio
    async def test_immediate_success(self, cache) -> None:
        """No sleep when the first reconnect works."""
        sleep = AsyncMock()
        keepalive = _keepalive(cache, sleep=sleep)

        assert await keepalive.recover() == 0
        sleep.assert_not_awaited()


class TestLifecycle:
    """Test start and stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, cache) -> None:
        """The supervisor runs as a task and stops cleanly."""
        keepalive = CacheKeepAlive(cache, interval=3600.0)

        keepalive.start()
        assert keepalive.running
        keepalive.start()  # idempotent
        await asyncio.sleep(0)

        await keepalive.stop()
        assert not keepalive.running
        assert keepalive.state is KeepAliveState.STOPPED
