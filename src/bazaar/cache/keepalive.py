"""Cache keep-alive supervisor.

A background task pings the cache store at a fixed interval. When a probe
fails the store is marked unavailable (requests bypass the cache) and the
supervisor reconnects with jittered exponential backoff until the store
answers again.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from enum import Enum

from bazaar.cache.redis import CacheStore
from bazaar.config import settings

logger = logging.getLogger(__name__)


class KeepAliveState(str, Enum):
    """Supervisor states."""

    STOPPED = "stopped"
    HEALTHY = "healthy"
    RECONNECTING = "reconnecting"


class CacheKeepAlive:
    """Supervised health probe and reconnect loop for a cache store."""

    def __init__(
        self,
        store: CacheStore,
        *,
        interval: float | None = None,
        delay_initial: float | None = None,
        delay_max: float | None = None,
        multiplier: float | None = None,
        jitter: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.interval = interval if interval is not None else settings.cache_keepalive_interval
        self.delay_initial = (
            delay_initial if delay_initial is not None else settings.cache_reconnect_delay_initial
        )
        self.delay_max = delay_max if delay_max is not None else settings.cache_reconnect_delay_max
        self.multiplier = (
            multiplier if multiplier is not None else settings.cache_reconnect_delay_multiplier
        )
        self.jitter = jitter if jitter is not None else settings.cache_reconnect_jitter
        self._sleep = sleep
        self._task: asyncio.Task[None] | None = None
        self.state = KeepAliveState.STOPPED
        self.reconnect_attempts = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the supervisor task (idempotent)."""
        if self.running:
            return
        self.state = KeepAliveState.HEALTHY
        self._task = asyncio.create_task(self._run(), name="cache-keepalive")
        logger.info(f"Cache keep-alive started (interval {self.interval:.0f}s)")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self.state = KeepAliveState.STOPPED
        logger.info("Cache keep-alive stopped")

    def next_delay(self, attempt: int) -> float:
        """Backoff delay before reconnect ``attempt`` (0-based), with jitter."""
        base = min(self.delay_initial * self.multiplier**attempt, self.delay_max)
        spread = base * self.jitter
        return max(0.0, base + random.uniform(-spread, spread))  # nosec B311

    async def probe(self) -> bool:
        """Ping once; mark the store unavailable on failure."""
        if await self.store.health_check():
            if not self.store.available:
                self.store.mark_available()
            return True
        if self.store.available:
            self.store.mark_unavailable()
        return False

    async def recover(self) -> int:
        """Reconnect with backoff until the store answers.

        Returns the number of failed attempts before success.
        """
        self.state = KeepAliveState.RECONNECTING
        self.reconnect_attempts = 0
        while not await self.store.reconnect():
            delay = self.next_delay(self.reconnect_attempts)
            self.reconnect_attempts += 1
            logger.warning(
                f"Cache reconnect attempt {self.reconnect_attempts} failed, "
                f"retrying in {delay:.1f}s"
            )
            await self._sleep(delay)
        logger.info(f"Cache reconnected after {self.reconnect_attempts} failed attempts")
        self.state = KeepAliveState.HEALTHY
        return self.reconnect_attempts

    async def _run(self) -> None:
        while True:
            try:
                if not await self.probe():
                    await self.recover()
                await self._sleep(self.interval)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in cache keep-alive loop: {e}")
                await self._sleep(self.interval)
