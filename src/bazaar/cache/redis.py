"""Redis-backed cache store for catalog results.

Every operation degrades instead of raising: a failed read is a miss, a
failed write or delete reports False (or 0). Callers can always fall back to
the catalog store. Values are JSON, encoded with orjson.

Expiry comes from the TTL policy unless a caller passes an explicit ttl.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import orjson
import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError

from bazaar.cache.ttl import TtlPolicy, get_ttl_policy
from bazaar.config import settings
from bazaar.errors import CacheUnavailable
from bazaar.observability.metrics import (
    record_cache_available,
    record_cache_error,
    record_cache_hit,
    record_cache_miss,
)

if TYPE_CHECKING:
    from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Errors that mean "cache unusable right now", never "bug"
_CACHE_ERRORS = (CacheUnavailable, RedisError, OSError, asyncio.TimeoutError)


class CacheStore(Protocol):
    """Operations the query engine and invalidation need from a cache."""

    @property
    def available(self) -> bool: ...

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool: ...

    async def delete(self, *keys: str) -> bool: ...

    async def delete_by_pattern(self, pattern: str) -> int: ...

    async def get_many(self, keys: Iterable[str]) -> dict[str, Any]: ...

    async def set_many(self, values: Mapping[str, Any], ttl: int | None = None) -> bool: ...

    async def add_to_index(self, index_key: str, member: str) -> bool: ...

    async def pop_index(self, index_key: str) -> list[str]: ...

    async def health_check(self) -> bool: ...

    async def reconnect(self) -> bool: ...

    def mark_available(self) -> None: ...

    def mark_unavailable(self) -> None: ...

    def stats(self) -> dict[str, Any]: ...


@dataclass
class CacheCounters:
    """Per-process cache statistics."""

    hits: int = 0
    misses: int = 0
    errors: int = 0
    bypassed: int = 0

    @property
    def hit_ratio(self) -> float:
        lookups = self.hits + self.misses
        return round(self.hits / lookups, 4) if lookups else 0.0


def _decode(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


class RedisCacheStore:
    """Cache operations on a shared Redis instance.

    The store starts unavailable until ``connect()`` succeeds (or a client is
    injected). While unavailable, calls are bypassed without touching the
    network; the keep-alive supervisor restores availability.
    """

    def __init__(
        self,
        client: Redis | None = None,
        *,
        url: str | None = None,
        policy: TtlPolicy | None = None,
    ):
        self.url = url or settings.redis_url
        self.client = client
        self.policy = policy or get_ttl_policy()
        self.counters = CacheCounters()
        self._available = client is not None

    @property
    def available(self) -> bool:
        return self._available

    def _set_available(self, available: bool) -> None:
        if available != self._available:
            if available:
                logger.info("Cache store available", extra={"redis_url": self.safe_url()})
            else:
                logger.warning("Cache store unavailable, bypassing cache")
        self._available = available
        record_cache_available(available)

    def mark_available(self) -> None:
        self._set_available(self.client is not None)

    def mark_unavailable(self) -> None:
        self._set_available(False)

    def safe_url(self) -> str:
        """Redis URL without credentials, for logs."""
        _, _, host = self.url.rpartition("@")
        return host

    def _create_client(self) -> Redis:
        return redis.from_url(  # type: ignore[no-untyped-call]
            self.url,
            decode_responses=False,
            socket_timeout=settings.cache_socket_timeout,
            socket_connect_timeout=settings.cache_connect_timeout,
        )

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> bool:
        """Create the client and probe it. Never raises."""
        if self.client is None:
            self.client = self._create_client()
        healthy = await self._ping()
        self._set_available(healthy)
        return healthy

    async def close(self) -> None:
        """Close Redis connections."""
        if self.client is not None:
            try:
                await self.client.aclose()
            except _CACHE_ERRORS as e:
                logger.debug(f"Ignoring error while closing cache client: {e}")
            self.client = None
        self._available = False

    async def reconnect(self) -> bool:
        """Drop the current client and connect a fresh one."""
        await self.close()
        return await self.connect()

    async def _ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except _CACHE_ERRORS as e:
            logger.debug(f"Cache ping failed: {e}")
            return False

    async def health_check(self) -> bool:
        """Probe the server; does not change availability."""
        return await self._ping()

    def _client_or_raise(self) -> Redis:
        if self.client is None or not self._available:
            raise CacheUnavailable("Cache store is not connected")
        return self.client

    def _on_error(self, operation: str, key: str, error: BaseException) -> None:
        if isinstance(error, CacheUnavailable):
            self.counters.bypassed += 1
            return
        self.counters.errors += 1
        record_cache_error(operation)
        logger.warning(
            f"Cache {operation} failed: {error}",
            extra={"cache_key": key, "cache_operation": operation},
        )
        if isinstance(error, (RedisConnectionError, OSError)):
            self.mark_unavailable()

    def _namespace(self, key: str) -> str:
        return self.policy.namespace_of(key) or "other"

    # -------------------------------------------------------------------------
    # Single-key operations
    # -------------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Get a cached value. Returns None on miss or failure."""
        try:
            raw = await self._client_or_raise().get(key)
        except _CACHE_ERRORS as e:
            self._on_error("get", key, e)
            return None
        return self._load(key, raw)

    def _load(self, key: str, raw: bytes | None) -> Any | None:
        if raw is None:
            self.counters.misses += 1
            record_cache_miss(self._namespace(key))
            logger.debug("Cache miss", extra={"cache_key": key})
            return None
        try:
            value = orjson.loads(raw)
        except orjson.JSONDecodeError:
            self.counters.errors += 1
            record_cache_error("decode")
            logger.warning("Discarding undecodable cache entry", extra={"cache_key": key})
            return None
        self.counters.hits += 1
        record_cache_hit(self._namespace(key))
        logger.debug("Cache hit", extra={"cache_key": key})
        return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Cache a JSON-serializable value under ``key``."""
        try:
            payload = orjson.dumps(value)
        except TypeError as e:
            self.counters.errors += 1
            logger.warning(f"Refusing to cache unserializable value: {e}", extra={"cache_key": key})
            return False

        expiry = ttl if ttl is not None else self.policy.ttl_for(key)
        try:
            await self._client_or_raise().set(key, payload, ex=expiry)
        except _CACHE_ERRORS as e:
            self._on_error("set", key, e)
            return False
        return True

    async def delete(self, *keys: str) -> bool:
        if not keys:
            return True
        try:
            await self._client_or_raise().delete(*keys)
        except _CACHE_ERRORS as e:
            self._on_error("delete", keys[0], e)
            return False
        return True

    async def delete_by_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern.

        Runs KEYS then a single bulk DEL: O(n) in the keyspace, meant for
        coarse invalidation only. Returns the number of keys deleted (0 on
        failure).
        """
        start = time.perf_counter()
        try:
            client = self._client_or_raise()
            keys = await client.keys(pattern)
            if keys:
                await client.delete(*keys)
        except _CACHE_ERRORS as e:
            self._on_error("delete_by_pattern", pattern, e)
            return 0

        logger.debug(
            f"Deleted {len(keys)} keys matching {pattern} in "
            f"{(time.perf_counter() - start) * 1000:.1f}ms"
        )
        return len(keys)

    # -------------------------------------------------------------------------
    # Pipelined operations
    # -------------------------------------------------------------------------

    async def get_many(self, keys: Iterable[str]) -> dict[str, Any]:
        """Get several keys in one round trip. Misses are omitted."""
        key_list = list(keys)
        if not key_list:
            return {}
        try:
            async with self._client_or_raise().pipeline(transaction=False) as pipe:
                for key in key_list:
                    pipe.get(key)
                results = await pipe.execute()
        except _CACHE_ERRORS as e:
            self._on_error("get_many", key_list[0], e)
            return {}

        found: dict[str, Any] = {}
        for key, raw in zip(key_list, results):
            value = self._load(key, raw)
            if value is not None:
                found[key] = value
        return found

    async def set_many(self, values: Mapping[str, Any], ttl: int | None = None) -> bool:
        """Set several keys in one round trip, each with its own policy TTL."""
        if not values:
            return True
        try:
            payloads = {key: orjson.dumps(value) for key, value in values.items()}
        except TypeError as e:
            self.counters.errors += 1
            logger.warning(f"Refusing to cache unserializable value: {e}")
            return False

        try:
            async with self._client_or_raise().pipeline(transaction=False) as pipe:
                for key, payload in payloads.items():
                    pipe.set(key, payload, ex=ttl if ttl is not None else self.policy.ttl_for(key))
                await pipe.execute()
        except _CACHE_ERRORS as e:
            self._on_error("set_many", next(iter(values)), e)
            return False
        return True

    # -------------------------------------------------------------------------
    # Reverse index
    # -------------------------------------------------------------------------

    async def add_to_index(self, index_key: str, member: str) -> bool:
        """Record ``member`` in the set at ``index_key`` and refresh its expiry."""
        try:
            async with self._client_or_raise().pipeline(transaction=False) as pipe:
                pipe.sadd(index_key, member)
                pipe.expire(index_key, self.policy.ttl_for(index_key))
                await pipe.execute()
        except _CACHE_ERRORS as e:
            self._on_error("add_to_index", index_key, e)
            return False
        return True

    async def pop_index(self, index_key: str) -> list[str]:
        """Read and delete an index set atomically."""
        try:
            async with self._client_or_raise().pipeline(transaction=True) as pipe:
                pipe.smembers(index_key)
                pipe.delete(index_key)
                members, _ = await pipe.execute()
        except _CACHE_ERRORS as e:
            self._on_error("pop_index", index_key, e)
            return []
        return sorted(_decode(member) for member in members or ())

    def stats(self) -> dict[str, Any]:
        return {
            "available": self._available,
            "hits": self.counters.hits,
            "misses": self.counters.misses,
            "errors": self.counters.errors,
            "bypassed": self.counters.bypassed,
            "hitRatio": self.counters.hit_ratio,
        }
