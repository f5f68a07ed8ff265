"""Cache layer for the catalog.

Provides Redis caching with the cache-aside pattern:
- Deterministic keys built from normalized query parameters
- Namespace-driven TTL buckets
- Fail-open store wrapper with a keep-alive supervisor
- Invalidation by pattern or by reverse index
"""

from bazaar.cache.invalidation import (
    InvalidationCoordinator,
    InvalidationResult,
    InvalidationScope,
    InvalidationStrategy,
)
from bazaar.cache.keepalive import CacheKeepAlive
from bazaar.cache.keys import CacheKeyBuilder, CacheKeys, CacheNamespace
from bazaar.cache.redis import CacheStore, RedisCacheStore
from bazaar.cache.ttl import TtlBucket, TtlPolicy, get_ttl_policy, ttl_for

__all__ = [
    # Keys and expiry
    "CacheKeys",
    "CacheKeyBuilder",
    "CacheNamespace",
    "TtlBucket",
    "TtlPolicy",
    "get_ttl_policy",
    "ttl_for",
    # Store
    "CacheStore",
    "RedisCacheStore",
    "CacheKeepAlive",
    # Invalidation
    "InvalidationCoordinator",
    "InvalidationResult",
    "InvalidationScope",
    "InvalidationStrategy",
]
