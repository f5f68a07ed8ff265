"""TTL policy: maps a cache key's namespace to an expiry bucket.

Namespaces match on ":" segment boundaries ("agent" matches "agent:42" but
not "agents:list:All") and the longest matching namespace wins. Keys outside
every known namespace get the shortest bucket: when the policy is ambiguous,
freshness beats staleness.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from bazaar.cache.keys import CacheNamespace
from bazaar.config import Settings, settings


class TtlBucket(str, Enum):
    """Expiry buckets, shortest to longest."""

    ADMIN = "admin"
    SEARCH = "search"
    LISTING = "listing"
    EXTERNAL = "external"
    DETAIL = "detail"


NAMESPACE_BUCKETS: Mapping[str, TtlBucket] = {
    CacheNamespace.ADMIN: TtlBucket.ADMIN,
    CacheNamespace.USER: TtlBucket.ADMIN,
    CacheNamespace.SEARCH: TtlBucket.SEARCH,
    CacheNamespace.FEATURED: TtlBucket.SEARCH,
    CacheNamespace.LISTING: TtlBucket.LISTING,
    CacheNamespace.CATEGORY: TtlBucket.LISTING,
    CacheNamespace.COUNT: TtlBucket.LISTING,
    # Index sets must outlive the longest-lived key they track
    CacheNamespace.INDEX: TtlBucket.LISTING,
    CacheNamespace.EXTERNAL: TtlBucket.EXTERNAL,
    CacheNamespace.DETAIL: TtlBucket.DETAIL,
}


def _matches(key: str, namespace: str) -> bool:
    return key == namespace or key.startswith(namespace + ":")


@dataclass(frozen=True)
class TtlPolicy:
    """Pure mapping from cache key to expiry in seconds."""

    durations: Mapping[TtlBucket, int]
    namespaces: Mapping[str, TtlBucket] = field(default_factory=lambda: dict(NAMESPACE_BUCKETS))

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "TtlPolicy":
        config = config or settings
        return cls(
            durations={
                TtlBucket.ADMIN: config.ttl_admin,
                TtlBucket.SEARCH: config.ttl_search,
                TtlBucket.LISTING: config.ttl_listing,
                TtlBucket.EXTERNAL: config.ttl_external,
                TtlBucket.DETAIL: config.ttl_detail,
            }
        )

    @property
    def fallback(self) -> TtlBucket:
        return min(self.durations, key=lambda bucket: self.durations[bucket])

    def namespace_of(self, key: str) -> str | None:
        """Longest known namespace that ``key`` falls under."""
        best: str | None = None
        for namespace in self.namespaces:
            if _matches(key, namespace) and (best is None or len(namespace) > len(best)):
                best = namespace
        return best

    def bucket_for(self, key: str) -> TtlBucket:
        namespace = self.namespace_of(key)
        return self.namespaces[namespace] if namespace is not None else self.fallback

    def ttl_for(self, key: str) -> int:
        return self.durations[self.bucket_for(key)]


_policy: TtlPolicy | None = None


def get_ttl_policy() -> TtlPolicy:
    """Get the policy built from application settings."""
    global _policy
    if _policy is None:
        _policy = TtlPolicy.from_settings()
    return _policy


def ttl_for(key: str) -> int:
    """Expiry in seconds for ``key`` under the application policy."""
    return get_ttl_policy().ttl_for(key)
