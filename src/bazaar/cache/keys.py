"""Cache key schema for the catalog.

Key format: {namespace}:{k1}:{v1}:{k2}:{v2}...

Where:
- namespace: logical data family, selects the TTL bucket. Listing, search
  and count namespaces are scoped by category ("agents:list:Writing") so that
  every key of one category shares a glob prefix.
- k/v pairs: non-empty parameters sorted by key name, so parameter sets that
  differ only in construction order produce the same key.

Large parameter sets collapse to {namespace}:{contentHash}, a fixed-width
SHA-256 prefix of the normalized parameter string. Collisions are not
defended against.

Every variable token is percent-encoded, which keeps ":" and the Redis glob
metacharacters (* ? [ ] \\) out of key segments.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from enum import Enum
from typing import Any
from urllib.parse import quote

from bazaar.config import settings
from bazaar.core.model.query import ALL_CATEGORIES, QueryParameters

HASH_WIDTH = 32


class CacheNamespace:
    """Namespace roots. Keep in sync with the TTL policy table."""

    ADMIN = "admin"
    USER = "user"
    SEARCH = "agents:search"
    FEATURED = "agents:featured"
    LISTING = "agents:list"
    CATEGORY = "agents:category"
    COUNT = "agents:count"
    EXTERNAL = "external"
    DETAIL = "agent"
    INDEX = "idx:category"

    # Category-scoped namespaces cleared when a category changes
    SCOPED = (LISTING, SEARCH, COUNT)


def encode_token(value: str) -> str:
    """Percent-encode a single key segment."""
    return quote(value, safe="")


def normalize_value(value: Any) -> str:
    """Render a parameter value in canonical form."""
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, (set, frozenset, list, tuple)):
        return ",".join(sorted(normalize_value(item) for item in value))
    return encode_token(str(value))


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (set, frozenset, list, tuple, dict)):
        return len(value) == 0
    return False


class CacheKeyBuilder:
    """Deterministic key construction from parameter mappings."""

    def __init__(self, hash_threshold: int | None = None, max_length: int | None = None):
        self.hash_threshold = (
            hash_threshold if hash_threshold is not None else settings.key_hash_threshold
        )
        self.max_length = max_length if max_length is not None else settings.key_max_length

    def pairs(self, params: Mapping[str, Any]) -> list[tuple[str, str]]:
        """Normalized (key, value) pairs sorted by key name."""
        return sorted(
            (encode_token(str(name)), normalize_value(value))
            for name, value in params.items()
            if not _is_empty(value)
        )

    def content_hash(self, params: Mapping[str, Any]) -> str:
        canonical = "&".join(f"{name}={value}" for name, value in self.pairs(params))
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:HASH_WIDTH]

    def build(self, namespace: str, params: Mapping[str, Any] | None = None) -> str:
        pairs = self.pairs(params or {})
        if not pairs:
            return namespace

        plain = ":".join([namespace, *(segment for pair in pairs for segment in pair)])
        if len(pairs) > self.hash_threshold or len(plain) > self.max_length:
            return f"{namespace}:{self.content_hash(params or {})}"
        return plain


_builder: CacheKeyBuilder | None = None


def get_key_builder() -> CacheKeyBuilder:
    global _builder
    if _builder is None:
        _builder = CacheKeyBuilder()
    return _builder


class CacheKeys:
    """Cache key generator following the catalog naming convention."""

    @classmethod
    def scope(cls, namespace: str, category: str) -> str:
        """Category-scoped namespace, e.g. ``agents:list:Writing``."""
        return f"{namespace}:{encode_token(category or ALL_CATEGORIES)}"

    @classmethod
    def agent_detail(cls, agent_id: str) -> str:
        """Key for a single record."""
        return f"{CacheNamespace.DETAIL}:{encode_token(agent_id)}"

    @classmethod
    def results(cls, params: QueryParameters) -> str:
        """Key for a page of listing or search results."""
        namespace = CacheNamespace.SEARCH if params.search else CacheNamespace.LISTING
        return get_key_builder().build(cls.scope(namespace, params.category), params.cache_params())

    @classmethod
    def count(cls, params: QueryParameters) -> str:
        """Key for a filtered result count (no pagination)."""
        return get_key_builder().build(
            cls.scope(CacheNamespace.COUNT, params.category), params.filter_params()
        )

    @classmethod
    def featured(cls, limit: int) -> str:
        return get_key_builder().build(CacheNamespace.FEATURED, {"limit": limit})

    @classmethod
    def category_summary(cls) -> str:
        return f"{CacheNamespace.CATEGORY}:summary"

    @classmethod
    def user_agent(cls, user_id: str, agent_id: str, variant: str) -> str:
        """Per-user key derived from one record (like status, wishlist)."""
        return (
            f"{CacheNamespace.USER}:{encode_token(user_id)}"
            f":agent:{encode_token(agent_id)}:{variant}"
        )

    @classmethod
    def category_index(cls, category: str) -> str:
        """Reverse-index set holding the cached keys of one category scope."""
        return f"{CacheNamespace.INDEX}:{encode_token(category or ALL_CATEGORIES)}"

    # -------------------------------------------------------------------------
    # Invalidation patterns
    # -------------------------------------------------------------------------

    @classmethod
    def scope_pattern(cls, namespace: str, category: str) -> str:
        """Pattern for every parameterized key under a category scope.

        The bare scope key (no parameters) is not matched; delete it directly.
        """
        return f"{cls.scope(namespace, category)}:*"

    @classmethod
    def namespace_pattern(cls, namespace: str) -> str:
        return f"{namespace}:*"

    @classmethod
    def user_agent_pattern(cls, agent_id: str) -> str:
        """Pattern for every per-user key embedding ``agent_id``."""
        return f"{CacheNamespace.USER}:*:agent:{encode_token(agent_id)}:*"

    @classmethod
    def parse_key(cls, key: str) -> dict[str, str] | None:
        """Split a scoped or detail key into its components.

        Returns None for keys outside the catalog namespaces.
        """
        parts = key.split(":")
        if len(parts) >= 2 and parts[0] == CacheNamespace.DETAIL:
            return {"namespace": CacheNamespace.DETAIL, "agent_id": parts[1]}
        for namespace in CacheNamespace.SCOPED:
            root = namespace.split(":")
            if len(parts) >= 3 and parts[:2] == root:
                return {
                    "namespace": namespace,
                    "category": parts[2],
                    "params": ":".join(parts[3:]),
                }
        return None
