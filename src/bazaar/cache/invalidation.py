"""Cache invalidation for catalog mutations.

Every instance shares one Redis, so deleting a key is visible to all of them;
no cross-instance broadcast is needed.

Order of removal for a changed record:
1. its detail entry,
2. listing, search and count entries for its categories and for "All",
   plus featured and category-summary entries,
3. per-user entries embedding its id.

Two strategies remove the category-scoped entries:
- pattern: glob-delete each scoped namespace (``agents:list:Writing:*``)
- index: pop the reverse-index set the query engine filled while caching
  and delete exactly those keys

Invalidation is best effort: cache failures are logged by the store and the
call still completes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from bazaar.cache.keys import CacheKeys, CacheNamespace
from bazaar.cache.redis import CacheStore
from bazaar.config import settings
from bazaar.core.model.query import ALL_CATEGORIES
from bazaar.observability.metrics import record_invalidation

logger = logging.getLogger(__name__)


class InvalidationStrategy(str, Enum):
    """How category-scoped entries are located."""

    PATTERN = "pattern"
    INDEX = "index"


class InvalidationScope(str, Enum):
    AGENT = "agent"
    CATEGORY = "category"
    ALL = "all"


@dataclass
class InvalidationResult:
    """Summary of one invalidation request."""

    scope: InvalidationScope
    target: str | None = None
    keys_deleted: int = 0
    patterns: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, object]:
        return {
            "scope": self.scope.value,
            "target": self.target,
            "keysDeleted": self.keys_deleted,
            "patterns": self.patterns,
        }


class InvalidationCoordinator:
    """Removes cache entries affected by a catalog change."""

    def __init__(self, cache: CacheStore, strategy: InvalidationStrategy | str | None = None):
        self.cache = cache
        self.strategy = InvalidationStrategy(strategy or settings.invalidation_strategy)

    # -------------------------------------------------------------------------
    # Reverse index maintenance
    # -------------------------------------------------------------------------

    async def track(self, category: str, key: str) -> None:
        """Register a freshly cached scoped key (index strategy only)."""
        if self.strategy is InvalidationStrategy.INDEX:
            await self.cache.add_to_index(CacheKeys.category_index(category), key)

    # -------------------------------------------------------------------------
    # Invalidation entry points
    # -------------------------------------------------------------------------

    async def invalidate_agent(
        self, agent_id: str, categories: Iterable[str] | None = None
    ) -> InvalidationResult:
        """Invalidate everything derived from one record.

        ``categories`` are the record's categories before and after the
        change. When unknown (None), every category scope is cleared.
        """
        result = InvalidationResult(InvalidationScope.AGENT, agent_id)
        record_invalidation(result.scope.value)

        if await self.cache.delete(CacheKeys.agent_detail(agent_id)):
            result.keys_deleted += 1

        if categories is None:
            await self._clear_namespaces(result, CacheNamespace.SCOPED)
            await self._clear_shared(result)
            if self.strategy is InvalidationStrategy.INDEX:
                await self._clear_namespaces(result, (CacheNamespace.INDEX,))
        else:
            await self._clear_categories(result, categories)

        pattern = CacheKeys.user_agent_pattern(agent_id)
        result.patterns.append(pattern)
        result.keys_deleted += await self.cache.delete_by_pattern(pattern)

        logger.info(
            f"Invalidated agent {agent_id}: {result.keys_deleted} keys",
            extra={"agent_id": agent_id, "keys_deleted": result.keys_deleted},
        )
        return result

    async def invalidate_category(self, category: str) -> InvalidationResult:
        """Invalidate listing, search and count entries for one category."""
        result = InvalidationResult(InvalidationScope.CATEGORY, category)
        record_invalidation(result.scope.value)
        await self._clear_categories(result, [category])
        logger.info(
            f"Invalidated category {category}: {result.keys_deleted} keys",
            extra={"category": category, "keys_deleted": result.keys_deleted},
        )
        return result

    async def invalidate_all(self) -> InvalidationResult:
        """Invalidate every catalog entry.

        External-provider entries are kept; they do not derive from the
        catalog.
        """
        result = InvalidationResult(InvalidationScope.ALL)
        record_invalidation(result.scope.value)
        await self._clear_namespaces(
            result,
            (
                CacheNamespace.DETAIL,
                "agents",
                CacheNamespace.USER,
                CacheNamespace.ADMIN,
                CacheNamespace.INDEX,
            ),
        )
        logger.info(f"Invalidated all catalog entries: {result.keys_deleted} keys")
        return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _clear_categories(self, result: InvalidationResult, categories: Iterable[str]) -> None:
        scopes = {
            ALL_CATEGORIES if category.lower() == ALL_CATEGORIES.lower() else category
            for category in categories
            if category
        }
        scopes.add(ALL_CATEGORIES)
        for category in sorted(scopes):
            await self._clear_scope(result, category)
        await self._clear_shared(result)

    async def _clear_scope(self, result: InvalidationResult, category: str) -> None:
        if self.strategy is InvalidationStrategy.INDEX:
            keys = await self.cache.pop_index(CacheKeys.category_index(category))
            if keys and await self.cache.delete(*keys):
                result.keys_deleted += len(keys)
            return

        # Bare scope keys (no filter parameters) do not match the pattern
        bare = [CacheKeys.scope(namespace, category) for namespace in CacheNamespace.SCOPED]
        await self.cache.delete(*bare)
        for namespace in CacheNamespace.SCOPED:
            pattern = CacheKeys.scope_pattern(namespace, category)
            result.patterns.append(pattern)
            result.keys_deleted += await self.cache.delete_by_pattern(pattern)

    async def _clear_shared(self, result: InvalidationResult) -> None:
        """Featured and category-summary entries span every category."""
        await self.cache.delete(CacheKeys.category_summary())
        pattern = CacheKeys.namespace_pattern(CacheNamespace.FEATURED)
        result.patterns.append(pattern)
        result.keys_deleted += await self.cache.delete_by_pattern(pattern)

    async def _clear_namespaces(
        self, result: InvalidationResult, namespaces: Iterable[str]
    ) -> None:
        for namespace in namespaces:
            pattern = CacheKeys.namespace_pattern(namespace)
            result.patterns.append(pattern)
            result.keys_deleted += await self.cache.delete_by_pattern(pattern)
