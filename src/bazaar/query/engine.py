"""Catalog query engine.

Read path for listings, counts, featured records and record detail. Every
read is cache-aside: look up the cache, fall back to the catalog store on a
miss (or on any cache failure), then populate the cache.

Only ``category == value`` is pushed down to the store; filtering, sorting
and pagination run in process over the category's records.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError as PydanticValidationError

from bazaar.cache.invalidation import InvalidationCoordinator
from bazaar.cache.keys import CacheKeys
from bazaar.cache.redis import CacheStore
from bazaar.config import settings
from bazaar.core.model import AgentRecord, PagedResult, QueryParameters
from bazaar.core.model.query import ALL_CATEGORIES
from bazaar.errors import NotFoundError
from bazaar.persistence.catalog import CatalogStore, Document
from bazaar.query.filters import apply_filters
from bazaar.query.sorting import sort_records

logger = logging.getLogger(__name__)

# Legacy numeric ids were exposed as "agent-123"
_LEGACY_ID = re.compile(r"^agent-(\d+)$")


def candidate_ids(agent_id: str) -> list[str]:
    """Ids to try for a detail lookup, most specific first."""
    match = _LEGACY_ID.match(agent_id)
    if match:
        return [match.group(1), agent_id]
    return [agent_id]


class QueryEngine:
    """Cache-aside reads over the catalog store."""

    def __init__(
        self,
        store: CatalogStore,
        cache: CacheStore,
        *,
        invalidator: InvalidationCoordinator | None = None,
        hot_now_window: timedelta | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.cache = cache
        self.invalidator = invalidator or InvalidationCoordinator(cache)
        self.hot_now_window = hot_now_window or timedelta(days=settings.hot_now_window_days)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # -------------------------------------------------------------------------
    # Store access
    # -------------------------------------------------------------------------

    def _to_records(self, docs: list[Document]) -> list[AgentRecord]:
        records = []
        for doc in docs:
            try:
                records.append(AgentRecord.from_document(doc))
            except PydanticValidationError as e:
                logger.warning(
                    f"Skipping malformed catalog document: {e.error_count()} errors",
                    extra={"agent_id": doc.get("id")},
                )
        return records

    async def fetch_scope(self, category: str) -> list[AgentRecord]:
        """All records of one category ("All" reads the whole catalog)."""
        if not category or category.lower() == ALL_CATEGORIES.lower():
            docs = await self.store.list_all()
        else:
            docs = await self.store.query_by_equality("category", category)
        return self._to_records(docs)

    def select(self, records: list[AgentRecord], params: QueryParameters) -> list[AgentRecord]:
        """Filter then sort, without pagination."""
        return sort_records(
            apply_filters(records, params),
            params.sort,
            now=self._clock(),
            window=self.hot_now_window,
        )

    async def _cache_scoped(self, category: str, key: str, payload: object) -> None:
        if await self.cache.set(key, payload):
            await self.invalidator.track(category, key)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_agents(self, params: QueryParameters) -> PagedResult:
        """Filtered, sorted page of records."""
        key = CacheKeys.results(params)
        cached = await self.cache.get(key)
        if cached is not None:
            try:
                return PagedResult.model_validate(cached)
            except PydanticValidationError:
                logger.warning("Ignoring malformed cached listing", extra={"cache_key": key})

        records = self.select(await self.fetch_scope(params.category), params)
        result = PagedResult.paginate(records, params.page, params.limit)
        await self._cache_scoped(params.category, key, result.to_payload())
        return result

    async def count_agents(self, params: QueryParameters) -> int:
        """Size of the filtered result set."""
        key = CacheKeys.count(params)
        cached = await self.cache.get(key)
        if isinstance(cached, int) and not isinstance(cached, bool):
            return cached

        total = len(apply_filters(await self.fetch_scope(params.category), params))
        await self._cache_scoped(params.category, key, total)
        return total

    async def featured_agents(self, limit: int | None = None) -> list[AgentRecord]:
        """Featured records, most popular first."""
        limit = max(1, min(limit or settings.featured_limit, settings.max_page_limit))
        key = CacheKeys.featured(limit)
        cached = await self.cache.get(key)
        if isinstance(cached, list):
            try:
                return [AgentRecord.model_validate(item) for item in cached]
            except PydanticValidationError:
                logger.warning("Ignoring malformed cached featured list", extra={"cache_key": key})

        featured = [record for record in await self.fetch_scope(ALL_CATEGORIES) if record.is_featured]
        featured.sort(key=lambda record: -record.popularity)
        featured = featured[:limit]
        await self.cache.set(key, [record.to_document() for record in featured])
        return featured

    async def category_summary(self) -> dict[str, int]:
        """Record count per category."""
        key = CacheKeys.category_summary()
        cached = await self.cache.get(key)
        if isinstance(cached, dict):
            return cached

        counts: dict[str, int] = {}
        for record in await self.fetch_scope(ALL_CATEGORIES):
            if record.category:
                counts[record.category] = counts.get(record.category, 0) + 1
        summary = dict(sorted(counts.items()))
        await self.cache.set(key, summary)
        return summary

    async def get_agent_detail(self, agent_id: str, *, skip_cache: bool = False) -> AgentRecord:
        """One record, cache-first unless ``skip_cache``.

        Raises:
            NotFoundError: No record under any candidate id.
        """
        ids = candidate_ids(agent_id)
        if not skip_cache:
            for candidate in ids:
                key = CacheKeys.agent_detail(candidate)
                cached = await self.cache.get(key)
                if not isinstance(cached, dict):
                    continue
                try:
                    return AgentRecord.model_validate(cached)
                except PydanticValidationError:
                    logger.warning("Ignoring malformed cached record", extra={"cache_key": key})

        for candidate in ids:
            doc = await self.store.get_by_id(candidate)
            if doc is not None:
                record = AgentRecord.from_document(doc, doc_id=candidate)
                # Cached under the canonical id only, so invalidation finds it
                await self.cache.set(CacheKeys.agent_detail(record.id), record.to_document())
                return record

        raise NotFoundError("Agent", agent_id)
