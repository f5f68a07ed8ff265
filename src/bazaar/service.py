"""Catalog service facade.

Single entry point for the HTTP layer and the CLI: reads go through the
query engine, writes go to the catalog store and then invalidate the cache.
Every mutation finishes its invalidation before it returns, so the writer
always reads its own write.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from bazaar.cache.invalidation import (
    InvalidationCoordinator,
    InvalidationResult,
    InvalidationStrategy,
)
from bazaar.cache.keys import CacheKeys
from bazaar.cache.redis import CacheStore
from bazaar.core import merge
from bazaar.core.model import AgentPatch, AgentRecord, PagedResult, QueryParameters, Review
from bazaar.errors import NotFoundError, StoreUnavailable
from bazaar.observability.logging import LogContext
from bazaar.persistence.catalog import CatalogStore, TimedCatalogStore
from bazaar.query.engine import QueryEngine, candidate_ids

logger = logging.getLogger(__name__)

LIKE_VARIANT = "like"


class CatalogService:
    """Reads, mutations and cache administration for the catalog."""

    def __init__(
        self,
        store: CatalogStore,
        cache: CacheStore,
        *,
        strategy: InvalidationStrategy | str | None = None,
        store_timeout: float | None = None,
        engine: QueryEngine | None = None,
    ):
        self.store = store if isinstance(store, TimedCatalogStore) else TimedCatalogStore(
            store, timeout=store_timeout
        )
        self.cache = cache
        self.invalidator = InvalidationCoordinator(cache, strategy)
        self.engine = engine or QueryEngine(self.store, cache, invalidator=self.invalidator)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def list_agents(self, params: QueryParameters | Mapping[str, Any]) -> PagedResult:
        if not isinstance(params, QueryParameters):
            params = QueryParameters.model_validate(dict(params))
        return await self.engine.list_agents(params)

    async def count_agents(self, params: QueryParameters | Mapping[str, Any]) -> int:
        if not isinstance(params, QueryParameters):
            params = QueryParameters.model_validate(dict(params))
        return await self.engine.count_agents(params)

    async def featured_agents(self, limit: int | None = None) -> list[AgentRecord]:
        return await self.engine.featured_agents(limit)

    async def category_summary(self) -> dict[str, int]:
        return await self.engine.category_summary()

    async def get_agent_detail(self, agent_id: str, *, skip_cache: bool = False) -> AgentRecord:
        return await self.engine.get_agent_detail(agent_id, skip_cache=skip_cache)

    async def like_status(self, user_id: str, agent_ids: Iterable[str]) -> dict[str, bool]:
        """Whether ``user_id`` likes each record, batched through the cache.

        Unknown records report False.
        """
        keys = {
            agent_id: CacheKeys.user_agent(user_id, agent_id, LIKE_VARIANT)
            for agent_id in dict.fromkeys(agent_ids)
        }
        cached = await self.cache.get_many(keys.values())

        status: dict[str, bool] = {}
        fresh: dict[str, bool] = {}
        for agent_id, key in keys.items():
            if isinstance(cached.get(key), bool):
                status[agent_id] = cached[key]
                continue
            doc = await self.store.get_by_id(agent_id)
            liked = doc is not None and user_id in AgentRecord.from_document(doc).likes
            status[agent_id] = liked
            fresh[key] = liked

        if fresh:
            await self.cache.set_many(fresh)
        return status

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def _load(self, agent_id: str) -> AgentRecord:
        doc = await self.store.get_by_id(agent_id)
        if doc is None:
            raise NotFoundError("Agent", agent_id)
        return AgentRecord.from_document(doc, doc_id=agent_id)

    async def _save(self, record: AgentRecord) -> None:
        await self.store.put(record.id, record.to_document())

    @staticmethod
    def _categories(*records: AgentRecord | None) -> set[str]:
        categories: set[str] = set()
        for record in records:
            if record is not None:
                categories.update(filter(None, [record.category, *record.categories]))
        return categories

    async def create_agent(self, patch: AgentPatch, *, now: datetime | None = None) -> AgentRecord:
        record = merge.merge_agent(None, patch, now=now)
        await self._save(record)
        await self.invalidator.invalidate_agent(record.id, self._categories(record))
        logger.info(f"Created agent {record.id}", extra={"agent_id": record.id})
        return record

    async def update_agent(
        self, agent_id: str, patch: AgentPatch, *, now: datetime | None = None
    ) -> AgentRecord:
        """Merge ``patch`` into a stored record.

        Both the old and the new categories are invalidated.
        """
        existing = await self._load(agent_id)
        record = merge.merge_agent(existing, patch, now=now)
        await self._save(record)
        await self.invalidator.invalidate_agent(record.id, self._categories(existing, record))
        logger.info(f"Updated agent {record.id}", extra={"agent_id": record.id})
        return record

    async def delete_agent(self, agent_id: str) -> None:
        existing = await self._load(agent_id)
        await self.store.delete(agent_id)
        await self.invalidator.invalidate_agent(agent_id, self._categories(existing))
        logger.info(f"Deleted agent {agent_id}", extra={"agent_id": agent_id})

    async def toggle_like(self, agent_id: str, user_id: str) -> bool:
        """Flip the user's like; returns True when the user now likes it."""
        with LogContext(user_id=user_id):
            record = await self._load(agent_id)
            liked = merge.toggle_like(record, user_id)
            await self._save(record)
            await self.invalidator.invalidate_agent(agent_id, self._categories(record))
            logger.info(f"{'Liked' if liked else 'Unliked'} agent {agent_id}")
            return liked

    async def add_review(
        self,
        agent_id: str,
        user_id: str,
        rating: float,
        content: str,
        *,
        user_name: str | None = None,
        now: datetime | None = None,
    ) -> Review:
        with LogContext(user_id=user_id):
            record = await self._load(agent_id)
            review = merge.add_review(
                record, user_id, rating, content, user_name=user_name, now=now
            )
            record.updated_at = now or datetime.now(timezone.utc)
            await self._save(record)
            await self.invalidator.invalidate_agent(agent_id, self._categories(record))
            logger.info(f"Added review {review.id} to agent {agent_id}")
            return review

    async def remove_review(self, agent_id: str, review_id: str) -> Review:
        record = await self._load(agent_id)
        review = merge.remove_review(record, review_id)
        record.updated_at = datetime.now(timezone.utc)
        await self._save(record)
        await self.invalidator.invalidate_agent(agent_id, self._categories(record))
        logger.info(f"Removed review {review_id} from agent {agent_id}")
        return review

    # -------------------------------------------------------------------------
    # Cache administration
    # -------------------------------------------------------------------------

    async def invalidate_agent(self, agent_id: str) -> InvalidationResult:
        """Invalidate one record's entries.

        Legacy ids resolve to the id the record is cached under. The record's
        category is looked up so only its scopes are cleared; when the store
        cannot say, every category scope is cleared along with the detail
        entry of every candidate id.
        """
        ids = candidate_ids(agent_id)
        for candidate in ids:
            try:
                doc = await self.store.get_by_id(candidate)
            except StoreUnavailable:
                break
            if doc is not None:
                record = AgentRecord.from_document(doc, doc_id=candidate)
                return await self.invalidator.invalidate_agent(
                    record.id, self._categories(record)
                )

        result = await self.invalidator.invalidate_agent(agent_id, None)
        for candidate in ids:
            if candidate != agent_id and await self.cache.delete(CacheKeys.agent_detail(candidate)):
                result.keys_deleted += 1
        return result

    async def invalidate_category(self, category: str) -> InvalidationResult:
        return await self.invalidator.invalidate_category(category)

    async def invalidate_all(self) -> InvalidationResult:
        return await self.invalidator.invalidate_all()

    def cache_stats(self) -> dict[str, Any]:
        return {**self.cache.stats(), "strategy": self.invalidator.strategy.value}
