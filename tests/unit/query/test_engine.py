"""Tests for the cache-aside query engine."""

from typing import Any

import pytest

from bazaar.cache.invalidation import InvalidationCoordinator
from bazaar.cache.keys import CacheKeys
from bazaar.core.model import QueryParameters
from bazaar.errors import NotFoundError
from bazaar.persistence.catalog import InMemoryCatalogStore
from bazaar.query.engine import QueryEngine, candidate_ids


def _params(**raw: Any) -> QueryParameters:
    return QueryParameters.model_validate(raw)


def _ids(result) -> list[str]:
    return [record.id for record in result.items]


class TestListAgents:
    """Test filtered, sorted, paginated listings."""

    @pytest.mark.asyncio
    async def test_free(self, engine) -> None:
        """Free keeps only zero-priced records."""
        assert _ids(await engine.list_agents(_params(sort="Free"))) == ["a"]

    @pytest.mark.asyncio
    async def test_top_rated(self, engine) -> None:
        """Rating ties are broken by rating count."""
        assert _ids(await engine.list_agents(_params(sort="TopRated"))) == ["b", "c", "a"]

    @pytest.mark.asyncio
    async def test_newest(self, engine) -> None:
        """Newest first."""
        assert _ids(await engine.list_agents(_params(sort="Newest"))) == ["a", "c", "b"]

    @pytest.mark.asyncio
    async def test_category_pushdown(self, engine, store) -> None:
        """A category reads only that category from the store."""
        result = await engine.list_agents(_params(category="Writing", sort="Newest"))

        assert _ids(result) == ["a", "c"]
        assert result.total == 2

    @pytest.mark.asyncio
    async def test_pagination(self, cache) -> None:
        """Seven records at five per page leave two on page two."""
        docs = [{"id": f"r{i}", "name": f"Record {i}"} for i in range(7)]
        engine = QueryEngine(InMemoryCatalogStore(docs), cache)

        result = await engine.list_agents(_params(page=2, limit=5))

        assert _ids(result) == ["r5", "r6"]
        assert result.total == 7
        assert result.total_pages == 2
        assert result.has_more is False

    @pytest.mark.asyncio
    async def test_page_past_end(self, engine) -> None:
        """A page past the end is empty but keeps the total."""
        result = await engine.list_agents(_params(page=9, limit=2))

        assert result.items == []
        assert result.total == 3

    @pytest.mark.asyncio
    async def test_second_read_served_from_cache(self, engine, store, cache) -> None:
        """The store is read once for repeated identical queries."""
        first = await engine.list_agents(_params(sort="TopRated"))
        second = await engine.list_agents(_params(filter="top rated"))

        assert store.reads == 1
        assert second.to_payload() == first.to_payload()
        assert cache.ttls[CacheKeys.results(_params(sort="TopRated"))] == 86400

    @pytest.mark.asyncio
    async def test_cache_failure_is_transparent(self, engine, store, cache) -> None:
        """Results are identical with the cache down; the store serves every read."""
        healthy = await engine.list_agents(_params(sort="Newest", limit=2))
        cache.data.clear()
        cache.failing = True

        degraded_first = await engine.list_agents(_params(sort="Newest", limit=2))
        degraded_second = await engine.list_agents(_params(sort="Newest", limit=2))

        assert degraded_first.to_payload() == healthy.to_payload()
        assert degraded_second.to_payload() == healthy.to_payload()
        assert store.reads == 3

    @pytest.mark.asyncio
    async def test_malformed_documents_skipped(self, cache) -> None:
        """Documents that cannot be read as records are left out."""
        store = InMemoryCatalogStore([{"id": "ok", "name": "Fine"}, {"id": None, "name": "Bad"}])
        engine = QueryEngine(store, cache)

        assert _ids(await engine.list_agents(_params())) == ["ok"]

    @pytest.mark.asyncio
    async def test_malformed_cache_entry_ignored(self, engine, cache, store) -> None:
        """An unreadable cached page falls back to the store."""
        params = _params(sort="Newest")
        await cache.set(CacheKeys.results(params), {"unexpected": True})

        assert _ids(await engine.list_agents(params)) == ["a", "c", "b"]
        assert store.reads == 1

    @pytest.mark.asyncio
    async def test_index_strategy_tracks_keys(self, store, cache) -> None:
        """With the index strategy, cached keys are registered per category."""
        engine = QueryEngine(store, cache, invalidator=InvalidationCoordinator(cache, "index"))
        params = _params(category="Writing")

        await engine.list_agents(params)
        await engine.count_agents(params)

        assert cache.indexes["idx:category:Writing"] == {
            CacheKeys.results(params),
            CacheKeys.count(params),
        }


class TestCountAgents:
    """Test filtered counts."""

    @pytest.mark.asyncio
    async def test_count_ignores_pagination(self, engine) -> None:
        """Count covers the whole filtered set."""
        assert await engine.count_agents(_params(limit=1)) == 3
        assert await engine.count_agents(_params(category="Writing")) == 2
        assert await engine.count_agents(_params(sort="Free")) == 1

    @pytest.mark.asyncio
    async def test_count_cached(self, engine, store) -> None:
        """Counts are cached like listings."""
        await engine.count_agents(_params(priceMax=6))
        assert await engine.count_agents(_params(priceMax=6)) == 2
        assert store.reads == 1


class TestFeaturedAndSummary:
    """Test featured records and category counts."""

    @pytest.mark.asyncio
    async def test_featured_by_popularity(self, engine) -> None:
        """Featured records are ordered by popularity and capped."""
        assert [r.id for r in await engine.featured_agents()] == ["b", "c"]
        assert [r.id for r in await engine.featured_agents(1)] == ["b"]

    @pytest.mark.asyncio
    async def test_featured_cached(self, engine, store) -> None:
        """Repeated featured reads hit the cache."""
        await engine.featured_agents(2)
        cached = await engine.featured_agents(2)

        assert [r.id for r in cached] == ["b", "c"]
        assert store.reads == 1

    @pytest.mark.asyncio
    async def test_category_summary(self, engine, cache) -> None:
        """Records are counted per category."""
        assert await engine.category_summary() == {"Coding": 1, "Writing": 2}
        assert CacheKeys.category_summary() in cache.data


class TestAgentDetail:
    """Test single-record reads."""

    @pytest.mark.asyncio
    async def test_detail_cache_aside(self, engine, store, cache) -> None:
        """The first read fills the cache, the second is served from it."""
        first = await engine.get_agent_detail("b")
        second = await engine.get_agent_detail("b")

        assert first.id == second.id == "b"
        assert store.reads == 1
        assert cache.ttls["agent:b"] == 604800

    @pytest.mark.asyncio
    async def test_skip_cache_reads_store(self, engine, store) -> None:
        """skip_cache bypasses a cached record."""
        await engine.get_agent_detail("b")
        await engine.get_agent_detail("b", skip_cache=True)

        assert store.reads == 2

    @pytest.mark.asyncio
    async def test_invalidation_forces_store_read(self, engine, store) -> None:
        """After invalidation the next read goes to the store."""
        await engine.get_agent_detail("c")
        await engine.invalidator.invalidate_agent("c", ["Writing"])
        await engine.get_agent_detail("c")

        assert store.reads == 2

    @pytest.mark.asyncio
    async def test_legacy_id(self, cache) -> None:
        """'agent-123' resolves to record '123' and is cached under it."""
        engine = QueryEngine(InMemoryCatalogStore([{"id": "123", "name": "Legacy"}]), cache)

        record = await engine.get_agent_detail("agent-123")

        assert record.id == "123"
        assert cache.keys("agent:*") == ["agent:123"]

    @pytest.mark.asyncio
    async def test_not_found(self, engine) -> None:
        """Unknown ids raise NotFoundError."""
        with pytest.raises(NotFoundError) as exc_info:
            await engine.get_agent_detail("missing")
        assert exc_info.value.identifier == "missing"

    def test_candidate_ids(self) -> None:
        """Legacy ids try the numeric id first."""
        assert candidate_ids("agent-42") == ["42", "agent-42"]
        assert candidate_ids("agent-x") == ["agent-x"]
        assert candidate_ids("42") == ["42"]
