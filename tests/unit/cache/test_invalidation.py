"""Tests for cache invalidation."""

import pytest

from bazaar.cache.invalidation import (
    InvalidationCoordinator,
    InvalidationScope,
    InvalidationStrategy,
)

SEEDED = [
    "agent:a",
    "agent:b",
    "agents:list:Writing:limit:20:page:1",
    "agents:list:WritingTools:limit:20:page:1",
    "agents:list:Coding:limit:20:page:1",
    "agents:list:All:limit:20:page:1",
    "agents:search:Writing:limit:20:page:1:search:bot",
    "agents:count:Writing",
    "agents:count:Coding:sort:Free",
    "agents:featured:limit:8",
    "agents:category:summary",
    "user:u1:agent:a:like",
    "user:u1:agent:b:like",
    "admin:overview",
    "external:github:repo",
]


@pytest.fixture
async def seeded(cache):
    for key in SEEDED:
        await cache.set(key, 1)
    return cache


class TestPatternInvalidation:
    """Test glob-based invalidation."""

    @pytest.mark.asyncio
    async def test_agent_invalidation(self, seeded) -> None:
        """A record's detail, category, shared and per-user entries go."""
        coordinator = InvalidationCoordinator(seeded, InvalidationStrategy.PATTERN)

        result = await coordinator.invalidate_agent("a", ["Writing"])

        assert result.scope is InvalidationScope.AGENT
        assert seeded.keys() == sorted(
            [
                "agent:b",
                "agents:list:WritingTools:limit:20:page:1",
                "agents:list:Coding:limit:20:page:1",
                "agents:count:Coding:sort:Free",
                "user:u1:agent:b:like",
                "admin:overview",
                "external:github:repo",
            ]
        )

    @pytest.mark.asyncio
    async def test_detail_removed_before_listings(self, seeded) -> None:
        """Removal order: detail, category scopes, then per-user entries."""
        coordinator = InvalidationCoordinator(seeded, InvalidationStrategy.PATTERN)

        await coordinator.invalidate_agent("a", ["Writing"])

        deletes = [key for op, key in seeded.calls if op.startswith("delete")]
        assert deletes[0] == "agent:a"
        assert deletes[-1] == "user:*:agent:a:*"

    @pytest.mark.asyncio
    async def test_unknown_categories_clear_every_scope(self, seeded) -> None:
        """Without categories every scoped entry is removed."""
        coordinator = InvalidationCoordinator(seeded, InvalidationStrategy.PATTERN)

        await coordinator.invalidate_agent("a")

        assert seeded.keys("agents:*") == []
        assert seeded.keys("agent:*") == ["agent:b"]

    @pytest.mark.asyncio
    async def test_category_invalidation(self, seeded) -> None:
        """Category, All and shared entries go; details stay."""
        coordinator = InvalidationCoordinator(seeded, InvalidationStrategy.PATTERN)

        result = await coordinator.invalidate_category("Coding")

        assert result.target == "Coding"
        assert "agents:list:Coding:*" in result.patterns
        assert seeded.keys("agents:*") == [
            "agents:count:Writing",
            "agents:list:Writing:limit:20:page:1",
            "agents:list:WritingTools:limit:20:page:1",
            "agents:search:Writing:limit:20:page:1:search:bot",
        ]
        assert seeded.keys("agent:*") == ["agent:a", "agent:b"]

    @pytest.mark.asyncio
    async def test_all_category_any_case(self, seeded) -> None:
        """'all' clears the All aggregate rather than a scope of its own."""
        coordinator = InvalidationCoordinator(seeded, InvalidationStrategy.PATTERN)

        result = await coordinator.invalidate_category("all")

        assert "agents:list:all:*" not in result.patterns
        assert seeded.keys("agents:list:All:*") == []
        assert seeded.keys("agents:list:Coding:*") != []

    @pytest.mark.asyncio
    async def test_invalidate_all_keeps_external(self, seeded) -> None:
        """Everything derived from the catalog goes; external entries stay."""
        coordinator = InvalidationCoordinator(seeded, InvalidationStrategy.PATTERN)

        result = await coordinator.invalidate_all()

        assert seeded.keys() == ["external:github:repo"]
        assert result.keys_deleted == len(SEEDED) - 1

    @pytest.mark.asyncio
    async def test_cache_failure_is_tolerated(self, seeded) -> None:
        """Invalidation completes even when the cache is down."""
        seeded.failing = True
        coordinator = InvalidationCoordinator(seeded, InvalidationStrategy.PATTERN)

        result = await coordinator.invalidate_agent("a", ["Writing"])

        assert result.keys_deleted == 0

    def test_result_payload(self) -> None:
        """Results serialize with camelCase fields."""
        from bazaar.cache.invalidation import InvalidationResult

        payload = InvalidationResult(InvalidationScope.CATEGORY, "Coding", 3, ["p"]).to_payload()
        assert payload == {
            "scope": "category",
            "target": "Coding",
            "keysDeleted": 3,
            "patterns": ["p"],
        }


class TestIndexInvalidation:
    """Test reverse-index invalidation."""

    @pytest.mark.asyncio
    async def test_track_only_in_index_mode(self, cache) -> None:
        """Pattern mode keeps no index."""
        await InvalidationCoordinator(cache, "pattern").track("Writing", "agents:list:Writing")
        assert cache.indexes == {}

        await InvalidationCoordinator(cache, "index").track("Writing", "agents:list:Writing")
        assert cache.indexes == {"idx:category:Writing": {"agents:list:Writing"}}

    @pytest.mark.asyncio
    async def test_deletes_exactly_tracked_keys(self, cache) -> None:
        """Only tracked keys of the category are removed."""
        coordinator = InvalidationCoordinator(cache, InvalidationStrategy.INDEX)
        tracked = "agents:list:Writing:limit:20:page:1"
        untracked = "agents:list:Writing:limit:20:page:2"
        await cache.set(tracked, 1)
        await cache.set(untracked, 1)
        await coordinator.track("Writing", tracked)

        result = await coordinator.invalidate_category("Writing")

        assert cache.keys("agents:list:*") == [untracked]
        assert result.keys_deleted == 1
        assert "idx:category:Writing" not in cache.indexes

    @pytest.mark.asyncio
    async def test_agent_invalidation_pops_all_scope(self, cache) -> None:
        """The All scope index is cleared alongside the record's categories."""
        coordinator = InvalidationCoordinator(cache, InvalidationStrategy.INDEX)
        await cache.set("agents:list:All:page:1", 1)
        await coordinator.track("All", "agents:list:All:page:1")

        await coordinator.invalidate_agent("a", ["Writing"])

        assert cache.keys("agents:list:*") == []
        assert cache.indexes == {}
