"""Shared fixtures for catalog unit tests.

Provides an in-process cache store honouring Redis glob semantics, an
in-memory catalog store and a small set of catalog documents.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta, timezone
from fnmatch import fnmatchcase
from typing import Any

import orjson
import pytest

from bazaar.cache.ttl import TtlPolicy
from bazaar.persistence.catalog import InMemoryCatalogStore
from bazaar.query.engine import QueryEngine
from bazaar.service import CatalogService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeCacheStore:
    """CacheStore backed by a dict.

    Values go through orjson like the Redis store. ``failing = True`` makes
    every operation behave like an unreachable cache.
    """

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.ttls: dict[str, int] = {}
        self.indexes: dict[str, set[str]] = {}
        self.policy = TtlPolicy.from_settings()
        self.failing = False
        self._available = True
        self.calls: list[tuple[str, str]] = []

    @property
    def available(self) -> bool:
        return self._available

    async def get(self, key: str) -> Any | None:
        self.calls.append(("get", key))
        if self.failing or key not in self.data:
            return None
        return orjson.loads(self.data[key])

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        self.calls.append(("set", key))
        if self.failing:
            return False
        self.data[key] = orjson.dumps(value)
        self.ttls[key] = ttl if ttl is not None else self.policy.ttl_for(key)
        return True

    async def delete(self, *keys: str) -> bool:
        for key in keys:
            self.calls.append(("delete", key))
        if self.failing:
            return False
        for key in keys:
            self.data.pop(key, None)
            self.indexes.pop(key, None)
        return True

    async def delete_by_pattern(self, pattern: str) -> int:
        self.calls.append(("delete_by_pattern", pattern))
        if self.failing:
            return 0
        matched = [key for key in self.data if fnmatchcase(key, pattern)]
        matched += [key for key in self.indexes if fnmatchcase(key, pattern)]
        for key in matched:
            self.data.pop(key, None)
            self.indexes.pop(key, None)
        return len(matched)

    async def get_many(self, keys: Iterable[str]) -> dict[str, Any]:
        found = {}
        for key in keys:
            value = await self.get(key)
            if value is not None:
                found[key] = value
        return found

    async def set_many(self, values: Mapping[str, Any], ttl: int | None = None) -> bool:
        results = [await self.set(key, value, ttl) for key, value in values.items()]
        return all(results)

    async def add_to_index(self, index_key: str, member: str) -> bool:
        if self.failing:
            return False
        self.indexes.setdefault(index_key, set()).add(member)
        return True

    async def pop_index(self, index_key: str) -> list[str]:
        if self.failing:
            return []
        return sorted(self.indexes.pop(index_key, set()))

    async def health_check(self) -> bool:
        return not self.failing

    async def reconnect(self) -> bool:
        self._available = not self.failing
        return self._available

    def mark_available(self) -> None:
        self._available = True

    def mark_unavailable(self) -> None:
        self._available = False

    def stats(self) -> dict[str, Any]:
        return {"available": self.available, "keys": len(self.data)}

    def keys(self, pattern: str = "*") -> list[str]:
        return sorted(key for key in self.data if fnmatchcase(key, pattern))


class CountingCatalogStore(InMemoryCatalogStore):
    """In-memory store that counts reads and can be made to fail."""

    def __init__(self, docs: Iterable[dict[str, Any]] = ()):
        super().__init__(docs)
        self.reads = 0
        self.error: Exception | None = None

    async def _read(self) -> None:
        self.reads += 1
        if self.error is not None:
            raise self.error

    async def query_by_equality(self, field: str, value: Any) -> list[dict[str, Any]]:
        await self._read()
        return await super().query_by_equality(field, value)

    async def get_by_id(self, agent_id: str) -> dict[str, Any] | None:
        await self._read()
        return await super().get_by_id(agent_id)

    async def list_all(self) -> list[dict[str, Any]]:
        await self._read()
        return await super().list_all()


def make_doc(agent_id: str, **fields: Any) -> dict[str, Any]:
    doc: dict[str, Any] = {
        "id": agent_id,
        "name": f"Agent {agent_id}",
        "category": "Writing",
        "createdAt": NOW.isoformat(),
    }
    doc.update(fields)
    return doc


@pytest.fixture
def cache() -> FakeCacheStore:
    return FakeCacheStore()


@pytest.fixture
def catalog_docs() -> list[dict[str, Any]]:
    """Three priced records plus a dateless and a featured one."""
    return [
        make_doc(
            "a",
            name="Alpha Writer",
            price=0,
            rating={"average": 4.5, "count": 2},
            createdAt=NOW.isoformat(),
            tags=["copy", "blog"],
            features=["templates"],
            popularity=5,
        ),
        make_doc(
            "b",
            name="Beta Coder",
            category="Coding",
            priceDetails={"basePrice": 10, "discountedPrice": 10},
            rating={"average": 4.8, "count": 10},
            createdAt=(NOW - timedelta(days=10)).isoformat(),
            popularity=50,
            isFeatured=True,
        ),
        make_doc(
            "c",
            name="Gamma Analyst",
            description="Spreadsheet helper",
            price="$5",
            rating={"average": 4.8, "count": 3},
            createdAt=(NOW - timedelta(days=1)).isoformat(),
            creator={"name": "Dana"},
            popularity=20,
            isFeatured=True,
        ),
    ]


@pytest.fixture
def store(catalog_docs: list[dict[str, Any]]) -> CountingCatalogStore:
    return CountingCatalogStore(catalog_docs)


@pytest.fixture
def engine(store: CountingCatalogStore, cache: FakeCacheStore) -> QueryEngine:
    return QueryEngine(store, cache, clock=lambda: NOW)


@pytest.fixture
def service(store: CountingCatalogStore, cache: FakeCacheStore) -> CatalogService:
    svc = CatalogService(store, cache, store_timeout=1.0)
    svc.engine._clock = lambda: NOW
    return svc
