"""Catalog store interface and adapters.

The catalog store holds the authoritative documents. The query engine needs
one pushed-down predicate (equality on a field) plus lookup by id; writes
exist for the mutation helpers.

Documents are plain JSON-compatible dicts with camelCase keys and an ``id``.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from collections.abc import Awaitable, Iterable
from typing import Any, Protocol, TypeVar

from bazaar.config import settings
from bazaar.errors import StoreUnavailable
from bazaar.observability.metrics import record_store_call

logger = logging.getLogger(__name__)

T = TypeVar("T")

Document = dict[str, Any]


class CatalogStore(Protocol):
    """Operations the catalog layer needs from a document store."""

    async def query_by_equality(self, field: str, value: Any) -> list[Document]: ...

    async def get_by_id(self, agent_id: str) -> Document | None: ...

    async def list_all(self) -> list[Document]: ...

    async def put(self, agent_id: str, doc: Document) -> None: ...

    async def delete(self, agent_id: str) -> bool: ...


class InMemoryCatalogStore:
    """Dict-backed catalog store for development and tests.

    Documents are deep-copied in and out so callers cannot mutate stored
    state. Insertion order is the store order.
    """

    def __init__(self, docs: Iterable[Document] = ()):
        self._docs: dict[str, Document] = {}
        for doc in docs:
            self._docs[str(doc["id"])] = copy.deepcopy(doc)

    def __len__(self) -> int:
        return len(self._docs)

    async def query_by_equality(self, field: str, value: Any) -> list[Document]:
        return [copy.deepcopy(doc) for doc in self._docs.values() if doc.get(field) == value]

    async def get_by_id(self, agent_id: str) -> Document | None:
        doc = self._docs.get(agent_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def list_all(self) -> list[Document]:
        return [copy.deepcopy(doc) for doc in self._docs.values()]

    async def put(self, agent_id: str, doc: Document) -> None:
        self._docs[agent_id] = copy.deepcopy({**doc, "id": agent_id})

    async def delete(self, agent_id: str) -> bool:
        return self._docs.pop(agent_id, None) is not None


class TimedCatalogStore:
    """Bounds every call to a catalog store with a timeout.

    Timeouts and adapter failures surface as StoreUnavailable; call latency
    is recorded per operation.
    """

    def __init__(self, store: CatalogStore, timeout: float | None = None):
        self.store = store
        self.timeout = timeout if timeout is not None else settings.store_timeout

    async def _call(self, operation: str, call: Awaitable[T]) -> T:
        start = time.perf_counter()
        failed = False
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            failed = True
            logger.error(f"Catalog store {operation} timed out after {self.timeout}s")
            raise StoreUnavailable(f"Catalog store timed out during {operation}") from e
        except StoreUnavailable:
            failed = True
            raise
        except Exception as e:
            failed = True
            logger.error(f"Catalog store {operation} failed: {e}")
            raise StoreUnavailable(f"Catalog store failed during {operation}") from e
        finally:
            record_store_call(operation, time.perf_counter() - start, failed=failed)

    async def query_by_equality(self, field: str, value: Any) -> list[Document]:
        return await self._call("query_by_equality", self.store.query_by_equality(field, value))

    async def get_by_id(self, agent_id: str) -> Document | None:
        return await self._call("get_by_id", self.store.get_by_id(agent_id))

    async def list_all(self) -> list[Document]:
        return await self._call("list_all", self.store.list_all())

    async def put(self, agent_id: str, doc: Document) -> None:
        await self._call("put", self.store.put(agent_id, doc))

    async def delete(self, agent_id: str) -> bool:
        return await self._call("delete", self.store.delete(agent_id))
