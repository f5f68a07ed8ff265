"""PostgreSQL catalog store.

Each call runs in its own short transaction through ``session_context``.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert

from bazaar.persistence.catalog import Document
from bazaar.persistence.db import session_context
from bazaar.persistence.tables import AgentTable


class SqlCatalogStore:
    """Catalog store over the ``agents`` table."""

    async def query_by_equality(self, field: str, value: Any) -> list[Document]:
        if field == "category":
            condition = AgentTable.category == value
        else:
            # Containment uses the GIN index
            condition = AgentTable.doc.contains({field: value})
        stmt = select(AgentTable.id, AgentTable.doc).where(condition).order_by(AgentTable.created_at)
        async with session_context() as session:
            result = await session.execute(stmt)
            return [{**doc, "id": row_id} for row_id, doc in result.all()]

    async def get_by_id(self, agent_id: str) -> Document | None:
        stmt = select(AgentTable.doc).where(AgentTable.id == agent_id)
        async with session_context() as session:
            result = await session.execute(stmt)
            doc = result.scalar_one_or_none()
        return {**doc, "id": agent_id} if doc is not None else None

    async def list_all(self) -> list[Document]:
        stmt = select(AgentTable.id, AgentTable.doc).order_by(AgentTable.created_at)
        async with session_context() as session:
            result = await session.execute(stmt)
            return [{**doc, "id": row_id} for row_id, doc in result.all()]

    async def put(self, agent_id: str, doc: Document) -> None:
        values = {"id": agent_id, "category": doc.get("category") or "", "doc": doc}
        stmt = insert(AgentTable).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[AgentTable.id],
            set_={
                "category": stmt.excluded.category,
                "doc": stmt.excluded.doc,
                "updated_at": func.now(),
            },
        )
        async with session_context() as session:
            await session.execute(stmt)

    async def delete(self, agent_id: str) -> bool:
        stmt = delete(AgentTable).where(AgentTable.id == agent_id)
        async with session_context() as session:
            result = await session.execute(stmt)
            return bool(result.rowcount)
