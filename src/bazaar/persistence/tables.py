"""SQLAlchemy ORM models for the catalog.

Records are stored as whole JSONB documents. ``category`` is copied out of
the document into its own column because it is the one predicate the query
engine pushes down to the store.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class AgentTable(Base):
    """Catalog records."""

    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(Text, primary_key=True)

    category: Mapped[str] = mapped_column(Text, nullable=False, default="", index=True)

    # Full record document (camelCase keys)
    doc: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        # GIN index for JSONB containment queries
        Index("idx_agents_doc_gin", doc, postgresql_using="gin"),
    )
