"""Persistence layer for the catalog.

This module provides:
- The CatalogStore protocol and a timeout-bounded wrapper
- An in-memory store for development and tests
- A PostgreSQL store (SQLAlchemy asyncio, JSONB documents)
"""

from bazaar.persistence.catalog import (
    CatalogStore,
    Document,
    InMemoryCatalogStore,
    TimedCatalogStore,
)
from bazaar.persistence.db import close_db, get_engine, init_db
from bazaar.persistence.sql import SqlCatalogStore
from bazaar.persistence.tables import AgentTable

__all__ = [
    # Stores
    "CatalogStore",
    "Document",
    "InMemoryCatalogStore",
    "SqlCatalogStore",
    "TimedCatalogStore",
    # DB
    "get_engine",
    "init_db",
    "close_db",
    # Tables
    "AgentTable",
]
