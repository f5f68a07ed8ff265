"""FastAPI application factory for the catalog service.

Creates the application with:
- Catalog read endpoints (/agents)
- Cache administration endpoints (/cache)
- Health probes and Prometheus metrics
- Lifecycle management for the catalog store, Redis and the cache keep-alive
- Domain error mapping to Result/Message bodies
- ORJSON for fast JSON serialization
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, cast

import orjson
from fastapi import FastAPI
from fastapi.responses import ORJSONResponse
from starlette.types import ExceptionHandler

from bazaar.api.errors import bazaar_exception_handler, generic_exception_handler
from bazaar.api.middleware import CorrelationMiddleware
from bazaar.api.routers import agents, cache, health
from bazaar.api.routers import metrics as metrics_router
from bazaar.cache.keepalive import CacheKeepAlive
from bazaar.cache.redis import RedisCacheStore
from bazaar.config import settings
from bazaar.errors import BazaarError
from bazaar.observability import configure_logging
from bazaar.observability.metrics import MetricsMiddleware, get_metrics
from bazaar.persistence.catalog import CatalogStore, InMemoryCatalogStore
from bazaar.service import CatalogService

logger = logging.getLogger(__name__)

StoreProbe = Callable[[], Awaitable[bool]]


async def _always_ready() -> bool:
    return True


def load_seed(path: str) -> list[dict]:
    """Read a JSON array of catalog documents."""
    docs = orjson.loads(Path(path).read_bytes())
    if not isinstance(docs, list):
        raise ValueError(f"Seed file {path} must contain a JSON array")
    return docs


async def build_catalog_store() -> tuple[CatalogStore, StoreProbe]:
    """Catalog store for the configured backend, plus its readiness probe."""
    if settings.store_backend == "postgres":
        from bazaar.persistence.db import health_check, init_db
        from bazaar.persistence.sql import SqlCatalogStore

        await init_db()
        return SqlCatalogStore(), health_check

    docs = load_seed(settings.seed_file) if settings.seed_file else []
    logger.info(f"Using in-memory catalog store with {len(docs)} documents")
    return InMemoryCatalogStore(docs), _always_ready


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    On startup:
    - Configure structured logging
    - Initialize Prometheus metrics
    - Build the catalog store
    - Connect Redis and start the keep-alive supervisor

    On shutdown:
    - Stop the keep-alive supervisor
    - Close Redis and database connections

    A service injected through ``create_app`` is used as is.
    """
    configure_logging(json_format=settings.log_json, level=settings.log_level)
    get_metrics()

    if getattr(app.state, "service", None) is not None:
        yield
        return

    logger.info(f"Starting {settings.app_name} ({settings.env})")
    store, probe = await build_catalog_store()

    cache_store = RedisCacheStore()
    keepalive = CacheKeepAlive(cache_store)
    if settings.cache_enabled:
        if not await cache_store.connect():
            logger.warning("Cache unreachable at startup, serving from the catalog store")
        keepalive.start()

    app.state.service = CatalogService(store, cache_store)
    app.state.store_probe = probe
    logger.info(f"{settings.app_name} startup complete")

    yield

    logger.info(f"Shutting down {settings.app_name}")
    await keepalive.stop()
    await cache_store.close()
    if settings.store_backend == "postgres":
        from bazaar.persistence.db import close_db

        await close_db()
    logger.info(f"{settings.app_name} shutdown complete")


def create_app(
    service: CatalogService | None = None,
    store_probe: StoreProbe | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Pass ``service`` to skip the startup wiring (tests, embedding).
    """
    app = FastAPI(
        title="Bazaar Catalog",
        description="Agent marketplace catalog with a Redis cache layer",
        version="0.1.0",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    if service is not None:
        app.state.service = service
        app.state.store_probe = store_probe or _always_ready

    # CorrelationMiddleware is innermost so every other layer sees the ids
    app.add_middleware(CorrelationMiddleware)
    if settings.enable_metrics:
        app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(BazaarError, cast(ExceptionHandler, bazaar_exception_handler))
    app.add_exception_handler(Exception, cast(ExceptionHandler, generic_exception_handler))

    app.include_router(health.router)
    if settings.enable_metrics:
        app.include_router(metrics_router.router)
    app.include_router(agents.router)
    app.include_router(cache.router)

    return app
