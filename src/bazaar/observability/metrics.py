"""Prometheus metrics for the catalog service.

Provides metrics collection and exposure:
- HTTP request metrics (latency, count)
- Catalog store metrics (call latency, failures)
- Cache metrics (hits, misses, errors, invalidations)

Usage:
    from bazaar.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.http_requests_total.labels(method="GET", path="/agents", status=200).inc()
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from prometheus_client import REGISTRY, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from bazaar.config import settings

if TYPE_CHECKING:
    from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    # HTTP metrics
    http_requests_total: Any = None
    http_request_duration_seconds: Any = None

    # Catalog store metrics
    store_call_duration_seconds: Any = None
    store_failures_total: Any = None

    # Cache metrics
    cache_hits_total: Any = None
    cache_misses_total: Any = None
    cache_errors_total: Any = None
    cache_available: Any = None
    cache_invalidations_total: Any = None

    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        self._registry = REGISTRY

        self.http_requests_total = Counter(
            "bazaar_http_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
        )
        self.http_request_duration_seconds = Histogram(
            "bazaar_http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "path"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
        )

        self.store_call_duration_seconds = Histogram(
            "bazaar_store_call_duration_seconds",
            "Catalog store call latency in seconds",
            ["operation"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0),
        )
        self.store_failures_total = Counter(
            "bazaar_store_failures_total",
            "Catalog store calls that failed or timed out",
            ["operation"],
        )

        self.cache_hits_total = Counter(
            "bazaar_cache_hits_total",
            "Cache hits",
            ["namespace"],
        )
        self.cache_misses_total = Counter(
            "bazaar_cache_misses_total",
            "Cache misses",
            ["namespace"],
        )
        self.cache_errors_total = Counter(
            "bazaar_cache_errors_total",
            "Cache operations that failed and were bypassed",
            ["operation"],
        )
        self.cache_available = Gauge(
            "bazaar_cache_available",
            "1 when the cache store is reachable",
        )
        self.cache_invalidations_total = Counter(
            "bazaar_cache_invalidations_total",
            "Invalidation requests",
            ["scope"],
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not settings.enable_metrics or self._registry is None:
            return b"# Metrics disabled\n"
        return generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware recording request count and duration."""

    def __init__(self, app: "ASGIApp") -> None:
        super().__init__(app)
        self.metrics = get_metrics()

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        if request.url.path.startswith("/health") or request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        path = self._normalize_path(request.url.path)
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time
            if self.metrics.http_requests_total:
                self.metrics.http_requests_total.labels(
                    method=method, path=path, status=status_code
                ).inc()
            if self.metrics.http_request_duration_seconds:
                self.metrics.http_request_duration_seconds.labels(
                    method=method, path=path
                ).observe(duration)

    def _normalize_path(self, path: str) -> str:
        """Replace identifiers with placeholders to bound label cardinality.

        Examples:
            /agents/abc123 -> /agents/{id}
            /cache/invalidate/category/Writing -> /cache/invalidate/category/{id}
        """
        parts = path.strip("/").split("/")
        fixed = {"agents": {"count", "featured", "categories"}, "category": set(), "agent": set()}
        normalized: list[str] = []
        i = 0
        while i < len(parts):
            part = parts[i]
            normalized.append(part)
            if part in fixed and i + 1 < len(parts) and parts[i + 1] not in fixed[part]:
                normalized.append("{id}")
                i += 1
            i += 1
        return "/" + "/".join(normalized) if normalized else path


def record_store_call(operation: str, duration: float, failed: bool = False) -> None:
    """Record a catalog store call.

    Args:
        operation: Store operation (list_all, query_by_equality, get_by_id, ...)
        duration: Call duration in seconds
        failed: The call raised or timed out
    """
    metrics = get_metrics()
    if metrics.store_call_duration_seconds:
        metrics.store_call_duration_seconds.labels(operation=operation).observe(duration)
    if failed and metrics.store_failures_total:
        metrics.store_failures_total.labels(operation=operation).inc()


def record_cache_hit(namespace: str) -> None:
    metrics = get_metrics()
    if metrics.cache_hits_total:
        metrics.cache_hits_total.labels(namespace=namespace).inc()


def record_cache_miss(namespace: str) -> None:
    metrics = get_metrics()
    if metrics.cache_misses_total:
        metrics.cache_misses_total.labels(namespace=namespace).inc()


def record_cache_error(operation: str) -> None:
    metrics = get_metrics()
    if metrics.cache_errors_total:
        metrics.cache_errors_total.labels(operation=operation).inc()


def record_cache_available(available: bool) -> None:
    metrics = get_metrics()
    if metrics.cache_available:
        metrics.cache_available.set(1 if available else 0)


def record_invalidation(scope: str) -> None:
    """Record an invalidation request.

    Args:
        scope: agent, category or all
    """
    metrics = get_metrics()
    if metrics.cache_invalidations_total:
        metrics.cache_invalidations_total.labels(scope=scope).inc()
