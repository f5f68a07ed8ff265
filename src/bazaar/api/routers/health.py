"""Health check endpoints.

Provides Kubernetes-compatible liveness and readiness probes:
- /health/live  - Liveness probe (always returns OK if process is running)
- /health/ready - Readiness probe (checks catalog store and cache)

The cache is optional for serving: an unreachable cache reports "degraded"
and still returns 200. An unreachable catalog store returns 503.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import ORJSONResponse

router = APIRouter(tags=["health"])

CHECK_TIMEOUT = 5.0


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""

    name: str
    status: HealthStatus
    latency_ms: float
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            result["message"] = self.message
        return result


async def _check(
    name: str,
    probe: Callable[[], Awaitable[bool]],
    failed_status: HealthStatus,
) -> ComponentHealth:
    start = time.monotonic()
    try:
        healthy = await asyncio.wait_for(probe(), timeout=CHECK_TIMEOUT)
        message = None if healthy else f"{name} check failed"
    except asyncio.TimeoutError:
        healthy, message = False, f"{name} check timed out"
    latency = (time.monotonic() - start) * 1000
    return ComponentHealth(
        name=name,
        status=HealthStatus.HEALTHY if healthy else failed_status,
        latency_ms=latency,
        message=message,
    )


@router.get("/health/live")
async def live() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@router.get("/health/ready")
async def ready(request: Request) -> ORJSONResponse:
    """Readiness probe.

    Returns 200 when the catalog store answers (the cache may be down),
    503 otherwise.
    """
    state = request.app.state
    store_result, cache_result = await asyncio.gather(
        _check("store", state.store_probe, HealthStatus.UNHEALTHY),
        _check("cache", state.service.cache.health_check, HealthStatus.DEGRADED),
    )
    components = [store_result, cache_result]

    if any(c.status == HealthStatus.UNHEALTHY for c in components):
        overall_status = HealthStatus.UNHEALTHY
    elif any(c.status == HealthStatus.DEGRADED for c in components):
        overall_status = HealthStatus.DEGRADED
    else:
        overall_status = HealthStatus.HEALTHY

    return ORJSONResponse(
        content={
            "status": overall_status.value,
            "components": [c.to_dict() for c in components],
        },
        status_code=503 if overall_status == HealthStatus.UNHEALTHY else 200,
    )
