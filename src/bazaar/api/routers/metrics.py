"""Prometheus scrape endpoint.

Cache availability is sampled at scrape time so the gauge reflects the
keep-alive state even when no request has touched the cache since.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.responses import Response

from bazaar.observability.metrics import get_metrics, record_cache_available

router = APIRouter(tags=["observability"])


@router.get("/metrics", response_class=Response, summary="Prometheus metrics")
async def scrape(request: Request) -> Response:
    service = getattr(request.app.state, "service", None)
    if service is not None:
        record_cache_available(service.cache.available)
    return Response(content=get_metrics().generate_latest(), media_type=CONTENT_TYPE_LATEST)
