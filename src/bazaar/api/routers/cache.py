"""Cache administration endpoints.

Provides:
- Hit/miss/error counters and availability
- Invalidation by record, by category, or of the whole catalog
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends

from bazaar.api.deps import get_service
from bazaar.service import CatalogService

router = APIRouter(prefix="/cache", tags=["cache"])

Service = Annotated[CatalogService, Depends(get_service)]


@router.get("/stats")
async def cache_stats(service: Service) -> dict[str, Any]:
    return service.cache_stats()


@router.post("/invalidate/agent/{agent_id}")
async def invalidate_agent(agent_id: str, service: Service) -> dict[str, Any]:
    """Invalidate one record's detail, listing and per-user entries."""
    result = await service.invalidate_agent(agent_id)
    return result.to_payload()


@router.post("/invalidate/category/{category}")
async def invalidate_category(category: str, service: Service) -> dict[str, Any]:
    result = await service.invalidate_category(category)
    return result.to_payload()


@router.post("/invalidate/all")
async def invalidate_all(service: Service) -> dict[str, Any]:
    result = await service.invalidate_all()
    return result.to_payload()
