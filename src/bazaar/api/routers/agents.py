"""Catalog read endpoints.

Query parameters (all optional):
- category: exact category, "All" for the whole catalog
- sort (legacy: filter): HotNow, TopRated, Newest, Free
- priceMin, priceMax, ratingMin (legacy: rating)
- tags, features: comma-separated or repeated
- search (legacy: q, searchQuery)
- page, limit
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from bazaar.api.deps import get_service, query_parameters
from bazaar.core.model import QueryParameters
from bazaar.service import CatalogService

router = APIRouter(prefix="/agents", tags=["agents"])

Service = Annotated[CatalogService, Depends(get_service)]
Params = Annotated[QueryParameters, Depends(query_parameters)]


@router.get("")
async def list_agents(service: Service, params: Params) -> dict[str, Any]:
    """Filtered, sorted, paginated listing."""
    result = await service.list_agents(params)
    return result.to_payload()


@router.get("/count")
async def count_agents(service: Service, params: Params) -> dict[str, int]:
    """Size of the filtered result set (pagination ignored)."""
    return {"count": await service.count_agents(params)}


@router.get("/featured")
async def featured_agents(
    service: Service,
    limit: Annotated[int | None, Query(ge=1)] = None,
) -> dict[str, Any]:
    records = await service.featured_agents(limit)
    return {"items": [record.to_document() for record in records]}


@router.get("/categories")
async def category_summary(service: Service) -> dict[str, Any]:
    """Record count per category."""
    return {"categories": await service.category_summary()}


@router.get("/{agent_id}")
async def get_agent(
    agent_id: str,
    service: Service,
    skip_cache: Annotated[bool, Query(alias="skipCache")] = False,
) -> dict[str, Any]:
    """One record. ``skipCache=true`` reads the catalog store directly."""
    record = await service.get_agent_detail(agent_id, skip_cache=skip_cache)
    return record.to_document()
