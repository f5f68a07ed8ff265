"""Shared FastAPI dependencies for the catalog routers."""

from __future__ import annotations

from typing import Any

from fastapi import Request

from bazaar.core.model import QueryParameters
from bazaar.service import CatalogService

# Query names that may repeat (?tags=a&tags=b) as well as be comma-separated
_MULTI_VALUE = ("tags", "features")


def get_service(request: Request) -> CatalogService:
    """The catalog service built during application startup."""
    return request.app.state.service


def query_parameters(request: Request) -> QueryParameters:
    """Normalize the raw query string into QueryParameters.

    Malformed values fall back to defaults instead of producing a 422.
    """
    raw: dict[str, Any] = dict(request.query_params)
    for name in _MULTI_VALUE:
        values = request.query_params.getlist(name)
        if len(values) > 1:
            raw[name] = ",".join(values)
    return QueryParameters.model_validate(raw)
