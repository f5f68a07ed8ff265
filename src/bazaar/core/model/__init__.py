"""Catalog domain models.

Stored documents use camelCase field names; the models expose snake_case
attributes through a camelCase alias generator. Unknown document fields are
kept so that records survive a round trip through the cache unchanged.
"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class DocumentModel(BaseModel):
    """Base model for catalog documents.

    Note: extra="allow". Catalog documents carry legacy and collaborator-owned
    fields this layer never interprets.
    """

    model_config = {
        "extra": "allow",
        "populate_by_name": True,
        "alias_generator": to_camel,
    }


# ruff: noqa: E402
from bazaar.core.model.agent import (
    AgentPatch,
    AgentRecord,
    Creator,
    FileMetadata,
    PriceDetails,
    Rating,
    Review,
    resolve_timestamp,
)
from bazaar.core.model.query import PagedResult, QueryParameters, SortStrategy

__all__ = [
    "DocumentModel",
    "AgentRecord",
    "AgentPatch",
    "Creator",
    "FileMetadata",
    "PriceDetails",
    "Rating",
    "Review",
    "resolve_timestamp",
    "QueryParameters",
    "SortStrategy",
    "PagedResult",
]
