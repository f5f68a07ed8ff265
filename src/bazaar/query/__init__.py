"""Catalog query engine: filters, sorts and cache-aside reads."""

from bazaar.query.engine import QueryEngine, candidate_ids
from bazaar.query.filters import FILTER_STAGES, apply_filters, effective_price, is_free
from bazaar.query.sorting import sort_records

__all__ = [
    "QueryEngine",
    "candidate_ids",
    "FILTER_STAGES",
    "apply_filters",
    "effective_price",
    "is_free",
    "sort_records",
]
