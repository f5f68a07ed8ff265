"""Query parameters and paged results for catalog listings.

QueryParameters never rejects input: malformed numbers are dropped or replaced
with defaults, so any query string maps to a valid parameter set.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from bazaar.config import settings
from bazaar.core.model.agent import AgentRecord

ALL_CATEGORIES = "All"

_NON_ALNUM = re.compile(r"[^a-z0-9]")


class SortStrategy(str, Enum):
    """Listing sort strategies."""

    HOT_NOW = "HotNow"
    TOP_RATED = "TopRated"
    NEWEST = "Newest"
    FREE = "Free"

    @classmethod
    def parse(cls, value: Any) -> "SortStrategy | None":
        """Parse a strategy leniently ("Top Rated", "top_rated", "TopRated").

        Returns None for unknown values, which means store order.
        """
        if isinstance(value, SortStrategy):
            return value
        if not isinstance(value, str):
            return None
        wanted = _NON_ALNUM.sub("", value.lower())
        for strategy in cls:
            if strategy.value.lower() == wanted:
                return strategy
        return None


def _optional_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _optional_int(value: Any) -> int | None:
    number = _optional_float(value)
    return int(number) if number is not None else None


def _string_set(value: Any) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        items: Iterable[Any] = value.split(",")
    elif isinstance(value, Iterable):
        items = value
    else:
        return frozenset()
    return frozenset(str(item).strip() for item in items if item is not None and str(item).strip())


class QueryParameters(BaseModel):
    """Normalized listing query."""

    model_config = {"populate_by_name": True, "alias_generator": to_camel}

    category: str = ALL_CATEGORIES
    sort: SortStrategy | None = None
    price_min: float | None = None
    price_max: float | None = None
    rating_min: float | None = None
    tags: frozenset[str] = frozenset()
    features: frozenset[str] = frozenset()
    search: str | None = None
    page: int = 1
    limit: int = Field(default_factory=lambda: settings.default_page_limit)

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, value: Any) -> str:
        category = "" if value is None else str(value).strip()
        if not category or category.lower() == ALL_CATEGORIES.lower():
            return ALL_CATEGORIES
        return category

    @field_validator("sort", mode="before")
    @classmethod
    def _parse_sort(cls, value: Any) -> SortStrategy | None:
        return SortStrategy.parse(value)

    @field_validator("price_min", "price_max", "rating_min", mode="before")
    @classmethod
    def _parse_number(cls, value: Any) -> float | None:
        return _optional_float(value)

    @field_validator("tags", "features", mode="before")
    @classmethod
    def _parse_set(cls, value: Any) -> frozenset[str]:
        return _string_set(value)

    @field_validator("search", mode="before")
    @classmethod
    def _strip_search(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("page", mode="before")
    @classmethod
    def _coerce_page(cls, value: Any) -> int:
        page = _optional_int(value)
        return page if page is not None and page >= 1 else 1

    @field_validator("limit", mode="before")
    @classmethod
    def _coerce_limit(cls, value: Any) -> int:
        limit = _optional_int(value)
        if limit is None or limit <= 0:
            return settings.default_page_limit
        return min(limit, settings.max_page_limit)

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_names(cls, data: Any) -> Any:
        """Map legacy query names (filter, q, rating) onto current ones."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "sort" not in data and "filter" in data:
            data["sort"] = data.pop("filter")
        if "search" not in data:
            for legacy in ("q", "searchQuery"):
                if legacy in data:
                    data["search"] = data.pop(legacy)
                    break
        if "ratingMin" not in data and "rating_min" not in data and "rating" in data:
            data["ratingMin"] = data.pop("rating")
        return data

    @model_validator(mode="after")
    def _order_price_bounds(self) -> "QueryParameters":
        if (
            self.price_min is not None
            and self.price_max is not None
            and self.price_min > self.price_max
        ):
            self.price_min, self.price_max = self.price_max, self.price_min
        return self

    @property
    def is_all_categories(self) -> bool:
        return self.category.lower() == ALL_CATEGORIES.lower()

    @property
    def start_index(self) -> int:
        return (self.page - 1) * self.limit

    def filter_params(self) -> dict[str, Any]:
        """Non-empty filter parameters, keyed by their query names.

        Category is excluded: it scopes the cache namespace instead.
        """
        params: dict[str, Any] = {
            "sort": self.sort.value if self.sort else None,
            "priceMin": self.price_min,
            "priceMax": self.price_max,
            "ratingMin": self.rating_min,
            "tags": self.tags,
            "features": self.features,
            "search": self.search,
        }
        return {key: value for key, value in params.items() if value not in (None, frozenset())}

    def cache_params(self) -> dict[str, Any]:
        """Filter parameters plus pagination, for result cache keys."""
        return {**self.filter_params(), "page": self.page, "limit": self.limit}


class PagedResult(BaseModel):
    """A page of filtered, sorted records."""

    model_config = {"populate_by_name": True, "alias_generator": to_camel}

    items: list[AgentRecord]
    total: int
    page: int
    limit: int
    total_pages: int
    has_more: bool = False

    @classmethod
    def paginate(cls, records: list[AgentRecord], page: int, limit: int) -> "PagedResult":
        """Slice ``records`` into the requested page.

        ``total`` and ``total_pages`` are computed over the filtered list.
        """
        total = len(records)
        start = (page - 1) * limit
        items = records[start : start + limit]
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if limit else 0,
            has_more=start + limit < total,
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
