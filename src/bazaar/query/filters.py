"""Filter predicates for catalog listings.

Each predicate answers "does this record survive this stage" and passes
every record when its parameter is absent. Predicates are independent, so
the result of applying them does not depend on their order.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Iterable
from typing import Any

from bazaar.core.model import AgentRecord, QueryParameters, SortStrategy

FilterStage = Callable[[AgentRecord, QueryParameters], bool]

# Everything but digits, sign and decimal point ("$9.99", "9,99 USD")
_PRICE_NOISE = re.compile(r"[^0-9.\-]")

_FREE_FEATURES = frozenset({"free", "isfree"})
_SUBSCRIPTION_FEATURES = frozenset({"subscription", "issubscription"})


def parse_legacy_price(value: Any) -> float | None:
    """Parse a legacy flat price ("Free", "$9.99", 10).

    Returns None when the value is missing or unparsable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None

    text = value.strip().lower()
    if not text:
        return None
    if text == "free":
        return 0.0
    cleaned = _PRICE_NOISE.sub("", text)
    try:
        number = float(cleaned)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def is_free(record: AgentRecord) -> bool:
    """isFree if set, else a zero base price, else a zero legacy price."""
    if record.is_free is not None:
        return record.is_free
    if record.price_details is not None and record.price_details.base_price is not None:
        return record.price_details.base_price == 0
    return parse_legacy_price(record.price) == 0


def is_subscription(record: AgentRecord) -> bool:
    if record.is_subscription is not None:
        return record.is_subscription
    return bool(record.price_details and record.price_details.is_subscription)


def effective_price(record: AgentRecord) -> float | None:
    """Price a buyer pays: discounted price, else the parsed legacy price."""
    if record.price_details is not None and record.price_details.discounted_price is not None:
        return record.price_details.discounted_price
    return parse_legacy_price(record.price)


# -----------------------------------------------------------------------------
# Stages
# -----------------------------------------------------------------------------


def matches_free(record: AgentRecord, params: QueryParameters) -> bool:
    if params.sort is not SortStrategy.FREE:
        return True
    return is_free(record)


def matches_price(record: AgentRecord, params: QueryParameters) -> bool:
    if params.price_min is None and params.price_max is None:
        return True
    price = effective_price(record)
    if price is None:
        price = math.inf
    if params.price_min is not None and price < params.price_min:
        return False
    if params.price_max is not None and price > params.price_max:
        return False
    return True


def matches_rating(record: AgentRecord, params: QueryParameters) -> bool:
    if params.rating_min is None:
        return True
    return record.rating.average >= params.rating_min


def matches_tags(record: AgentRecord, params: QueryParameters) -> bool:
    """Category in the requested set, or any tag in common (case-insensitive)."""
    if not params.tags:
        return True
    wanted = {tag.lower() for tag in params.tags}
    if record.category and record.category.lower() in wanted:
        return True
    return any(tag.lower() in wanted for tag in record.tags)


def matches_features(record: AgentRecord, params: QueryParameters) -> bool:
    """Any requested feature present.

    "free" and "subscription" test the price flags; other names are looked
    up in the record's feature list (case-insensitive).
    """
    if not params.features:
        return True
    owned = {feature.lower() for feature in record.features}
    for feature in params.features:
        wanted = feature.lower()
        if wanted in _FREE_FEATURES:
            if is_free(record):
                return True
        elif wanted in _SUBSCRIPTION_FEATURES:
            if is_subscription(record):
                return True
        elif wanted in owned:
            return True
    return False


def matches_search(record: AgentRecord, params: QueryParameters) -> bool:
    if not params.search:
        return True
    term = params.search.lower()
    fields = (record.name, record.title, record.description, record.creator_name)
    return any(term in field.lower() for field in fields if field)


FILTER_STAGES: tuple[FilterStage, ...] = (
    matches_free,
    matches_price,
    matches_rating,
    matches_tags,
    matches_features,
    matches_search,
)


def apply_filters(
    records: Iterable[AgentRecord],
    params: QueryParameters,
    stages: Iterable[FilterStage] = FILTER_STAGES,
) -> list[AgentRecord]:
    """Keep the records that pass every stage, preserving input order."""
    selected = list(records)
    for stage in stages:
        selected = [record for record in selected if stage(record, params)]
    return selected
