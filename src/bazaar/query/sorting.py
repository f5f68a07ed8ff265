"""Sort strategies for catalog listings.

All sorts are stable: records that tie keep their store order.

HotNow groups records before ordering them:
- group 0, created within the window: newest first, then popularity
- group 1, created before the window: popularity, then newest first
- group 2, no resolvable creation date: popularity
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

from bazaar.core.model import AgentRecord, SortStrategy


def hot_now_key(record: AgentRecord, now: datetime, window: timedelta) -> tuple[int, float, float]:
    created = record.created_at
    if created is None:
        return (2, -record.popularity, 0.0)
    if now - created <= window:
        return (0, -created.timestamp(), -record.popularity)
    return (1, -record.popularity, -created.timestamp())


def top_rated_key(record: AgentRecord) -> tuple[float, int]:
    return (-record.rating.average, -record.rating.count)


def newest_key(record: AgentRecord) -> float:
    return -record.created_at.timestamp() if record.created_at else 0.0


def sort_records(
    records: Iterable[AgentRecord],
    strategy: SortStrategy | None,
    *,
    now: datetime,
    window: timedelta,
) -> list[AgentRecord]:
    """Order records by ``strategy``.

    Free is a filter rather than an ordering; it and None keep store order.
    """
    items = list(records)
    if strategy is SortStrategy.HOT_NOW:
        items.sort(key=lambda record: hot_now_key(record, now, window))
    elif strategy is SortStrategy.TOP_RATED:
        items.sort(key=top_rated_key)
    elif strategy is SortStrategy.NEWEST:
        items.sort(key=newest_key)
    return items
