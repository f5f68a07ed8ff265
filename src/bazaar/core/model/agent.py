"""Agent catalog records.

An AgentRecord is a single item offered on the marketplace. Records are read
from the catalog store as loosely-shaped documents. Legacy documents (string
prices, Firestore timestamps, top-level rating fields) must still load.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import Field, field_validator, model_validator

from bazaar.core.model import DocumentModel

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Epoch values above this are taken to be milliseconds
_MILLIS_THRESHOLD = 1e11


def resolve_timestamp(value: Any) -> datetime | None:
    """Resolve a stored timestamp into an aware datetime.

    Accepts datetimes, ISO-8601 strings, epoch seconds or milliseconds and
    Firestore-style ``{"_seconds": ...}`` maps. Returns None when the value
    cannot be resolved.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) > _MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            try:
                return resolve_timestamp(float(text))
            except ValueError:
                return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    if isinstance(value, dict):
        seconds = value.get("_seconds", value.get("seconds"))
        if isinstance(seconds, (int, float)) and not isinstance(seconds, bool):
            nanos = value.get("_nanoseconds", value.get("nanoseconds")) or 0
            return resolve_timestamp(seconds + nanos / 1e9)

    return None


def _as_string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set, frozenset)):
        return [str(item) for item in value if item is not None and str(item) != ""]
    return []


def _as_int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


class Creator(DocumentModel):
    """Author of a catalog record."""

    id: str | None = None
    name: str | None = None
    image_url: str | None = None
    email: str | None = None
    username: str | None = None
    role: str | None = None


class FileMetadata(DocumentModel):
    """Metadata for a file held in blob storage."""

    url: str | None = None
    file_name: str = ""
    original_name: str = ""
    content_type: str = ""
    size: int = 0


class PriceDetails(DocumentModel):
    """Structured price information."""

    base_price: float | None = None
    discounted_price: float | None = None
    currency: str = "USD"
    is_free: bool | None = None
    is_subscription: bool = False
    discount_percentage: float = 0


class Rating(DocumentModel):
    """Aggregate of embedded review ratings."""

    average: float = 0.0
    count: int = 0


class Review(DocumentModel):
    """A single user review embedded in an AgentRecord."""

    id: str
    user_id: str
    user_name: str | None = None
    rating: float
    content: str = ""
    created_at: datetime | None = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _resolve_created_at(cls, value: Any) -> datetime | None:
        return resolve_timestamp(value)


class AgentRecord(DocumentModel):
    """A catalog item offered on the marketplace."""

    id: str
    name: str = ""
    title: str = ""
    description: str = ""
    category: str = ""
    categories: list[str] = Field(default_factory=list)
    creator: Creator | None = None

    price_details: PriceDetails | None = None
    price: float | str | None = None  # Legacy flat price ("Free", "$0", 10)
    is_free: bool | None = None
    is_subscription: bool | None = None

    rating: Rating = Field(default_factory=Rating)
    tags: list[str] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    popularity: int = 0
    download_count: int = 0
    view_count: int = 0
    is_featured: bool = False
    is_verified: bool = False

    created_at: datetime | None = None
    updated_at: datetime | None = None

    likes: list[str] = Field(default_factory=list)
    reviews: list[Review] = Field(default_factory=list)

    image: FileMetadata | None = None
    icon: FileMetadata | None = None
    json_file: FileMetadata | None = None
    image_url: str | None = None
    icon_url: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _lift_legacy_rating(cls, data: Any) -> Any:
        """Build ``rating`` from top-level averageRating/reviewCount fields."""
        if not isinstance(data, dict):
            return data

        rating = data.get("rating")
        if isinstance(rating, dict):
            return data

        data = dict(data)
        average = data.get("averageRating")
        if isinstance(rating, (int, float)) and not isinstance(rating, bool):
            average = rating
        if average is None and "reviewCount" not in data:
            data.pop("rating", None)
            return data

        try:
            average_value = float(average) if average is not None else 0.0
        except (TypeError, ValueError):
            average_value = 0.0
        data["rating"] = {"average": average_value, "count": _as_int(data.get("reviewCount"))}
        return data

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _resolve_timestamps(cls, value: Any) -> datetime | None:
        return resolve_timestamp(value)

    @field_validator("tags", "features", "categories", "likes", mode="before")
    @classmethod
    def _coerce_string_lists(cls, value: Any) -> list[str]:
        return _as_string_list(value)

    @field_validator("popularity", "download_count", "view_count", mode="before")
    @classmethod
    def _coerce_counters(cls, value: Any) -> int:
        return _as_int(value)

    @field_validator("reviews", mode="before")
    @classmethod
    def _drop_malformed_reviews(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        return [
            item
            for item in value
            if isinstance(item, Review)
            or (isinstance(item, dict) and item.get("id") and item.get("userId", item.get("user_id")))
        ]

    @model_validator(mode="after")
    def _order_reviews(self) -> "AgentRecord":
        self.reviews.sort(key=lambda review: review.created_at or _EPOCH, reverse=True)
        return self

    # -------------------------------------------------------------------------
    # Document conversion
    # -------------------------------------------------------------------------

    @classmethod
    def from_document(cls, doc: dict[str, Any], doc_id: str | None = None) -> "AgentRecord":
        """Build a record from a stored document.

        The store's document id wins when the document has no ``id`` field.
        """
        data = dict(doc)
        if doc_id is not None and not data.get("id"):
            data["id"] = doc_id
        return cls.model_validate(data)

    def to_document(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible document with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @property
    def creator_name(self) -> str | None:
        return self.creator.name if self.creator else None

    def recompute_rating(self) -> None:
        """Recompute ``rating`` from the embedded reviews."""
        count = len(self.reviews)
        if count == 0:
            self.rating = Rating(average=0.0, count=0)
            return
        total = sum(review.rating for review in self.reviews)
        self.rating = Rating(average=round(total / count, 2), count=count)


class AgentPatch(DocumentModel):
    """Partial record input for create and update.

    Only fields explicitly present in the patch take part in a merge; see
    ``bazaar.core.merge.merge_agent`` for the precedence rules.
    """

    id: str | None = None
    name: str | None = None
    title: str | None = None
    description: str | None = None
    category: str | None = None
    categories: list[str] | None = None
    creator: Creator | None = None

    price_details: PriceDetails | None = None
    base_price: float | None = None
    discounted_price: float | None = None
    currency: str | None = None
    is_subscription: bool | None = None

    tags: list[str] | None = None
    features: list[str] | None = None
    popularity: int | None = None
    download_count: int | None = None
    is_featured: bool | None = None
    is_verified: bool | None = None

    image: FileMetadata | None = None
    icon: FileMetadata | None = None
    json_file: FileMetadata | None = None
    image_url: str | None = None
    icon_url: str | None = None

    @field_validator("tags", "features", "categories", mode="before")
    @classmethod
    def _coerce_string_lists(cls, value: Any) -> list[str] | None:
        if value is None:
            return None
        return _as_string_list(value)
