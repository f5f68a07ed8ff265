"""Record merging and in-record mutations.

merge_agent() combines an existing record with a partial patch. Precedence
for every field:

1. a value explicitly present in the patch,
2. otherwise the existing record's value,
3. otherwise the model default.

Derived fields are always recomputed from the merged result:
- price details: discountedPrice defaults to and is clamped to basePrice,
  isFree is ``basePrice == 0``, discountPercentage is rounded; the legacy
  top-level ``price``/``isFree``/``isSubscription`` fields mirror them
- title falls back to name
- category/categories stay in sync (category is the first entry)
- file metadata urls win over the loose imageUrl/iconUrl fields
- createdAt is kept from the existing record, updatedAt is ``now``
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from bazaar.core.model import AgentPatch, AgentRecord, FileMetadata, PriceDetails, Review
from bazaar.errors import ConflictError, NotFoundError, ValidationError
from bazaar.query.filters import parse_legacy_price

MIN_REVIEW_LENGTH = 3


def _patched(patch: AgentPatch, field: str) -> bool:
    return field in patch.model_fields_set


def _merge_price(existing: AgentRecord | None, patch: AgentPatch) -> PriceDetails:
    current = (existing.price_details if existing else None) or PriceDetails()
    if existing is not None and current.base_price is None:
        # Legacy records only carry a flat price
        legacy = parse_legacy_price(existing.price)
        current = current.model_copy(update={"base_price": legacy, "discounted_price": legacy})
    incoming = patch.price_details if _patched(patch, "price_details") else None
    incoming_fields = incoming.model_fields_set if incoming else set()

    def pick(field: str, flat: str | None = None) -> Any:
        if incoming is not None and field in incoming_fields:
            return getattr(incoming, field)
        if flat and _patched(patch, flat) and getattr(patch, flat) is not None:
            return getattr(patch, flat)
        return getattr(current, field)

    base_price = max(float(pick("base_price", "base_price") or 0.0), 0.0)
    discounted = pick("discounted_price", "discounted_price")
    discounted_price = base_price if discounted is None else min(float(discounted), base_price)
    discounted_price = max(discounted_price, 0.0)

    discount_percentage = 0
    if base_price > 0 and discounted_price < base_price:
        discount_percentage = round((base_price - discounted_price) / base_price * 100)

    return PriceDetails(
        base_price=base_price,
        discounted_price=discounted_price,
        currency=pick("currency", "currency") or "USD",
        is_subscription=bool(pick("is_subscription", "is_subscription")),
        is_free=base_price == 0,
        discount_percentage=discount_percentage,
    )


def _merge_file(
    metadata: FileMetadata | None, loose_url: str | None
) -> tuple[FileMetadata | None, str | None]:
    if metadata is not None and metadata.url:
        return metadata, metadata.url
    if loose_url:
        return FileMetadata(url=loose_url), loose_url
    return None, None


def merge_agent(
    existing: AgentRecord | None,
    patch: AgentPatch,
    *,
    now: datetime | None = None,
) -> AgentRecord:
    """Merge ``patch`` over ``existing`` (None for a new record)."""
    now = now or datetime.now(timezone.utc)
    base: dict[str, Any] = existing.model_dump(by_alias=False) if existing else {}

    # Extra (unmodelled) patch fields are carried over verbatim
    merged: dict[str, Any] = {**base, **(patch.model_extra or {})}

    simple_fields = (
        "name",
        "description",
        "creator",
        "tags",
        "features",
        "popularity",
        "download_count",
        "is_featured",
        "is_verified",
    )
    for field in simple_fields:
        if _patched(patch, field) and getattr(patch, field) is not None:
            value = getattr(patch, field)
            merged[field] = value.model_dump() if hasattr(value, "model_dump") else value

    merged["id"] = (existing.id if existing else None) or patch.id or uuid4().hex
    merged.setdefault("name", "")

    if _patched(patch, "title") and patch.title:
        merged["title"] = patch.title
    elif not merged.get("title"):
        merged["title"] = merged["name"]

    if _patched(patch, "categories") and patch.categories:
        merged["categories"] = list(patch.categories)
        merged["category"] = patch.categories[0]
    elif _patched(patch, "category") and patch.category:
        merged["category"] = patch.category
        merged["categories"] = base.get("categories") or [patch.category]
    else:
        merged["category"] = base.get("category", "")
        merged["categories"] = base.get("categories") or (
            [merged["category"]] if merged["category"] else []
        )

    price = _merge_price(existing, patch)
    merged["price_details"] = price.model_dump()
    merged["price"] = price.discounted_price
    merged["is_free"] = price.is_free
    merged["is_subscription"] = price.is_subscription

    for field, url_field in (("image", "image_url"), ("icon", "icon_url")):
        if _patched(patch, url_field) and not getattr(patch, url_field) and not _patched(patch, field):
            # An explicitly emptied url clears the file
            merged[field] = None
            merged[url_field] = None
            continue
        source = patch if _patched(patch, field) else existing
        url_source = patch if _patched(patch, url_field) else existing
        file_meta, url = _merge_file(
            getattr(source, field) if source else None,
            getattr(url_source, url_field) if url_source else None,
        )
        merged[field] = file_meta.model_dump() if file_meta else None
        merged[url_field] = url

    if _patched(patch, "json_file"):
        merged["json_file"] = patch.json_file.model_dump() if patch.json_file else None

    merged["created_at"] = (existing.created_at if existing else None) or now
    merged["updated_at"] = now

    return AgentRecord.model_validate(merged)


# -----------------------------------------------------------------------------
# In-record mutations
# -----------------------------------------------------------------------------


def toggle_like(record: AgentRecord, user_id: str) -> bool:
    """Add or remove ``user_id`` from the record's likes.

    Returns True when the user now likes the record.
    """
    if user_id in record.likes:
        record.likes = [liker for liker in record.likes if liker != user_id]
        return False
    record.likes = [*record.likes, user_id]
    return True


def add_review(
    record: AgentRecord,
    user_id: str,
    rating: float,
    content: str,
    *,
    user_name: str | None = None,
    now: datetime | None = None,
) -> Review:
    """Append a review and recompute the rating aggregate.

    Raises:
        ValidationError: Rating outside 1-5 or content too short.
        ConflictError: The user already reviewed this record.
    """
    if not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")
    text = (content or "").strip()
    if len(text) < MIN_REVIEW_LENGTH:
        raise ValidationError("Review content is too short")
    if any(review.user_id == user_id for review in record.reviews):
        raise ConflictError(f"User '{user_id}' has already reviewed agent '{record.id}'")

    now = now or datetime.now(timezone.utc)
    review = Review(
        id=f"{user_id}_{int(now.timestamp() * 1000)}",
        user_id=user_id,
        user_name=user_name,
        rating=rating,
        content=text,
        created_at=now,
    )
    record.reviews = sorted(
        [review, *record.reviews],
        key=lambda item: item.created_at or now,
        reverse=True,
    )
    record.recompute_rating()
    return review


def remove_review(record: AgentRecord, review_id: str) -> Review:
    """Remove a review by id and recompute the rating aggregate.

    Raises:
        NotFoundError: No review with that id.
    """
    for review in record.reviews:
        if review.id == review_id:
            record.reviews = [item for item in record.reviews if item.id != review_id]
            record.recompute_rating()
            return review
    raise NotFoundError("Review", review_id)
