"""Tests for listing filter predicates."""

from itertools import permutations
from typing import Any

import pytest

from bazaar.core.model import AgentRecord, QueryParameters
from bazaar.query.filters import (
    FILTER_STAGES,
    apply_filters,
    effective_price,
    is_free,
    matches_features,
    matches_price,
    matches_search,
    matches_tags,
    parse_legacy_price,
)


def _record(agent_id: str = "x", **fields: Any) -> AgentRecord:
    return AgentRecord.from_document({"id": agent_id, "category": "Writing", **fields})


def _params(**raw: Any) -> QueryParameters:
    return QueryParameters.model_validate(raw)


class TestPriceHelpers:
    """Test price resolution."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Free", 0.0),
            ("free ", 0.0),
            ("$0", 0.0),
            ("$9.99", 9.99),
            ("12 USD", 12.0),
            (10, 10.0),
            (2.5, 2.5),
            ("abc", None),
            ("", None),
            (None, None),
            (True, None),
            (float("inf"), None),
        ],
    )
    def test_parse_legacy_price(self, raw: Any, expected: float | None) -> None:
        """Legacy prices parse permissively."""
        assert parse_legacy_price(raw) == expected

    def test_is_free_prefers_flag(self) -> None:
        """An explicit isFree wins over prices."""
        assert is_free(_record(isFree=True, priceDetails={"basePrice": 5}))
        assert not is_free(_record(isFree=False, price=0))

    def test_is_free_from_base_price(self) -> None:
        """A zero base price is free."""
        assert is_free(_record(priceDetails={"basePrice": 0}))
        assert not is_free(_record(priceDetails={"basePrice": 3}))

    def test_is_free_from_legacy_price(self) -> None:
        """Legacy 'Free' and '$0' are free; unparsable is not."""
        assert is_free(_record(price="Free"))
        assert is_free(_record(price="$0"))
        assert not is_free(_record(price="ask me"))

    def test_effective_price(self) -> None:
        """Discounted price wins over the legacy price."""
        assert effective_price(_record(priceDetails={"discountedPrice": 4}, price=9)) == 4
        assert effective_price(_record(price="$9")) == 9
        assert effective_price(_record()) is None


class TestFilterStages:
    """Test individual filter stages."""

    def test_price_bounds(self) -> None:
        """Records outside the range are excluded."""
        params = _params(priceMin=5, priceMax=10)
        assert matches_price(_record(price=5), params)
        assert matches_price(_record(price=10), params)
        assert not matches_price(_record(price=11), params)

    def test_unparsable_price_is_unbounded(self) -> None:
        """An unparsable price fails any upper bound and passes a lower one."""
        assert not matches_price(_record(price="n/a"), _params(priceMin=5, priceMax=10))
        assert not matches_price(_record(price="n/a"), _params(priceMax=10))
        assert matches_price(_record(price="n/a"), _params(priceMin=5))
        assert matches_price(_record(), _params(priceMin=5))
        assert matches_price(_record(price="n/a"), _params())

    def test_swapped_bounds(self) -> None:
        """priceMin above priceMax is read as the reversed range."""
        assert matches_price(_record(price=7), _params(priceMin=10, priceMax=5))

    def test_rating_min(self) -> None:
        """Legacy top-level rating fields are honoured."""
        records = [_record("low", averageRating=3.9), _record("high", averageRating=4.2)]
        assert [r.id for r in apply_filters(records, _params(rating=4))] == ["high"]

    def test_tags_match_category_or_tag(self) -> None:
        """Tags match the category or any tag, case-insensitively."""
        params = _params(tags="writing,SEO")
        assert matches_tags(_record(category="Writing"), params)
        assert matches_tags(_record(category="Coding", tags=["seo"]), params)
        assert not matches_tags(_record(category="Coding", tags=["python"]), params)

    def test_features_price_flags(self) -> None:
        """'free' and 'subscription' test the price flags."""
        assert matches_features(_record(price=0), _params(features="free"))
        assert not matches_features(_record(price=3), _params(features="free"))
        assert matches_features(
            _record(priceDetails={"isSubscription": True}), _params(features="subscription")
        )

    def test_features_any_of(self) -> None:
        """Any requested feature is enough."""
        record = _record(features=["Templates", "API"])
        assert matches_features(record, _params(features=["api", "voice"]))
        assert not matches_features(record, _params(features=["voice"]))

    def test_search_fields(self) -> None:
        """Search covers name, title, description and creator name."""
        params = _params(search="dana")
        assert matches_search(_record(name="Dana's Bot"), params)
        assert matches_search(_record(description="built by DANA"), params)
        assert matches_search(_record(creator={"name": "Dana"}), params)
        assert not matches_search(_record(name="Other"), params)

    def test_free_sort_filters(self) -> None:
        """The Free strategy keeps only free records."""
        records = [_record("paid", price=3), _record("free", price="Free")]
        assert [r.id for r in apply_filters(records, _params(sort="Free"))] == ["free"]

    def test_no_params_keeps_everything(self) -> None:
        """Absent parameters filter nothing and keep store order."""
        records = [_record(str(i)) for i in range(5)]
        assert apply_filters(records, _params()) == records


class TestFilterComposition:
    """Test that stage order does not matter."""

    def test_order_independent(self) -> None:
        """Every permutation of the stages selects the same records."""
        records = [
            _record("a", price=0, averageRating=4.5, tags=["copy"], features=["api"]),
            _record("b", price=12, averageRating=4.9, tags=["copy"], name="copy bot"),
            _record("c", price="$4", averageRating=4.1, features=["api"], name="copy pro"),
            _record("d", category="Coding", price=6, averageRating=3.0),
            _record("e", price="n/a", averageRating=5.0, tags=["copy"]),
        ]
        params = _params(priceMax=10, ratingMin=4, tags="copy,writing", features="api", q="copy")
        expected = [r.id for r in apply_filters(records, params)]

        for stages in permutations(FILTER_STAGES):
            assert [r.id for r in apply_filters(records, params, stages)] == expected
        assert expected == ["c"]
