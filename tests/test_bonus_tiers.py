from decimal import Decimal

import pytest

from salon_api.common.errors import ValidationError
from salon_api.services.bonus_tiers import (
    DEFAULT_TIER_LADDER,
    TierLadder,
    classify,
)


def test_revenue_2500_is_top_tier():
    r = classify(2500)
    assert (r.tier, r.amount, r.is_eligible) == ("tier_5", Decimal("180"), True)


def test_revenue_1300_is_first_tier():
    r = classify(Decimal("1300"))
    assert (r.tier, r.amount, r.is_eligible) == ("tier_1", Decimal("35"), True)


def test_revenue_999_has_no_bonus():
    r = classify("999")
    assert (r.tier, r.amount, r.is_eligible) == ("none", Decimal("0"), False)


@pytest.mark.parametrize("revenue,tier", [
    (0, "none"),
    (-50, "none"),
    ("1199.99", "none"),
    (1200, "tier_1"),
    (1500, "tier_2"),
    ("1799.99", "tier_2"),
    (1800, "tier_3"),
    (2100, "tier_4"),
    ("2399.99", "tier_4"),
    (2400, "tier_5"),
    (100000, "tier_5"),
])
def test_band_edges(revenue, tier):
    assert classify(revenue).tier == tier


def test_bonus_never_drops_as_revenue_grows():
    prev = Decimal("0")
    for step in range(0, 3001, 25):
        amt = classify(step).amount
        assert amt >= prev
        prev = amt


def test_eligibility_matches_tier():
    for revenue in (0, 1199, 1200, 2000, 5000):
        r = classify(revenue)
        assert r.is_eligible == (r.tier != "none")
        assert r.amount == DEFAULT_TIER_LADDER.amount_for(r.tier)


def test_non_numeric_revenue_is_rejected():
    with pytest.raises(ValidationError):
        classify("abc")
    with pytest.raises(ValidationError):
        classify("NaN")


def test_custom_ladder_from_rows():
    ladder = TierLadder.from_rows([
        {"min_revenue": 8000, "tier": "gold", "amount": 400},
        {"min_revenue": 2000, "tier": "bronze", "amount": 100},
    ])
    assert classify(7999, ladder).tier == "bronze"
    assert classify(8000, ladder).amount == Decimal("400")
    assert classify(1999, ladder).tier == "none"


@pytest.mark.parametrize("rows", [
    [],
    # thresholds not descending
    [{"min_revenue": 1000, "tier": "a", "amount": 10}, {"min_revenue": 2000, "tier": "b", "amount": 5}],
    # amount grows while threshold falls
    [{"min_revenue": 2000, "tier": "a", "amount": 10}, {"min_revenue": 1000, "tier": "b", "amount": 50}],
    # duplicate name
    [{"min_revenue": 2000, "tier": "a", "amount": 10}, {"min_revenue": 1000, "tier": "a", "amount": 5}],
    # reserved name
    [{"min_revenue": 2000, "tier": "none", "amount": 10}],
    # missing key
    [{"min_revenue": 2000, "tier": "a"}],
])
def test_invalid_ladders_are_refused(rows):
    with pytest.raises(ValidationError):
        TierLadder.from_rows(rows)


def test_thresholds_and_next_tier():
    bands = DEFAULT_TIER_LADDER.thresholds()
    assert bands[0]["tier"] == "tier_5" and bands[0]["max_revenue"] is None
    assert bands[-1]["tier"] == "none" and bands[-1]["max_revenue"] == Decimal("1200")
    assert DEFAULT_TIER_LADDER.band_for("tier_3") == (Decimal("1800"), Decimal("2100"))

    nxt = DEFAULT_TIER_LADDER.revenue_to_next_tier(1650)
    assert nxt["current_tier"] == "tier_2"
    assert nxt["next_tier"] == "tier_3"
    assert nxt["additional_needed"] == Decimal("150")

    top = DEFAULT_TIER_LADDER.revenue_to_next_tier(3000)
    assert top["next_tier"] is None
