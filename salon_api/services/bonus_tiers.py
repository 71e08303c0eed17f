# salon_api/services/bonus_tiers.py
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Tuple

from flask import current_app, has_app_context

from salon_api.common.errors import ValidationError

NO_TIER = "none"
ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_decimal(x, field: str = "value") -> Decimal:
    if isinstance(x, Decimal):
        d = x
    else:
        try:
            d = Decimal(str(x))
        except (InvalidOperation, ValueError, TypeError):
            raise ValidationError(f"{field} must be a number", payload={field: x})
    if not d.is_finite():
        raise ValidationError(f"{field} must be a finite number", payload={field: str(x)})
    return d


@dataclass(frozen=True)
class TierRule:
    min_revenue: Decimal
    tier: str
    amount: Decimal


@dataclass(frozen=True)
class BonusCalculation:
    tier: str
    amount: Decimal
    is_eligible: bool


class TierLadder:
    """
    Ordered threshold table, highest band first; first rule whose
    min_revenue <= revenue wins, anything below the last rule is "none".
    """

    def __init__(self, rules: Iterable[TierRule]):
        self.rules: Tuple[TierRule, ...] = tuple(rules)
        self._validate()
        self._by_tier = {r.tier: r for r in self.rules}

    @classmethod
    def from_rows(cls, rows: Iterable[Dict[str, Any]]) -> "TierLadder":
        """rows: [{"min_revenue": 2400, "tier": "tier_5", "amount": 180}, ...]"""
        rules = []
        for i, row in enumerate(rows or []):
            if not isinstance(row, dict) or not {"min_revenue", "tier", "amount"} <= set(row):
                raise ValidationError("tier rows need min_revenue, tier and amount", payload={"row": i})
            rules.append(TierRule(
                min_revenue=to_decimal(row["min_revenue"], "min_revenue"),
                tier=str(row["tier"]).strip(),
                amount=to_decimal(row["amount"], "amount"),
            ))
        return cls(rules)

    def _validate(self):
        if not self.rules:
            raise ValidationError("tier ladder is empty")
        seen = set()
        prev: Optional[TierRule] = None
        for r in self.rules:
            if not r.tier or r.tier == NO_TIER:
                raise ValidationError(f"invalid tier name {r.tier!r}")
            if r.tier in seen:
                raise ValidationError(f"duplicate tier {r.tier!r}")
            seen.add(r.tier)
            if r.min_revenue <= ZERO or r.amount < ZERO:
                raise ValidationError(f"tier {r.tier!r} needs a positive threshold and non-negative amount")
            if prev is not None:
                if r.min_revenue >= prev.min_revenue:
                    raise ValidationError(
                        "tier thresholds must be strictly descending",
                        payload={"tier": r.tier, "after": prev.tier},
                    )
                if r.amount > prev.amount:
                    raise ValidationError(
                        "tier amounts must not grow as thresholds fall",
                        payload={"tier": r.tier, "after": prev.tier},
                    )
            prev = r

    def classify(self, weekly_revenue) -> BonusCalculation:
        revenue = to_decimal(weekly_revenue, "weekly_revenue")
        for r in self.rules:
            if revenue >= r.min_revenue:
                return BonusCalculation(tier=r.tier, amount=r.amount, is_eligible=True)
        return BonusCalculation(tier=NO_TIER, amount=ZERO, is_eligible=False)

    def amount_for(self, tier: str) -> Decimal:
        if tier == NO_TIER:
            return ZERO
        try:
            return self._by_tier[tier].amount
        except KeyError:
            raise ValidationError(f"unknown tier {tier!r}")

    def band_for(self, tier: str) -> Tuple[Decimal, Optional[Decimal]]:
        """[min, max) revenue band of a tier; max None = open ended."""
        bands = {t["tier"]: (t["min_revenue"], t["max_revenue"]) for t in self.thresholds()}
        if tier not in bands:
            raise ValidationError(f"unknown tier {tier!r}")
        return bands[tier]

    def thresholds(self) -> List[Dict[str, Any]]:
        out = []
        upper = None
        for r in self.rules:
            out.append({"tier": r.tier, "min_revenue": r.min_revenue, "max_revenue": upper, "amount": r.amount})
            upper = r.min_revenue
        out.append({"tier": NO_TIER, "min_revenue": ZERO, "max_revenue": upper, "amount": ZERO})
        return out

    def revenue_to_next_tier(self, current_revenue) -> Dict[str, Any]:
        revenue = to_decimal(current_revenue, "current_revenue")
        current = self.classify(revenue).tier
        nxt = None
        for r in reversed(self.rules):
            if r.min_revenue > revenue:
                nxt = r
                break
        return {
            "current_tier": current,
            "next_tier": nxt.tier if nxt else None,
            "required_revenue": nxt.min_revenue if nxt else ZERO,
            "additional_needed": max(ZERO, nxt.min_revenue - revenue) if nxt else ZERO,
        }


# Canonical weekly ladder (SAR). Override with app.config["BONUS_TIER_LADDER"].
DEFAULT_TIER_ROWS = [
    {"min_revenue": 2400, "tier": "tier_5", "amount": 180},
    {"min_revenue": 2100, "tier": "tier_4", "amount": 135},
    {"min_revenue": 1800, "tier": "tier_3", "amount": 95},
    {"min_revenue": 1500, "tier": "tier_2", "amount": 60},
    {"min_revenue": 1200, "tier": "tier_1", "amount": 35},
]
DEFAULT_TIER_LADDER = TierLadder.from_rows(DEFAULT_TIER_ROWS)


def ladder_from_config() -> TierLadder:
    rows = current_app.config.get("BONUS_TIER_LADDER") if has_app_context() else None
    if not rows:
        return DEFAULT_TIER_LADDER
    if isinstance(rows, TierLadder):
        return rows
    return TierLadder.from_rows(rows)


def classify(weekly_revenue, ladder: Optional[TierLadder] = None) -> BonusCalculation:
    return (ladder or ladder_from_config()).classify(weekly_revenue)
