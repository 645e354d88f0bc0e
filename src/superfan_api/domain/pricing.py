"""Tier-aware pricing for tier rewards, credit campaigns and point rewards.

All money values are integer cents; all point values are non-negative integers.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping
from uuid import UUID

from superfan_api.core.settings import settings
from superfan_api.core.time import ensure_utc, utcnow
from superfan_api.domain.errors import InvalidPricing
from superfan_api.domain.status import StatusTier


@dataclass(frozen=True, slots=True)
class PriceQuote:
    """Outcome of pricing a purchasable tier reward for one member."""

    base_price_cents: int
    discount_percentage: int
    discount_cents: int
    final_price_cents: int
    user_tier: StatusTier
    is_credit_campaign: bool = False
    credit_cost: int = 0


@dataclass(frozen=True, slots=True)
class PointBundle:
    points: int
    usd_cents: int
    bonus_pts: int = 0

    @property
    def total_points(self) -> int:
        return self.points + self.bonus_pts

    @property
    def display_name(self) -> str:
        label = f"{self.points:,} Points"
        if self.bonus_pts:
            label += f" + {self.bonus_pts:,} Bonus"
        return f"{label} (${self.usd_cents / 100:.2f})"


POINT_BUNDLES: tuple[PointBundle, ...] = (
    PointBundle(points=1000, usd_cents=1000),
    PointBundle(points=5000, usd_cents=5000, bonus_pts=250),
    PointBundle(points=10000, usd_cents=10000, bonus_pts=1000),
)


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def get_bundle(index: int) -> PointBundle:
    if not 0 <= index < len(POINT_BUNDLES):
        raise InvalidPricing(f"Unknown point bundle {index}")
    return POINT_BUNDLES[index]


def discount_percentage(
    user_tier: StatusTier,
    min_tier: StatusTier,
    overrides: Mapping[str, int | None] | None = None,
) -> int:
    """Discount for ``user_tier`` on a reward gated at ``min_tier``.

    Members below the reward's minimum tier, and cadets, get no discount. Club
    overrides replace the configured default for a tier when they are not null.
    """

    if user_tier.rank < min_tier.rank or user_tier is StatusTier.CADET:
        return 0

    override = (overrides or {}).get(user_tier.value)
    if override is not None:
        value = int(override)
    else:
        value = int(settings.default_tier_discounts.get(user_tier.value, 0))

    if not 0 <= value <= 100:
        raise InvalidPricing(f"Discount for {user_tier.value} must be between 0 and 100", tier=user_tier.value)
    return value


def _enforce_minimum(final_price_cents: int, minimum_cents: int | None) -> None:
    floor = settings.minimum_charge_cents if minimum_cents is None else minimum_cents
    if final_price_cents < floor:
        raise InvalidPricing(
            f"Final price too low - minimum {floor} cents required",
            final_price_cents=final_price_cents,
            minimum_cents=floor,
        )


def quote_tier_price(
    base_price_cents: int,
    *,
    user_tier: StatusTier,
    min_tier: StatusTier,
    overrides: Mapping[str, int | None] | None = None,
    minimum_cents: int | None = None,
) -> PriceQuote:
    """Price a tier reward; sub-minimum results are rejected, never clamped up."""

    if base_price_cents is None or int(base_price_cents) <= 0:
        raise InvalidPricing("Tier reward has no valid base price")
    base = int(base_price_cents)
    percentage = discount_percentage(user_tier, min_tier, overrides)
    discount = (base * percentage + 50) // 100
    final = max(0, base - discount)
    _enforce_minimum(final, minimum_cents)
    return PriceQuote(
        base_price_cents=base,
        discount_percentage=percentage,
        discount_cents=discount,
        final_price_cents=final,
        user_tier=user_tier,
    )


def quote_credit_campaign(
    credit_cost: int,
    *,
    user_tier: StatusTier,
    credit_unit_cents: int | None = None,
    minimum_cents: int | None = None,
) -> PriceQuote:
    """Credit campaigns charge credits x unit price and ignore tier discounts."""

    if credit_cost is None or int(credit_cost) <= 0:
        raise InvalidPricing("Invalid credit campaign: credit_cost must be a positive integer")
    unit = settings.credit_unit_cents if credit_unit_cents is None else credit_unit_cents
    price = int(credit_cost) * unit
    _enforce_minimum(price, minimum_cents)
    return PriceQuote(
        base_price_cents=price,
        discount_percentage=0,
        discount_cents=0,
        final_price_cents=price,
        user_tier=user_tier,
        is_credit_campaign=True,
        credit_cost=int(credit_cost),
    )


def purchase_idempotency_key(reward_id: UUID | str, user_id: UUID | str, final_price_cents: int) -> str:
    return f"tier_purchase_{reward_id}_{user_id}_{final_price_cents}"


def effective_points_price(
    points_price: int,
    *,
    redeem_multiplier: float = 1.0,
    redeem_boost: float = 1.0,
    promo_active: bool = False,
    promo_discount_pts: int = 0,
    promo_expires_at: datetime | None = None,
    now: datetime | None = None,
) -> int:
    """Points actually charged for a reward after club controls and promotions."""

    price = round_half_up(Decimal(int(points_price)) * Decimal(str(redeem_multiplier)) * Decimal(str(redeem_boost)))
    if promo_active and promo_discount_pts:
        current = now or utcnow()
        if promo_expires_at is None or ensure_utc(promo_expires_at) > current:
            price -= int(promo_discount_pts)
    return max(0, price)


__all__ = [
    "POINT_BUNDLES",
    "PointBundle",
    "PriceQuote",
    "discount_percentage",
    "effective_points_price",
    "get_bundle",
    "purchase_idempotency_key",
    "quote_credit_campaign",
    "quote_tier_price",
    "round_half_up",
]
