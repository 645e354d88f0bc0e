from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from superfan_api.domain.earning import TapInSource, tap_in_points
from superfan_api.domain.errors import InvalidPricing
from superfan_api.domain.pricing import (
    POINT_BUNDLES,
    discount_percentage,
    effective_points_price,
    get_bundle,
    purchase_idempotency_key,
    quote_credit_campaign,
    quote_tier_price,
)
from superfan_api.domain.status import StatusTier


def test_headliner_discount_applies_default_percentage() -> None:
    quote = quote_tier_price(1000, user_tier=StatusTier.HEADLINER, min_tier=StatusTier.CADET)

    assert quote.discount_percentage == 15
    assert quote.discount_cents == 150
    assert quote.final_price_cents == 850
    assert quote.user_tier is StatusTier.HEADLINER


def test_cadets_and_members_below_min_tier_pay_full_price() -> None:
    cadet = quote_tier_price(1000, user_tier=StatusTier.CADET, min_tier=StatusTier.CADET)
    resident = quote_tier_price(1000, user_tier=StatusTier.RESIDENT, min_tier=StatusTier.HEADLINER)

    assert cadet.final_price_cents == 1000
    assert resident.discount_percentage == 0
    assert resident.final_price_cents == 1000


def test_club_overrides_replace_defaults_unless_null() -> None:
    overrides = {"resident": 30, "headliner": None}

    assert discount_percentage(StatusTier.RESIDENT, StatusTier.CADET, overrides) == 30
    assert discount_percentage(StatusTier.HEADLINER, StatusTier.CADET, overrides) == 15
    assert discount_percentage(StatusTier.SUPERFAN, StatusTier.CADET, overrides) == 25


def test_override_outside_range_is_rejected() -> None:
    with pytest.raises(InvalidPricing):
        discount_percentage(StatusTier.RESIDENT, StatusTier.CADET, {"resident": 120})


def test_discount_rounds_half_up() -> None:
    # 999 * 15% = 149.85 -> 150
    quote = quote_tier_price(999, user_tier=StatusTier.HEADLINER, min_tier=StatusTier.CADET)

    assert quote.discount_cents == 150
    assert quote.final_price_cents == 849


def test_sub_minimum_price_is_rejected_not_clamped() -> None:
    with pytest.raises(InvalidPricing) as excinfo:
        quote_tier_price(55, user_tier=StatusTier.SUPERFAN, min_tier=StatusTier.CADET)

    assert excinfo.value.details["final_price_cents"] == 41
    assert excinfo.value.details["minimum_cents"] == 50


def test_missing_base_price_is_rejected() -> None:
    with pytest.raises(InvalidPricing):
        quote_tier_price(0, user_tier=StatusTier.CADET, min_tier=StatusTier.CADET)


def test_credit_campaign_ignores_tier_discount() -> None:
    quote = quote_credit_campaign(3, user_tier=StatusTier.SUPERFAN)

    assert quote.is_credit_campaign is True
    assert quote.credit_cost == 3
    assert quote.final_price_cents == 300
    assert quote.discount_cents == 0


def test_credit_campaign_requires_positive_cost() -> None:
    with pytest.raises(InvalidPricing):
        quote_credit_campaign(0, user_tier=StatusTier.CADET)


def test_purchase_idempotency_key_includes_price() -> None:
    assert purchase_idempotency_key("r1", "u1", 850) == "tier_purchase_r1_u1_850"


def test_bundle_catalog() -> None:
    assert [(b.points, b.bonus_pts, b.usd_cents) for b in POINT_BUNDLES] == [
        (1000, 0, 1000),
        (5000, 250, 5000),
        (10000, 1000, 10000),
    ]
    assert get_bundle(2).total_points == 11000
    assert get_bundle(1).display_name == "5,000 Points + 250 Bonus ($50.00)"
    with pytest.raises(InvalidPricing):
        get_bundle(3)


def test_effective_points_price_applies_multipliers_and_promo() -> None:
    now = datetime(2026, 10, 18, tzinfo=timezone.utc)

    assert effective_points_price(500, redeem_multiplier=1.5, redeem_boost=0.9) == 675
    assert (
        effective_points_price(
            500,
            promo_active=True,
            promo_discount_pts=100,
            promo_expires_at=now + timedelta(days=1),
            now=now,
        )
        == 400
    )
    expired = effective_points_price(
        500,
        promo_active=True,
        promo_discount_pts=100,
        promo_expires_at=now - timedelta(seconds=1),
        now=now,
    )
    assert expired == 500
    assert effective_points_price(50, promo_active=True, promo_discount_pts=100, now=now) == 0


@pytest.mark.parametrize(
    ("source", "multiplier", "boost", "expected"),
    [
        (TapInSource.SHOW_ENTRY, 1.0, 1.0, 100),
        (TapInSource.LINK, 1.0, 1.0, 10),
        (TapInSource.TRAILER, 1.5, 1.0, 30),
        (TapInSource.QR_CODE, 1.25, 1.1, 41),
    ],
)
def test_tap_in_points(source: TapInSource, multiplier: float, boost: float, expected: int) -> None:
    assert tap_in_points(source, earn_multiplier=multiplier, earn_boost=boost) == expected
