from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from superfan_api.domain.settlement import (
    coverage_ratio,
    platform_fee,
    reserve_delta,
    reserve_target,
    settle_purchase,
    week_start,
)


def test_reference_purchase_breakdown() -> None:
    breakdown = settle_purchase(1000, 1000, 50)

    assert breakdown.gross_cents == 1000
    assert breakdown.platform_fee_cents == 100
    assert breakdown.reserve_delta_cents == 475
    assert breakdown.upfront_cents == 425


def test_reserve_delta_rounds_up() -> None:
    # 333 * 50 / 100 * 0.95 = 158.175
    assert reserve_delta(333, 50) == 159


def test_platform_fee_rounds_half_up() -> None:
    assert platform_fee(1005) == 101
    assert platform_fee(0) == 0


def test_upfront_never_negative() -> None:
    breakdown = settle_purchase(100, 100000, 50)

    assert breakdown.upfront_cents == 0


def test_negative_inputs_are_rejected() -> None:
    with pytest.raises(ValueError):
        settle_purchase(-1, 10, 50)


def test_week_start_is_monday_utc() -> None:
    sunday_night = datetime(2026, 10, 18, 23, 30, tzinfo=timezone.utc)

    assert week_start(sunday_night) == date(2026, 10, 12)
    assert week_start(datetime(2026, 10, 19, 0, 0, tzinfo=timezone.utc)) == date(2026, 10, 19)


def test_reserve_coverage() -> None:
    assert reserve_target(2000, 50) == 950
    assert coverage_ratio(475, 950) == 0.5
    assert coverage_ratio(10, 0) == 1.0
