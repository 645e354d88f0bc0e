"""Settlement arithmetic for point purchases (integer cents throughout)."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

from superfan_api.core.settings import settings
from superfan_api.core.time import ensure_utc, utcnow
from superfan_api.domain.pricing import round_half_up


@dataclass(frozen=True, slots=True)
class SettlementBreakdown:
    gross_cents: int
    platform_fee_cents: int
    reserve_delta_cents: int
    upfront_cents: int


def _reserve_factor() -> Decimal:
    return Decimal(1) - Decimal(str(settings.breakage_rate)) + Decimal(str(settings.reserve_buffer_rate))


def platform_fee(gross_cents: int) -> int:
    return round_half_up(Decimal(int(gross_cents)) * Decimal(str(settings.platform_fee_rate)))


def reserve_delta(points: int, settle_cents_per_100_points: int) -> int:
    """Reserve set aside so purchased points can later be settled."""

    exact = Decimal(int(points)) * Decimal(int(settle_cents_per_100_points)) / Decimal(100) * _reserve_factor()
    return math.ceil(exact)


def upfront_amount(gross_cents: int, reserve_delta_cents: int) -> int:
    return max(0, int(gross_cents) - platform_fee(gross_cents) - int(reserve_delta_cents))


def settle_purchase(gross_cents: int, points: int, settle_cents_per_100_points: int) -> SettlementBreakdown:
    if gross_cents < 0 or points < 0:
        raise ValueError("gross and points must be non-negative")
    reserve = reserve_delta(points, settle_cents_per_100_points)
    return SettlementBreakdown(
        gross_cents=int(gross_cents),
        platform_fee_cents=platform_fee(gross_cents),
        reserve_delta_cents=reserve,
        upfront_cents=upfront_amount(gross_cents, reserve),
    )


def week_start(moment: datetime | None = None) -> date:
    """Monday (UTC) of the week containing ``moment``."""

    current = ensure_utc(moment) if moment is not None else utcnow()
    day = current.date()
    return day - timedelta(days=day.weekday())


def reserve_target(outstanding_points: int, settle_cents_per_100_points: int) -> int:
    return reserve_delta(max(0, outstanding_points), settle_cents_per_100_points)


def coverage_ratio(available_cents: int, target_cents: int) -> float:
    if target_cents <= 0:
        return 1.0
    return round(max(0, available_cents) / target_cents, 4)
