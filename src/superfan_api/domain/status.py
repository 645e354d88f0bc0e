"""Status tier derivation.

Tier is always computed from the wallet's status points; stored tier values are
caches only and never drive pricing or access decisions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from superfan_api.core.settings import settings


class StatusTier(str, Enum):
    """Ordered membership levels."""

    CADET = "cadet"
    RESIDENT = "resident"
    HEADLINER = "headliner"
    SUPERFAN = "superfan"

    @property
    def rank(self) -> int:
        return STATUS_ORDER.index(self)


STATUS_ORDER: tuple[StatusTier, ...] = (
    StatusTier.CADET,
    StatusTier.RESIDENT,
    StatusTier.HEADLINER,
    StatusTier.SUPERFAN,
)


@dataclass(frozen=True, slots=True)
class StatusProgress:
    current: StatusTier
    next: StatusTier | None
    status_points: int
    current_threshold: int
    next_threshold: int | None
    progress_pct: float
    points_to_next: int


def _thresholds(overrides: Mapping[str, int] | None = None) -> dict[StatusTier, int]:
    source = overrides if overrides is not None else settings.status_thresholds
    table = {tier: int(source[tier.value]) for tier in STATUS_ORDER}
    previous = -1
    for tier in STATUS_ORDER:
        if table[tier] <= previous:
            raise ValueError("status thresholds must be strictly increasing")
        previous = table[tier]
    return table


def threshold_for(tier: StatusTier, thresholds: Mapping[str, int] | None = None) -> int:
    return _thresholds(thresholds)[tier]


def compute_status(status_points: int, thresholds: Mapping[str, int] | None = None) -> StatusTier:
    points = max(0, int(status_points or 0))
    table = _thresholds(thresholds)
    current = StatusTier.CADET
    for tier in STATUS_ORDER:
        if points >= table[tier]:
            current = tier
    return current


def next_status(current: StatusTier) -> StatusTier | None:
    index = current.rank
    if index + 1 < len(STATUS_ORDER):
        return STATUS_ORDER[index + 1]
    return None


def derive_status(status_points: int, thresholds: Mapping[str, int] | None = None) -> StatusProgress:
    """Return the tier, next tier and progress (0-100) for the given status points."""

    points = max(0, int(status_points or 0))
    table = _thresholds(thresholds)
    current = compute_status(points, thresholds)
    upcoming = next_status(current)
    current_threshold = table[current]

    if upcoming is None:
        return StatusProgress(
            current=current,
            next=None,
            status_points=points,
            current_threshold=current_threshold,
            next_threshold=None,
            progress_pct=100.0,
            points_to_next=0,
        )

    next_threshold = table[upcoming]
    # Progress is measured from zero, not from the current tier floor.
    progress = points / next_threshold * 100
    progress = max(0.0, min(100.0, progress))
    return StatusProgress(
        current=current,
        next=upcoming,
        status_points=points,
        current_threshold=current_threshold,
        next_threshold=next_threshold,
        progress_pct=round(progress, 2),
        points_to_next=max(0, next_threshold - points),
    )


__all__ = [
    "STATUS_ORDER",
    "StatusProgress",
    "StatusTier",
    "compute_status",
    "derive_status",
    "next_status",
    "threshold_for",
]
