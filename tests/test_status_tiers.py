from __future__ import annotations

import pytest

from superfan_api.domain.status import StatusTier, compute_status, derive_status, next_status, threshold_for


@pytest.mark.parametrize(
    ("points", "expected"),
    [
        (0, StatusTier.CADET),
        (4999, StatusTier.CADET),
        (5000, StatusTier.RESIDENT),
        (14999, StatusTier.RESIDENT),
        (15000, StatusTier.HEADLINER),
        (39999, StatusTier.HEADLINER),
        (40000, StatusTier.SUPERFAN),
        (250000, StatusTier.SUPERFAN),
    ],
)
def test_compute_status_uses_inclusive_thresholds(points: int, expected: StatusTier) -> None:
    assert compute_status(points) is expected


def test_negative_or_missing_points_are_cadet() -> None:
    assert compute_status(-10) is StatusTier.CADET
    assert compute_status(None) is StatusTier.CADET  # type: ignore[arg-type]


def test_progress_is_measured_from_zero() -> None:
    progress = derive_status(10000)

    assert progress.current is StatusTier.RESIDENT
    assert progress.next is StatusTier.HEADLINER
    assert progress.next_threshold == 15000
    assert progress.progress_pct == pytest.approx(66.67)
    assert progress.points_to_next == 5000


def test_top_tier_reports_full_progress() -> None:
    progress = derive_status(41000)

    assert progress.current is StatusTier.SUPERFAN
    assert progress.next is None
    assert progress.next_threshold is None
    assert progress.progress_pct == 100.0
    assert progress.points_to_next == 0


def test_tier_order_helpers() -> None:
    assert next_status(StatusTier.CADET) is StatusTier.RESIDENT
    assert next_status(StatusTier.SUPERFAN) is None
    assert threshold_for(StatusTier.HEADLINER) == 15000
    assert StatusTier.CADET.rank < StatusTier.SUPERFAN.rank


def test_custom_thresholds_must_increase() -> None:
    thresholds = {"cadet": 0, "resident": 100, "headliner": 100, "superfan": 300}

    with pytest.raises(ValueError):
        compute_status(150, thresholds)


def test_custom_thresholds_are_respected() -> None:
    thresholds = {"cadet": 0, "resident": 100, "headliner": 200, "superfan": 300}

    assert compute_status(250, thresholds) is StatusTier.HEADLINER
