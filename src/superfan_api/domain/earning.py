from __future__ import annotations

from decimal import Decimal
from enum import Enum

from superfan_api.domain.pricing import round_half_up


class TapInSource(str, Enum):
    """Activities that earn status-bearing points."""

    TRAILER = "trailer"
    PREMIERE_CHAT = "premiere_chat"
    SHOW_ENTRY = "show_entry"
    MERCH_PURCHASE = "merch_purchase"
    PRE_SAVE = "pre_save"
    QR_CODE = "qr_code"
    NFC = "nfc"
    LINK = "link"


TAP_IN_BASE_POINTS: dict[TapInSource, int] = {
    TapInSource.TRAILER: 20,
    TapInSource.PREMIERE_CHAT: 40,
    TapInSource.SHOW_ENTRY: 100,
    TapInSource.MERCH_PURCHASE: 50,
    TapInSource.PRE_SAVE: 40,
    TapInSource.QR_CODE: 30,
    TapInSource.NFC: 30,
    TapInSource.LINK: 10,
}


def tap_in_points(source: TapInSource, *, earn_multiplier: float = 1.0, earn_boost: float = 1.0) -> int:
    base = TAP_IN_BASE_POINTS[source]
    return max(0, round_half_up(Decimal(base) * Decimal(str(earn_multiplier)) * Decimal(str(earn_boost))))
