"""Points economy services: ledger, spends, transfers, redemptions, tap-ins, read models."""

from .ledger import DebitPool, LedgerResult, PointBucket, WalletLedger, WalletReconciliation
from .redemptions import RedemptionOutcome, RedemptionService
from .spending import PointsService
from .tap_in import TapInResult, TapInService
from .transfers import TransferResult, TransferService

__all__ = [
    "DebitPool",
    "LedgerResult",
    "PointBucket",
    "PointsService",
    "RedemptionOutcome",
    "RedemptionService",
    "TapInResult",
    "TapInService",
    "TransferResult",
    "TransferService",
    "WalletLedger",
    "WalletReconciliation",
]
