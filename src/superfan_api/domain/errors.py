"""Error taxonomy for the points economy.

Services raise these; HTTP endpoints translate them through ``status_code`` and
``code``. Business-rule violations are 4xx, datastore and oracle failures are 5xx
and safe to retry.
"""

from __future__ import annotations

from typing import Any


class EconomyError(RuntimeError):
    """Base class for points economy failures."""

    status_code = 400
    code = "economy_error"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.details = details

    def as_detail(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": str(self)}
        if self.details:
            payload.update(self.details)
        return payload


class Unauthorized(EconomyError):
    """Missing or invalid caller identity."""

    status_code = 401
    code = "unauthorized"


class Forbidden(EconomyError):
    """Caller is not allowed to perform this action."""

    status_code = 403
    code = "forbidden"


class NotFound(EconomyError):
    """Requested user, wallet, reward, or club does not exist."""

    status_code = 404
    code = "not_found"


class InsufficientPoints(EconomyError):
    """Wallet balance is too low for this debit."""

    status_code = 409
    code = "insufficient_points"


class InsufficientPointsStatusProtected(InsufficientPoints):
    """Debit would spend earned points below the current tier threshold."""

    code = "insufficient_points_status_protected"


class InsufficientCredits(InsufficientPoints):
    """Campaign credit balance is too low for this item."""

    code = "insufficient_credits"


class RewardUnavailable(EconomyError):
    """Reward is inactive, outside its window, or sold out."""

    status_code = 409
    code = "reward_unavailable"


class OutOfStock(RewardUnavailable):
    """Reward inventory is exhausted."""

    code = "out_of_stock"


class HoldExpired(RewardUnavailable):
    """Presale hold expired before confirmation."""

    code = "hold_expired"


class InvalidRedemptionState(EconomyError):
    """Redemption is not in a state that allows this transition."""

    status_code = 409
    code = "invalid_redemption_state"


class AlreadyClaimed(EconomyError):
    """Non-repeatable reward was already claimed."""

    status_code = 409
    code = "already_claimed"


class InvalidPricing(EconomyError):
    """Price is misconfigured or below the processor minimum."""

    status_code = 422
    code = "invalid_pricing"


class RefConflict(EconomyError):
    """Reference already names a different ledger entry."""

    status_code = 409
    code = "ref_conflict"


class DuplicateExternalEvent(EconomyError):
    """External event was already applied; callers treat this as a no-op."""

    status_code = 200
    code = "duplicate_external_event"


class TransferToSelf(EconomyError):
    """Sender and recipient are the same."""

    status_code = 400
    code = "transfer_to_self"


class RecipientNotFound(NotFound):
    """Transfer recipient does not exist."""

    code = "recipient_not_found"


class ExternalServiceUnavailable(EconomyError):
    """Payment processor or blockchain oracle failed or timed out."""

    status_code = 503
    code = "external_service_unavailable"


class DatastoreConflict(EconomyError):
    """Constraint violation or lost race; the caller may retry."""

    status_code = 503
    code = "datastore_conflict"


__all__ = [
    "AlreadyClaimed",
    "DatastoreConflict",
    "DuplicateExternalEvent",
    "EconomyError",
    "ExternalServiceUnavailable",
    "Forbidden",
    "HoldExpired",
    "InsufficientCredits",
    "InsufficientPoints",
    "InsufficientPointsStatusProtected",
    "InvalidPricing",
    "InvalidRedemptionState",
    "NotFound",
    "OutOfStock",
    "RecipientNotFound",
    "RefConflict",
    "RewardUnavailable",
    "TransferToSelf",
    "Unauthorized",
]
