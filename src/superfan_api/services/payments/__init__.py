"""Payment processing services."""

from .checkout import CheckoutSessionResult, PointsCheckoutService
from .crediting import CreditingOutcome, PaymentEventService
from .crypto_purchases import CryptoPurchaseResult, CryptoPurchaseService
from .stripe_service import StripeService

__all__ = [
    "CheckoutSessionResult",
    "CreditingOutcome",
    "CryptoPurchaseResult",
    "CryptoPurchaseService",
    "PaymentEventService",
    "PointsCheckoutService",
    "StripeService",
]
