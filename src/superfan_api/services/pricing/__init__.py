"""Currency pricing for tier rewards and credit campaigns."""

from .tier_purchases import TierPurchaseService

__all__ = ["TierPurchaseService"]
