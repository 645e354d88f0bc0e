from fastapi import APIRouter

from .endpoints import (
    campaigns,
    clubs,
    health,
    observability,
    payments,
    redemptions,
    tier_rewards,
    users,
    wallets,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(users.router)
router.include_router(clubs.router)
router.include_router(wallets.router)
router.include_router(redemptions.router)
router.include_router(tier_rewards.router)
router.include_router(campaigns.router)
router.include_router(payments.router)
router.include_router(observability.router)
