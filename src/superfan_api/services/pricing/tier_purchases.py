"""Quotes and checkout for currency-priced tier rewards and credit campaigns."""

from __future__ import annotations

from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.core.settings import settings
from superfan_api.domain.errors import AlreadyClaimed, EconomyError, NotFound, RewardUnavailable
from superfan_api.domain.pricing import (
    PriceQuote,
    purchase_idempotency_key,
    quote_credit_campaign,
    quote_tier_price,
)
from superfan_api.domain.status import compute_status
from superfan_api.models.tier_reward import RewardClaim, TierReward
from superfan_api.models.user import User
from superfan_api.observability.payments import get_payment_store
from superfan_api.services.payments.checkout import CheckoutSessionResult
from superfan_api.services.payments.metadata import (
    CreditPurchaseMetadata,
    TierPurchaseMetadata,
    to_processor_metadata,
)
from superfan_api.services.payments.stripe_service import StripeService
from superfan_api.services.points.ledger import WalletLedger


class TierPurchaseService:
    """Prices tier rewards from the member's ledger-derived tier.

    The tier comes from ``earned_pts`` at request time; the cached
    ``current_status`` column is never consulted.
    """

    def __init__(self, session: AsyncSession, *, stripe_service: StripeService | None = None) -> None:
        self._session = session
        self._stripe_service = stripe_service
        self._ledger = WalletLedger(session)

    @property
    def _stripe(self) -> StripeService:
        if self._stripe_service is None:
            self._stripe_service = StripeService()
        return self._stripe_service

    async def quote(self, tier_reward_id: UUID, *, user_id: UUID) -> PriceQuote:
        tier_reward = await self._load(tier_reward_id)
        return await self._quote(tier_reward, user_id)

    async def purchase(
        self,
        tier_reward_id: UUID,
        *,
        user: User,
        success_url: str | None = None,
        cancel_url: str | None = None,
    ) -> tuple[PriceQuote, CheckoutSessionResult]:
        """Validate, price, then open a processor session.

        Every rejection (already claimed, sub-minimum price) happens before the
        processor is called.
        """

        tier_reward = await self._load(tier_reward_id)
        if not tier_reward.is_credit_campaign and await self._already_claimed(user.id, tier_reward.id):
            raise AlreadyClaimed("Tier reward already claimed", tier_reward_id=str(tier_reward.id))

        quote = await self._quote(tier_reward, user.id)
        if tier_reward.is_credit_campaign:
            metadata = CreditPurchaseMetadata(
                user_id=user.id,
                club_id=tier_reward.club_id,
                tier_reward_id=tier_reward.id,
                credits=quote.credit_cost,
                price_cents=quote.final_price_cents,
            )
        else:
            metadata = TierPurchaseMetadata(
                user_id=user.id,
                club_id=tier_reward.club_id,
                tier_reward_id=tier_reward.id,
                user_tier=quote.user_tier,
                original_price_cents=quote.base_price_cents,
                final_price_cents=quote.final_price_cents,
                discount_cents=quote.discount_cents,
            )

        key = purchase_idempotency_key(tier_reward.id, user.id, quote.final_price_cents)
        return_url = f"{settings.frontend_url}/clubs/{tier_reward.club_id}"
        store = get_payment_store()
        try:
            checkout = await self._stripe.create_checkout_session(
                product_name=tier_reward.title,
                amount_cents=quote.final_price_cents,
                metadata=to_processor_metadata(metadata),
                idempotency_key=key,
                success_url=success_url or f"{return_url}?purchase=success",
                cancel_url=cancel_url or f"{return_url}?purchase=cancelled",
                customer_email=user.email,
            )
        except EconomyError as exc:
            store.record_checkout_failure(metadata.type, str(exc))
            raise

        store.record_checkout_success(metadata.type, checkout.id)
        logger.info(
            "Tier reward checkout created",
            tier_reward_id=str(tier_reward.id),
            user_id=str(user.id),
            user_tier=quote.user_tier.value,
            final_price_cents=quote.final_price_cents,
            credit_campaign=tier_reward.is_credit_campaign,
            session_id=checkout.id,
        )
        return quote, CheckoutSessionResult(
            checkout_session_id=checkout.id,
            checkout_url=checkout.url,
            amount_cents=quote.final_price_cents,
            idempotency_key=key,
        )

    async def _quote(self, tier_reward: TierReward, user_id: UUID) -> PriceQuote:
        wallet = await self._ledger.get_wallet(user_id, tier_reward.club_id)
        user_tier = compute_status(wallet.status_pts if wallet else 0)
        if tier_reward.is_credit_campaign:
            return quote_credit_campaign(tier_reward.credit_cost, user_tier=user_tier)
        return quote_tier_price(
            tier_reward.upgrade_price_cents,
            user_tier=user_tier,
            min_tier=tier_reward.min_tier,
            overrides=tier_reward.discount_overrides,
        )

    async def _load(self, tier_reward_id: UUID) -> TierReward:
        tier_reward = await self._session.get(TierReward, tier_reward_id)
        if tier_reward is None:
            raise NotFound("Tier reward not found", tier_reward_id=str(tier_reward_id))
        if not tier_reward.is_active:
            raise RewardUnavailable("Tier reward is not active", tier_reward_id=str(tier_reward_id))
        return tier_reward

    async def _already_claimed(self, user_id: UUID, tier_reward_id: UUID) -> bool:
        stmt = select(RewardClaim.id).where(RewardClaim.user_id == user_id, RewardClaim.tier_reward_id == tier_reward_id)
        return (await self._session.execute(stmt)).first() is not None


__all__ = ["TierPurchaseService"]
