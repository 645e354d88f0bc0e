"""Tier-priced upgrades and credit campaigns bought with card payments."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.api.dependencies.session import require_user
from superfan_api.api.errors import economy_errors
from superfan_api.db.session import get_session
from superfan_api.domain.pricing import PriceQuote
from superfan_api.domain.status import StatusTier
from superfan_api.models.user import User
from superfan_api.services.pricing import TierPurchaseService


router = APIRouter(prefix="/tier-rewards", tags=["Tier rewards"])


class QuoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    base_price_cents: int
    discount_percentage: int
    discount_cents: int
    final_price_cents: int
    user_tier: StatusTier
    is_credit_campaign: bool
    credit_cost: int


class PurchaseRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    success_url: str | None = Field(default=None, description="Redirect after successful payment")
    cancel_url: str | None = Field(default=None, description="Redirect after cancelled payment")


class PurchaseResponse(BaseModel):
    quote: QuoteResponse
    checkout_session_id: str
    checkout_url: str
    amount_cents: int


@router.get("/{tier_reward_id}/quote", response_model=QuoteResponse)
async def quote_tier_reward(
    tier_reward_id: UUID,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> QuoteResponse:
    with economy_errors():
        quote: PriceQuote = await TierPurchaseService(db).quote(tier_reward_id, user_id=user.id)
    return QuoteResponse.model_validate(quote)


@router.post("/{tier_reward_id}/purchase", response_model=PurchaseResponse)
async def purchase_tier_reward(
    tier_reward_id: UUID,
    payload: PurchaseRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> PurchaseResponse:
    """Price the reward for the caller's tier and open a checkout session.

    The claim is recorded when the processor confirms payment.
    """

    with economy_errors():
        quote, checkout = await TierPurchaseService(db).purchase(
            tier_reward_id,
            user=user,
            success_url=payload.success_url,
            cancel_url=payload.cancel_url,
        )
    return PurchaseResponse(
        quote=QuoteResponse.model_validate(quote),
        checkout_session_id=checkout.checkout_session_id,
        checkout_url=checkout.checkout_url,
        amount_cents=checkout.amount_cents,
    )
