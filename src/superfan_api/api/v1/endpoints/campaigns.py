"""Credit campaign items and spending purchased campaign credits."""

from __future__ import annotations

from datetime import datetime
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.api.dependencies.session import require_user
from superfan_api.api.errors import economy_errors
from superfan_api.db.session import get_session
from superfan_api.models.user import User
from superfan_api.services.campaigns import CreditCampaignService


router = APIRouter(prefix="/campaigns", tags=["Campaigns"])


class CampaignItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    campaign_id: UUID
    club_id: UUID
    title: str
    description: str | None
    credit_cost: int
    is_active: bool


class CreateCampaignItemRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    credit_cost: int = Field(..., gt=0)


class RedeemItemRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ref: str | None = Field(default=None, max_length=255, description="Client reference; repeats replay")


class CreditRedemptionResponse(BaseModel):
    redemption_id: UUID
    item_id: UUID
    item_title: str
    credits_spent: int
    remaining_credits: int
    created: bool
    redeemed_at: datetime


@router.get("/{campaign_id}/items", response_model=List[CampaignItemResponse])
async def list_campaign_items(campaign_id: UUID, db: AsyncSession = Depends(get_session)) -> List[CampaignItemResponse]:
    items = await CreditCampaignService(db).list_items(campaign_id)
    return [CampaignItemResponse.model_validate(item) for item in items]


@router.post("/{campaign_id}/items", response_model=CampaignItemResponse, status_code=status.HTTP_201_CREATED)
async def create_campaign_item(
    campaign_id: UUID,
    payload: CreateCampaignItemRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> CampaignItemResponse:
    with economy_errors():
        item = await CreditCampaignService(db).create_item(campaign_id, actor=user, **payload.model_dump())
    return CampaignItemResponse.model_validate(item)


@router.post("/{campaign_id}/items/{item_id}/redeem", response_model=CreditRedemptionResponse)
async def redeem_campaign_item(
    campaign_id: UUID,
    item_id: UUID,
    payload: RedeemItemRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> CreditRedemptionResponse:
    """Spend the item's credit cost; a short balance answers 409 with ``need_more``."""

    with economy_errors():
        result = await CreditCampaignService(db).redeem_item(
            user_id=user.id, campaign_id=campaign_id, item_id=item_id, ref=payload.ref
        )
    return CreditRedemptionResponse(
        redemption_id=result.redemption.id,
        item_id=result.item.id,
        item_title=result.item.title,
        credits_spent=result.redemption.credits_spent,
        remaining_credits=result.remaining,
        created=result.created,
        redeemed_at=result.redemption.created_at,
    )
