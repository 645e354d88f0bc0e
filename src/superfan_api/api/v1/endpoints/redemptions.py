from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.api.dependencies.security import require_internal_api_key
from superfan_api.api.dependencies.session import require_user
from superfan_api.api.errors import economy_errors
from superfan_api.core.time import utcnow
from superfan_api.db.session import get_session
from superfan_api.models.reward import RedemptionStateEnum, RewardRedemption
from superfan_api.models.user import User
from superfan_api.services.points import RedemptionOutcome, RedemptionService


router = APIRouter(prefix="/redemptions", tags=["Redemptions"])


class RedeemRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reward_id: UUID
    metadata: Dict[str, Any] | None = None


class RefundRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reason: str | None = Field(default=None, max_length=280)


class RedemptionResponse(BaseModel):
    id: UUID
    reward_id: UUID
    club_id: UUID
    points_spent: int
    state: RedemptionStateEnum
    hold_expires_at: datetime | None
    confirmed_at: datetime | None
    transaction_id: UUID | None
    balance_pts: int | None = None

    @classmethod
    def from_row(cls, row: RewardRedemption, *, balance_pts: int | None = None) -> "RedemptionResponse":
        return cls(
            id=row.id,
            reward_id=row.reward_id,
            club_id=row.club_id,
            points_spent=row.points_spent,
            state=row.effective_state(utcnow()),
            hold_expires_at=row.hold_expires_at,
            confirmed_at=row.confirmed_at,
            transaction_id=row.transaction_id,
            balance_pts=balance_pts,
        )

    @classmethod
    def from_outcome(cls, outcome: RedemptionOutcome) -> "RedemptionResponse":
        return cls.from_row(outcome.redemption, balance_pts=outcome.wallet.balance_pts)


@router.post("", response_model=RedemptionResponse, status_code=status.HTTP_201_CREATED)
async def redeem_reward(
    payload: RedeemRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    """Redeem a reward; presale rewards return a hold instead of a debit."""

    with economy_errors():
        outcome = await RedemptionService(db).redeem(
            user_id=user.id,
            reward_id=payload.reward_id,
            metadata=payload.metadata,
        )
    return RedemptionResponse.from_outcome(outcome)


@router.get("", response_model=List[RedemptionResponse])
async def list_redemptions(
    club_id: UUID | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> List[RedemptionResponse]:
    rows = await RedemptionService(db).list_for_user(user.id, club_id=club_id, limit=limit)
    return [RedemptionResponse.from_row(row) for row in rows]


@router.post("/{redemption_id}/cancel", response_model=RedemptionResponse)
async def cancel_hold(
    redemption_id: UUID,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    with economy_errors():
        row = await RedemptionService(db).cancel_hold(redemption_id, user_id=user.id, is_admin=user.is_admin)
    return RedemptionResponse.from_row(row)


@router.post("/{redemption_id}/refund", response_model=RedemptionResponse)
async def refund_redemption(
    redemption_id: UUID,
    payload: RefundRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    """Club owner or admin reverses a confirmed redemption and returns the points."""

    with economy_errors():
        outcome = await RedemptionService(db).refund_redemption(redemption_id, actor=user, reason=payload.reason)
    return RedemptionResponse.from_outcome(outcome)


@router.post(
    "/{redemption_id}/confirm",
    response_model=RedemptionResponse,
    dependencies=[Depends(require_internal_api_key)],
)
async def confirm_hold(
    redemption_id: UUID,
    db: AsyncSession = Depends(get_session),
) -> RedemptionResponse:
    """Settle a presale hold once the ticketing partner allocates the seat."""

    with economy_errors():
        outcome = await RedemptionService(db).confirm_hold(redemption_id)
    return RedemptionResponse.from_outcome(outcome)
