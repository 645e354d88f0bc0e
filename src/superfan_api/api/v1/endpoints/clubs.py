"""Club configuration, reward catalog and settlement reporting."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.api.dependencies.session import require_user
from superfan_api.api.errors import economy_errors
from superfan_api.db.session import get_session
from superfan_api.domain.status import StatusTier, compute_status
from superfan_api.models.club import Club
from superfan_api.models.reward import Reward, RewardKindEnum, RewardStatusEnum, SettleModeEnum
from superfan_api.models.tier_reward import TierReward
from superfan_api.models.user import User
from superfan_api.services.clubs import ClubService, MultiplierUpdate
from superfan_api.services.points.ledger import WalletLedger
from superfan_api.services.settlement import SettlementService


router = APIRouter(prefix="/clubs", tags=["Clubs"])


class MultiplierResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: StatusTier
    earn_boost: Decimal
    redeem_boost: Decimal


class ClubResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    owner_id: UUID | None
    is_active: bool
    earn_multiplier: Decimal
    redeem_multiplier: Decimal
    promo_active: bool
    promo_description: str | None
    promo_discount_pts: int
    promo_expires_at: datetime | None
    system_peg_rate: int
    system_purchase_rate: int
    point_settle_cents: int
    status_multipliers: List[MultiplierResponse] = Field(default_factory=list)


class CreateClubRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=120)
    owner_id: UUID | None = None


class EconomicsUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    earn_multiplier: Decimal | None = Field(default=None, ge=Decimal("0.5"), le=Decimal("5.0"))
    redeem_multiplier: Decimal | None = Field(default=None, ge=Decimal("0.5"), le=Decimal("2.0"))
    promo_active: bool | None = None
    promo_description: str | None = Field(default=None, max_length=500)
    promo_discount_pts: int | None = Field(default=None, ge=0)
    promo_expires_at: datetime | None = None
    point_settle_cents: int | None = Field(default=None, ge=0)


class MultiplierUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: StatusTier
    earn_boost: Decimal = Field(default=Decimal("1.000"), ge=Decimal("1.0"), le=Decimal("3.0"))
    redeem_boost: Decimal = Field(default=Decimal("1.000"), ge=Decimal("0.8"), le=Decimal("1.2"))


class MultipliersRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    multipliers: List[MultiplierUpdateRequest] = Field(..., min_length=1)


class CreateRewardRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: RewardKindEnum
    title: str = Field(..., min_length=1, max_length=200)
    points_price: int = Field(..., gt=0)
    description: str | None = None
    inventory: int | None = Field(default=None, ge=0)
    window_start: datetime | None = None
    window_end: datetime | None = None
    settle_mode: SettleModeEnum = SettleModeEnum.ZERO
    status: RewardStatusEnum = RewardStatusEnum.ACTIVE


class RewardStatusRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: RewardStatusEnum


class RewardResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    club_id: UUID
    kind: RewardKindEnum
    title: str
    description: str | None
    points_price: int
    inventory: int | None
    window_start: datetime | None
    window_end: datetime | None
    settle_mode: SettleModeEnum
    status: RewardStatusEnum
    effective_price: int | None = Field(default=None, description="Price for the caller's current tier")


class CreateTierRewardRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    min_tier: StatusTier = StatusTier.CADET
    upgrade_price_cents: int | None = Field(default=None, gt=0)
    discounts: Dict[str, int | None] | None = Field(
        default=None, description="Per-tier discount percentage overrides keyed by tier name"
    )
    is_credit_campaign: bool = False
    credit_cost: int | None = Field(default=None, gt=0)


class TierRewardResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    club_id: UUID
    title: str
    description: str | None
    min_tier: StatusTier
    upgrade_price_cents: int | None
    is_active: bool
    is_credit_campaign: bool
    credit_cost: int | None
    discount_overrides: Dict[str, int | None]


class WeeklyStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    week_start: date
    gross_cents: int
    platform_fee_cents: int
    reserve_delta_cents: int
    upfront_cents: int
    purchase_count: int


class SettlementReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    club_id: UUID
    this_week: WeeklyStatsResponse
    outstanding_points: int
    total_members: int
    total_redemptions: int
    active_rewards: int
    pool_balance_cents: int
    pool_reserved_cents: int
    reserve_target_cents: int
    coverage_ratio: float


def _ensure_manager(club: Club, user: User) -> None:
    if not user.is_admin and club.owner_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "forbidden", "message": "Only the club owner or an admin can view this"},
        )


@router.get("", response_model=List[ClubResponse])
async def list_clubs(db: AsyncSession = Depends(get_session)) -> List[ClubResponse]:
    clubs = await ClubService(db).list_clubs()
    return [ClubResponse.model_validate(club) for club in clubs]


@router.post("", response_model=ClubResponse, status_code=status.HTTP_201_CREATED)
async def create_club(
    payload: CreateClubRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> ClubResponse:
    with economy_errors():
        club = await ClubService(db).create_club(actor=user, name=payload.name, owner_id=payload.owner_id)
    return ClubResponse.model_validate(club)


@router.get("/{club_id}", response_model=ClubResponse)
async def get_club(club_id: UUID, db: AsyncSession = Depends(get_session)) -> ClubResponse:
    with economy_errors():
        club = await ClubService(db).get_club(club_id)
    return ClubResponse.model_validate(club)


@router.patch("/{club_id}/economics", response_model=ClubResponse)
async def update_economics(
    club_id: UUID,
    payload: EconomicsUpdateRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> ClubResponse:
    """Update multipliers, promotion, and settlement rate; omitted fields stay unchanged."""

    changes: dict[str, Any] = payload.model_dump(exclude_unset=True)
    with economy_errors():
        club = await ClubService(db).update_economics(club_id, actor=user, changes=changes)
    return ClubResponse.model_validate(club)


@router.put("/{club_id}/multipliers", response_model=ClubResponse)
async def set_multipliers(
    club_id: UUID,
    payload: MultipliersRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> ClubResponse:
    updates = [
        MultiplierUpdate(status=item.status, earn_boost=item.earn_boost, redeem_boost=item.redeem_boost)
        for item in payload.multipliers
    ]
    with economy_errors():
        club = await ClubService(db).set_multipliers(club_id, actor=user, updates=updates)
    return ClubResponse.model_validate(club)


@router.get("/{club_id}/rewards", response_model=List[RewardResponse])
async def list_rewards(
    club_id: UUID,
    include_inactive: bool = Query(False),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> List[RewardResponse]:
    """List the catalog with prices for the caller's ledger-derived tier."""

    service = ClubService(db)
    with economy_errors():
        await service.get_club(club_id)
        rewards = await service.list_rewards(club_id, active_only=not include_inactive)
        wallet = await WalletLedger(db).get_wallet(user.id, club_id)
        tier = compute_status(wallet.status_pts if wallet else 0)
        responses = []
        for reward in rewards:
            response = RewardResponse.model_validate(reward)
            response.effective_price = await service.price_for(reward, tier)
            responses.append(response)
    return responses


@router.post("/{club_id}/rewards", response_model=RewardResponse, status_code=status.HTTP_201_CREATED)
async def create_reward(
    club_id: UUID,
    payload: CreateRewardRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> RewardResponse:
    with economy_errors():
        reward: Reward = await ClubService(db).create_reward(club_id, actor=user, **payload.model_dump())
    return RewardResponse.model_validate(reward)


@router.patch("/rewards/{reward_id}/status", response_model=RewardResponse)
async def set_reward_status(
    reward_id: UUID,
    payload: RewardStatusRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> RewardResponse:
    with economy_errors():
        reward = await ClubService(db).set_reward_status(reward_id, actor=user, status=payload.status)
    return RewardResponse.model_validate(reward)


@router.get("/{club_id}/tier-rewards", response_model=List[TierRewardResponse])
async def list_tier_rewards(club_id: UUID, db: AsyncSession = Depends(get_session)) -> List[TierRewardResponse]:
    tier_rewards = await ClubService(db).list_tier_rewards(club_id)
    return [TierRewardResponse.model_validate(item) for item in tier_rewards]


@router.post("/{club_id}/tier-rewards", response_model=TierRewardResponse, status_code=status.HTTP_201_CREATED)
async def create_tier_reward(
    club_id: UUID,
    payload: CreateTierRewardRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> TierRewardResponse:
    with economy_errors():
        tier_reward: TierReward = await ClubService(db).create_tier_reward(
            club_id,
            actor=user,
            title=payload.title,
            description=payload.description,
            min_tier=payload.min_tier,
            upgrade_price_cents=payload.upgrade_price_cents,
            discounts=payload.discounts,
            is_credit_campaign=payload.is_credit_campaign,
            credit_cost=payload.credit_cost,
        )
    return TierRewardResponse.model_validate(tier_reward)


@router.get("/{club_id}/settlement", response_model=SettlementReportResponse)
async def settlement_report(
    club_id: UUID,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> SettlementReportResponse:
    """Weekly upfront totals, outstanding liability, and reserve coverage."""

    with economy_errors():
        club = await ClubService(db).get_club(club_id)
        _ensure_manager(club, user)
        report = await SettlementService(db).club_report(club_id)
    return SettlementReportResponse.model_validate(report)


@router.get("/{club_id}/settlement/weeks", response_model=List[WeeklyStatsResponse])
async def settlement_weeks(
    club_id: UUID,
    weeks: int = Query(8, ge=1, le=52),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> List[WeeklyStatsResponse]:
    with economy_errors():
        club = await ClubService(db).get_club(club_id)
        _ensure_manager(club, user)
        stats = await SettlementService(db).weekly_stats(club_id, weeks=weeks)
    return [WeeklyStatsResponse.model_validate(item) for item in stats]
