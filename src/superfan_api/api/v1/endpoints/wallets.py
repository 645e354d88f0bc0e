"""Wallet reads and member-initiated point movements."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.api.dependencies.session import require_admin, require_user
from superfan_api.api.errors import economy_errors
from superfan_api.db.session import get_session
from superfan_api.domain.earning import TapInSource
from superfan_api.domain.errors import NotFound
from superfan_api.domain.status import StatusTier
from superfan_api.models.user import User
from superfan_api.models.wallet import PointTransaction, TransactionSourceEnum, TransactionTypeEnum
from superfan_api.services.campaigns import CreditCampaignService
from superfan_api.services.points import (
    DebitPool,
    LedgerResult,
    PointBucket,
    PointsService,
    TapInService,
    TransferService,
    WalletLedger,
)
from superfan_api.services.points.read_models import ReadModelService


router = APIRouter(prefix="/clubs/{club_id}", tags=["Wallets"])


class StatusProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    current: StatusTier
    next: StatusTier | None
    status_points: int
    current_threshold: int
    next_threshold: int | None
    progress_pct: float
    points_to_next: int


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    transaction_id: UUID
    type: str
    source: str
    pts: int
    affects_status: bool
    ref: str | None
    created_at: datetime


class WalletBreakdownResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    club_id: UUID
    balance_pts: int
    earned_pts: int
    purchased_pts: int
    spent_pts: int
    escrowed_pts: int
    status_pts: int
    status: StatusProgressResponse
    recent_activity: List[ActivityResponse]


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: TransactionTypeEnum
    source: TransactionSourceEnum
    pts: int
    earned_delta: int
    purchased_delta: int
    affects_status: bool
    ref: str | None
    usd_gross_cents: int | None
    created_at: datetime


class WalletResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    club_id: UUID
    balance_pts: int
    earned_pts: int
    purchased_pts: int
    spent_pts: int
    status_pts: int


class LedgerResultResponse(BaseModel):
    wallet: WalletResponse
    transaction: TransactionResponse
    created: bool

    @classmethod
    def from_result(cls, result: LedgerResult) -> "LedgerResultResponse":
        return cls(
            wallet=WalletResponse.model_validate(result.wallet),
            transaction=TransactionResponse.model_validate(result.transaction),
            created=result.created,
        )


class LeaderboardEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rank: int
    user_id: UUID
    display_name: str | None
    status_pts: int
    tier: StatusTier


class SpendRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: int = Field(..., gt=0)
    preserve_status: bool = Field(default=False, description="Refuse to spend earned points below the tier floor")
    ref: str | None = Field(default=None, max_length=255, description="Idempotency reference")
    reason: str | None = Field(default=None, max_length=255)


class TapInRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source: TapInSource
    ref: str | None = Field(default=None, max_length=255, description="Client reference; repeats replay")
    location: str | None = Field(default=None, max_length=255)
    metadata: Dict[str, Any] | None = None


class TapInResponse(BaseModel):
    tap_in_id: UUID
    points_earned: int
    previous_tier: StatusTier
    new_tier: StatusTier
    tier_changed: bool
    created: bool
    wallet: WalletResponse


class TransferRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: int = Field(..., gt=0)
    recipient_id: UUID | None = None
    recipient_email: str | None = Field(default=None, max_length=320)
    pool: DebitPool = DebitPool.PURCHASED_ONLY
    ref: str | None = Field(default=None, max_length=200)
    note: str | None = Field(default=None, max_length=280)

    @model_validator(mode="after")
    def _one_recipient(self) -> "TransferRequest":
        if (self.recipient_id is None) == (self.recipient_email is None):
            raise ValueError("Provide exactly one of recipient_id or recipient_email")
        return self


class TransferResponse(BaseModel):
    ref: str
    amount: int
    pool: DebitPool
    sender_wallet: WalletResponse
    recipient_wallet: WalletResponse
    created: bool


class AdjustRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: UUID
    amount: int = Field(..., description="Signed; negative values debit")
    bucket: PointBucket
    reason: str = Field(..., min_length=1, max_length=255)
    ref: str | None = Field(default=None, max_length=255)


class CampaignCreditsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    campaign_id: UUID
    campaign_title: str
    credits_purchased: int
    credits_spent: int
    available: int


class ReconciliationResponse(BaseModel):
    wallet_id: UUID
    consistent: bool
    stored: Dict[str, int]
    derived: Dict[str, int]


@router.get("/wallet", response_model=WalletBreakdownResponse)
async def wallet_breakdown(
    club_id: UUID,
    activity_limit: int = Query(10, ge=0, le=50),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> WalletBreakdownResponse:
    """Balances, tier progress, and recent activity for the caller."""

    breakdown = await ReadModelService(db).breakdown(user.id, club_id, activity_limit=activity_limit)
    return WalletBreakdownResponse.model_validate(breakdown)


@router.get("/wallet/transactions", response_model=List[TransactionResponse])
async def wallet_transactions(
    club_id: UUID,
    limit: int = Query(50, ge=1, le=200),
    types: List[TransactionTypeEnum] | None = Query(None),
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> List[TransactionResponse]:
    ledger = WalletLedger(db)
    wallet = await ledger.get_wallet(user.id, club_id)
    if wallet is None:
        return []
    rows: List[PointTransaction] = await ledger.history(wallet.id, limit=limit, types=types)
    return [TransactionResponse.model_validate(row) for row in rows]


@router.get("/leaderboard", response_model=List[LeaderboardEntryResponse])
async def leaderboard(
    club_id: UUID,
    limit: int | None = Query(None, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> List[LeaderboardEntryResponse]:
    entries = await ReadModelService(db).leaderboard(club_id, limit=limit)
    return [LeaderboardEntryResponse.model_validate(entry) for entry in entries]


@router.get("/credit-balances", response_model=List[CampaignCreditsResponse])
async def credit_balances(
    club_id: UUID,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> List[CampaignCreditsResponse]:
    """Campaigns in this club where the caller still has credits to spend."""

    balances = await CreditCampaignService(db).balances(user.id, club_id)
    return [CampaignCreditsResponse.model_validate(item) for item in balances]


@router.post("/wallet/spend", response_model=LedgerResultResponse)
async def spend_points(
    club_id: UUID,
    payload: SpendRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> LedgerResultResponse:
    with economy_errors():
        result = await PointsService(db).spend(
            user_id=user.id,
            club_id=club_id,
            amount=payload.amount,
            preserve_status=payload.preserve_status,
            ref=payload.ref,
            reason=payload.reason,
        )
    return LedgerResultResponse.from_result(result)


@router.post("/tap-ins", response_model=TapInResponse)
async def record_tap_in(
    club_id: UUID,
    payload: TapInRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> TapInResponse:
    with economy_errors():
        result = await TapInService(db).record(
            user_id=user.id,
            club_id=club_id,
            source=payload.source,
            ref=payload.ref,
            location=payload.location,
            metadata=payload.metadata,
        )
    return TapInResponse(
        tap_in_id=result.tap_in.id,
        points_earned=result.points_earned,
        previous_tier=result.previous_tier,
        new_tier=result.new_tier,
        tier_changed=result.tier_changed,
        created=result.created,
        wallet=WalletResponse.model_validate(result.wallet),
    )


@router.post("/transfers", response_model=TransferResponse)
async def transfer_points(
    club_id: UUID,
    payload: TransferRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> TransferResponse:
    with economy_errors():
        result = await TransferService(db).transfer(
            sender_id=user.id,
            club_id=club_id,
            amount=payload.amount,
            pool=payload.pool,
            recipient_id=payload.recipient_id,
            recipient_email=payload.recipient_email,
            ref=payload.ref,
            note=payload.note,
        )
    return TransferResponse(
        ref=result.ref,
        amount=result.amount,
        pool=result.pool,
        sender_wallet=WalletResponse.model_validate(result.sender_wallet),
        recipient_wallet=WalletResponse.model_validate(result.recipient_wallet),
        created=result.created,
    )


@router.post("/adjustments", response_model=LedgerResultResponse, status_code=status.HTTP_201_CREATED)
async def adjust_points(
    club_id: UUID,
    payload: AdjustRequest,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_session),
) -> LedgerResultResponse:
    """Owner or admin correction to one bucket of a member's wallet."""

    with economy_errors():
        result = await PointsService(db).adjust(
            actor=user,
            user_id=payload.user_id,
            club_id=club_id,
            amount=payload.amount,
            bucket=payload.bucket,
            reason=payload.reason,
            ref=payload.ref,
        )
    return LedgerResultResponse.from_result(result)


@router.get("/wallets/{user_id}/reconcile", response_model=ReconciliationResponse)
async def reconcile_wallet(
    club_id: UUID,
    user_id: UUID,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
) -> ReconciliationResponse:
    ledger = WalletLedger(db)
    with economy_errors():
        wallet = await ledger.get_wallet(user_id, club_id)
        if wallet is None:
            raise NotFound("Wallet not found", user_id=str(user_id), club_id=str(club_id))
        report = await ledger.reconcile(wallet)
    return ReconciliationResponse(
        wallet_id=report.wallet_id,
        consistent=report.consistent,
        stored=report.stored,
        derived=report.derived,
    )
