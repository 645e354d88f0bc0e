"""Wallet breakdowns and club leaderboards, derived from the ledger on demand."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.core.settings import settings
from superfan_api.core.time import ensure_utc
from superfan_api.domain.status import StatusProgress, StatusTier, compute_status, derive_status
from superfan_api.models.user import User
from superfan_api.models.wallet import PointWallet
from superfan_api.services.points.cache import ReadModelCache, get_read_model_cache
from superfan_api.services.points.ledger import WalletLedger

# Cached breakdowns carry this many recent entries; callers slice to their limit.
ACTIVITY_WINDOW = 50


@dataclass(frozen=True, slots=True)
class ActivityEntry:
    transaction_id: UUID
    type: str
    source: str
    pts: int
    affects_status: bool
    ref: str | None
    created_at: datetime


@dataclass(frozen=True, slots=True)
class WalletBreakdown:
    user_id: UUID
    club_id: UUID
    balance_pts: int
    earned_pts: int
    purchased_pts: int
    spent_pts: int
    escrowed_pts: int
    status_pts: int
    status: StatusProgress
    recent_activity: tuple[ActivityEntry, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    rank: int
    user_id: UUID
    display_name: str | None
    status_pts: int
    tier: StatusTier


class ReadModelService:
    """Read-only views; never used by a write path.

    Values are built from the authoritative tables and cached for a few seconds.
    Ledger writes invalidate the member's breakdown and the club leaderboard.
    """

    def __init__(self, session: AsyncSession, *, cache: ReadModelCache | None = None) -> None:
        self._session = session
        self._cache = cache or get_read_model_cache()
        self._ledger = WalletLedger(session)

    async def breakdown(self, user_id: UUID, club_id: UUID, *, activity_limit: int = 10) -> WalletBreakdown:
        key = ("breakdown", club_id, user_id)
        breakdown = await self._cache.get_or_load(key, lambda: self._load_breakdown(user_id, club_id))
        return replace(breakdown, recent_activity=breakdown.recent_activity[: max(0, activity_limit)])

    async def leaderboard(self, club_id: UUID, *, limit: int | None = None) -> list[LeaderboardEntry]:
        size = limit or settings.leaderboard_default_limit
        key = ("leaderboard", club_id, size)
        entries = await self._cache.get_or_load(key, lambda: self._load_leaderboard(club_id, size))
        return list(entries)

    async def _load_breakdown(self, user_id: UUID, club_id: UUID) -> WalletBreakdown:
        wallet = await self._ledger.get_wallet(user_id, club_id)
        if wallet is None:
            # No wallet yet reads as all zeros; reads never create rows.
            return WalletBreakdown(
                user_id=user_id,
                club_id=club_id,
                balance_pts=0,
                earned_pts=0,
                purchased_pts=0,
                spent_pts=0,
                escrowed_pts=0,
                status_pts=0,
                status=derive_status(0),
            )

        history = await self._ledger.history(wallet.id, limit=ACTIVITY_WINDOW)
        activity = tuple(
            ActivityEntry(
                transaction_id=item.id,
                type=item.type.value,
                source=item.source.value,
                pts=item.pts,
                affects_status=item.affects_status,
                ref=item.ref,
                created_at=ensure_utc(item.created_at),
            )
            for item in history
        )
        return WalletBreakdown(
            user_id=user_id,
            club_id=club_id,
            balance_pts=wallet.balance_pts,
            earned_pts=wallet.earned_pts,
            purchased_pts=wallet.purchased_pts,
            spent_pts=wallet.spent_pts,
            escrowed_pts=wallet.escrowed_pts,
            status_pts=wallet.status_pts,
            status=derive_status(wallet.status_pts),
            recent_activity=activity,
        )

    async def _load_leaderboard(self, club_id: UUID, limit: int) -> tuple[LeaderboardEntry, ...]:
        stmt = (
            select(PointWallet.user_id, User.display_name, PointWallet.earned_pts)
            .join(User, User.id == PointWallet.user_id)
            .where(PointWallet.club_id == club_id, User.is_active.is_(True))
            .order_by(PointWallet.earned_pts.desc(), PointWallet.created_at.asc())
            .limit(limit)
        )
        rows = (await self._session.execute(stmt)).all()
        return tuple(
            LeaderboardEntry(
                rank=index,
                user_id=row.user_id,
                display_name=row.display_name,
                status_pts=row.earned_pts,
                tier=compute_status(row.earned_pts),
            )
            for index, row in enumerate(rows, start=1)
        )


__all__ = ["ActivityEntry", "LeaderboardEntry", "ReadModelService", "WalletBreakdown"]
