from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.core.time import utcnow
from superfan_api.db.session import dialect_insert
from superfan_api.domain.errors import NotFound
from superfan_api.domain.settlement import (
    SettlementBreakdown,
    coverage_ratio,
    reserve_target,
    settle_purchase,
    week_start,
)
from superfan_api.models.club import Club
from superfan_api.models.reward import Reward, RewardRedemption, RewardStatusEnum
from superfan_api.models.settlement import ClubSettlementPool, WeeklyUpfrontStat
from superfan_api.models.wallet import PointWallet


@dataclass(slots=True)
class WeeklyStats:
    week_start: date
    gross_cents: int = 0
    platform_fee_cents: int = 0
    reserve_delta_cents: int = 0
    upfront_cents: int = 0
    purchase_count: int = 0


@dataclass(slots=True)
class ClubSettlementReport:
    club_id: UUID
    this_week: WeeklyStats
    outstanding_points: int
    total_members: int
    total_redemptions: int
    active_rewards: int
    pool_balance_cents: int
    pool_reserved_cents: int
    reserve_target_cents: int
    coverage_ratio: float


class SettlementService:
    """Weekly upfront aggregates and the per-club reserve pool.

    ``record_purchase`` writes inside the caller's transaction so it commits or
    rolls back together with the ledger credit it accounts for.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record_purchase(
        self,
        *,
        club: Club,
        gross_cents: int,
        points: int,
        occurred_at: datetime | None = None,
    ) -> SettlementBreakdown:
        breakdown = settle_purchase(gross_cents, points, club.point_settle_cents)
        week = week_start(occurred_at)
        now = utcnow()

        stats = dialect_insert(self._session, WeeklyUpfrontStat).values(
            club_id=club.id,
            week_start=week,
            gross_cents=breakdown.gross_cents,
            platform_fee_cents=breakdown.platform_fee_cents,
            reserve_delta_cents=breakdown.reserve_delta_cents,
            upfront_cents=breakdown.upfront_cents,
            purchase_count=1,
        )
        stats = stats.on_conflict_do_update(
            index_elements=["club_id", "week_start"],
            set_={
                "gross_cents": WeeklyUpfrontStat.gross_cents + stats.excluded.gross_cents,
                "platform_fee_cents": WeeklyUpfrontStat.platform_fee_cents + stats.excluded.platform_fee_cents,
                "reserve_delta_cents": WeeklyUpfrontStat.reserve_delta_cents + stats.excluded.reserve_delta_cents,
                "upfront_cents": WeeklyUpfrontStat.upfront_cents + stats.excluded.upfront_cents,
                "purchase_count": WeeklyUpfrontStat.purchase_count + 1,
                "updated_at": now,
            },
        )
        await self._session.execute(stats)

        pool = dialect_insert(self._session, ClubSettlementPool).values(
            club_id=club.id,
            balance_usd_cents=breakdown.reserve_delta_cents,
            reserved_usd_cents=0,
        )
        pool = pool.on_conflict_do_update(
            index_elements=["club_id"],
            set_={
                "balance_usd_cents": ClubSettlementPool.balance_usd_cents + pool.excluded.balance_usd_cents,
                "last_updated": now,
            },
        )
        await self._session.execute(pool)

        logger.info(
            "Settlement recorded",
            club_id=str(club.id),
            week_start=week.isoformat(),
            gross_cents=breakdown.gross_cents,
            platform_fee_cents=breakdown.platform_fee_cents,
            reserve_delta_cents=breakdown.reserve_delta_cents,
            upfront_cents=breakdown.upfront_cents,
        )
        return breakdown

    async def weekly_stats(self, club_id: UUID, *, weeks: int = 8) -> list[WeeklyStats]:
        stmt = (
            select(WeeklyUpfrontStat)
            .where(WeeklyUpfrontStat.club_id == club_id)
            .order_by(WeeklyUpfrontStat.week_start.desc())
            .limit(weeks)
        )
        rows = (await self._session.execute(stmt)).scalars().all()
        return [self._to_stats(row) for row in rows]

    async def club_report(self, club_id: UUID, *, now: datetime | None = None) -> ClubSettlementReport:
        club = await self._session.get(Club, club_id)
        if club is None:
            raise NotFound("Club not found", club_id=str(club_id))

        week = week_start(now)
        week_stmt = (
            select(WeeklyUpfrontStat)
            .where(WeeklyUpfrontStat.club_id == club_id, WeeklyUpfrontStat.week_start == week)
            .execution_options(populate_existing=True)
        )
        row = (await self._session.execute(week_stmt)).scalar_one_or_none()
        this_week = self._to_stats(row) if row is not None else WeeklyStats(week_start=week)

        outstanding, members = (
            await self._session.execute(
                select(func.coalesce(func.sum(PointWallet.balance_pts), 0), func.count(PointWallet.id)).where(
                    PointWallet.club_id == club_id
                )
            )
        ).one()
        redemptions = await self._session.scalar(
            select(func.count(RewardRedemption.id)).where(RewardRedemption.club_id == club_id)
        )
        active_rewards = await self._session.scalar(
            select(func.count(Reward.id)).where(Reward.club_id == club_id, Reward.status == RewardStatusEnum.ACTIVE)
        )
        pool_stmt = (
            select(ClubSettlementPool)
            .where(ClubSettlementPool.club_id == club_id)
            .execution_options(populate_existing=True)
        )
        pool = (await self._session.execute(pool_stmt)).scalar_one_or_none()
        balance = pool.balance_usd_cents if pool else 0
        reserved = pool.reserved_usd_cents if pool else 0

        target = reserve_target(int(outstanding), club.point_settle_cents)
        return ClubSettlementReport(
            club_id=club_id,
            this_week=this_week,
            outstanding_points=int(outstanding),
            total_members=int(members),
            total_redemptions=int(redemptions or 0),
            active_rewards=int(active_rewards or 0),
            pool_balance_cents=balance,
            pool_reserved_cents=reserved,
            reserve_target_cents=target,
            coverage_ratio=coverage_ratio(balance - reserved, target),
        )

    @staticmethod
    def _to_stats(row: WeeklyUpfrontStat) -> WeeklyStats:
        return WeeklyStats(
            week_start=row.week_start,
            gross_cents=row.gross_cents,
            platform_fee_cents=row.platform_fee_cents,
            reserve_delta_cents=row.reserve_delta_cents,
            upfront_cents=row.upfront_cents,
            purchase_count=row.purchase_count,
        )
