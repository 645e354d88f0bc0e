"""Tap-in earning: venue and content check-ins that accrue status points."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.db.session import transactional
from superfan_api.domain.earning import TapInSource, tap_in_points
from superfan_api.domain.errors import DatastoreConflict, NotFound
from superfan_api.domain.status import StatusTier, compute_status
from superfan_api.models.club import Club
from superfan_api.models.tap_in import TapIn
from superfan_api.models.wallet import PointWallet, TransactionSourceEnum, TransactionTypeEnum
from superfan_api.services.points.ledger import PointBucket, WalletLedger


@dataclass(slots=True)
class TapInResult:
    tap_in: TapIn
    wallet: PointWallet
    points_earned: int
    previous_tier: StatusTier
    new_tier: StatusTier
    created: bool

    @property
    def tier_changed(self) -> bool:
        return self.previous_tier is not self.new_tier


class TapInService:
    def __init__(self, session: AsyncSession, *, ledger: WalletLedger | None = None) -> None:
        self._session = session
        self._ledger = ledger or WalletLedger(session)

    async def record(
        self,
        *,
        user_id: UUID,
        club_id: UUID,
        source: TapInSource,
        ref: str | None = None,
        location: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TapInResult:
        """Credit earned points for a tap-in; a repeated ``ref`` replays the first result."""

        async with transactional(self._session):
            club = await self._session.get(Club, club_id)
            if club is None or not club.is_active:
                raise NotFound("Club not found", club_id=str(club_id))

            if ref:
                existing = await self._find(user_id, club_id, ref)
                if existing is not None:
                    wallet = await self._ledger.require_wallet(user_id, club_id)
                    return TapInResult(
                        tap_in=existing,
                        wallet=wallet,
                        points_earned=existing.points_earned,
                        previous_tier=StatusTier(existing.status_before),
                        new_tier=StatusTier(existing.status_after),
                        created=False,
                    )

            wallet = await self._ledger.get_or_create(user_id, club_id)
            previous_tier = compute_status(wallet.status_pts)
            earn_boost, _ = club.boosts_for(previous_tier)
            points = tap_in_points(source, earn_multiplier=club.earn_multiplier, earn_boost=earn_boost)

            tap_in_id = uuid4()
            await self._ledger.credit(
                wallet,
                points,
                kind=TransactionTypeEnum.BONUS,
                source=TransactionSourceEnum.EARNED,
                bucket=PointBucket.EARNED,
                affects_status=True,
                ref=f"tap_in:{tap_in_id}",
                metadata={"tap_in_id": str(tap_in_id), "source": source.value, "location": location},
            )
            new_tier = compute_status(wallet.status_pts)

            tap_in = TapIn(
                id=tap_in_id,
                user_id=user_id,
                club_id=club_id,
                source=source,
                points_earned=points,
                location=location,
                ref=ref,
                status_before=previous_tier.value,
                status_after=new_tier.value,
                metadata_json=metadata or {},
            )
            self._session.add(tap_in)
            try:
                await self._session.flush()
            except IntegrityError as exc:
                raise DatastoreConflict("Tap-in was recorded by a concurrent request", ref=ref) from exc

        logger.info(
            "Tap-in recorded",
            user_id=str(user_id),
            club_id=str(club_id),
            source=source.value,
            points=points,
            previous_tier=previous_tier.value,
            new_tier=new_tier.value,
        )
        return TapInResult(
            tap_in=tap_in,
            wallet=wallet,
            points_earned=points,
            previous_tier=previous_tier,
            new_tier=new_tier,
            created=True,
        )

    async def _find(self, user_id: UUID, club_id: UUID, ref: str) -> TapIn | None:
        stmt = select(TapIn).where(TapIn.user_id == user_id, TapIn.club_id == club_id, TapIn.ref == ref)
        return (await self._session.execute(stmt)).scalar_one_or_none()


__all__ = ["TapInResult", "TapInService"]
