"""Member spends and operator balance adjustments."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.db.session import transactional
from superfan_api.domain.errors import Forbidden, InsufficientPoints, NotFound
from superfan_api.models.club import Club
from superfan_api.models.user import User
from superfan_api.models.wallet import TransactionSourceEnum, TransactionTypeEnum
from superfan_api.services.points.ledger import DebitPool, LedgerResult, PointBucket, WalletLedger


class PointsService:
    def __init__(self, session: AsyncSession, *, ledger: WalletLedger | None = None) -> None:
        self._session = session
        self._ledger = ledger or WalletLedger(session)

    async def spend(
        self,
        *,
        user_id: UUID,
        club_id: UUID,
        amount: int,
        preserve_status: bool = False,
        ref: str | None = None,
        reason: str | None = None,
    ) -> LedgerResult:
        """Debit a member's wallet, optionally refusing to dip below their tier floor."""

        async with transactional(self._session):
            wallet = await self._ledger.get_wallet(user_id, club_id)
            if wallet is None:
                raise InsufficientPoints("Insufficient points", required=amount, available=0)
            result = await self._ledger.debit(
                wallet,
                amount,
                kind=TransactionTypeEnum.SPEND,
                source=TransactionSourceEnum.SPENT,
                preserve_status=preserve_status,
                ref=ref,
                metadata={"reason": reason} if reason else None,
            )
        return result

    async def adjust(
        self,
        *,
        actor: User,
        user_id: UUID,
        club_id: UUID,
        amount: int,
        bucket: PointBucket,
        reason: str,
        ref: str | None = None,
    ) -> LedgerResult:
        """Apply a signed manual correction to one bucket.

        Only the club owner or an admin may adjust. Earned-bucket adjustments move
        status like any other earned credit.
        """

        if amount == 0:
            raise ValueError("Adjustment amount must be non-zero")

        async with transactional(self._session):
            club = await self._session.get(Club, club_id)
            if club is None:
                raise NotFound("Club not found", club_id=str(club_id))
            if not actor.is_admin and club.owner_id != actor.id:
                raise Forbidden("Only the club owner or an admin can adjust balances")

            wallet = await self._ledger.get_or_create(user_id, club_id)
            metadata: dict[str, Any] = {"reason": reason, "actor_id": str(actor.id), "bucket": bucket.value}
            if amount > 0:
                result = await self._ledger.credit(
                    wallet,
                    amount,
                    kind=TransactionTypeEnum.BONUS,
                    source=TransactionSourceEnum.ADJUSTED,
                    bucket=bucket,
                    affects_status=bucket is PointBucket.EARNED,
                    ref=ref,
                    metadata=metadata,
                )
            else:
                pool = DebitPool.EARNED_ONLY if bucket is PointBucket.EARNED else DebitPool.PURCHASED_ONLY
                result = await self._ledger.debit(
                    wallet,
                    -amount,
                    kind=TransactionTypeEnum.SPEND,
                    source=TransactionSourceEnum.ADJUSTED,
                    pool=pool,
                    ref=ref,
                    metadata=metadata,
                )

        logger.warning(
            "Manual point adjustment applied",
            actor_id=str(actor.id),
            user_id=str(user_id),
            club_id=str(club_id),
            amount=amount,
            bucket=bucket.value,
            reason=reason,
        )
        return result


__all__ = ["PointsService"]
