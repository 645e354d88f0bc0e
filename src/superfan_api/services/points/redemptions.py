"""Reward redemption lifecycle: redeem, confirm or cancel holds, expire holds, refund."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.core.settings import settings
from superfan_api.core.time import utcnow
from superfan_api.db.session import transactional
from superfan_api.domain.errors import (
    Forbidden,
    HoldExpired,
    InsufficientPoints,
    InvalidRedemptionState,
    NotFound,
    OutOfStock,
    RewardUnavailable,
)
from superfan_api.domain.pricing import effective_points_price
from superfan_api.domain.status import compute_status
from superfan_api.models.club import Club
from superfan_api.models.reward import (
    RedemptionStateEnum,
    Reward,
    RewardKindEnum,
    RewardRedemption,
    RewardStatusEnum,
)
from superfan_api.models.user import User
from superfan_api.models.wallet import PointTransaction, PointWallet, TransactionSourceEnum, TransactionTypeEnum
from superfan_api.services.points.ledger import WalletLedger


@dataclass(slots=True)
class RedemptionOutcome:
    redemption: RewardRedemption
    wallet: PointWallet
    transaction: PointTransaction | None


def _redemption_ref(redemption_id: UUID) -> str:
    return f"redemption:{redemption_id}"


class RedemptionService:
    """Applies the per-kind redemption rules on top of the wallet ledger.

    ACCESS and VARIANT redemptions confirm immediately and debit the wallet in
    the same transaction as the redemption row; VARIANT also takes one unit of
    inventory. PRESALE_LOCK redemptions only place a time-boxed hold.
    """

    def __init__(self, session: AsyncSession, *, ledger: WalletLedger | None = None) -> None:
        self._session = session
        self._ledger = ledger or WalletLedger(session)

    async def redeem(
        self,
        *,
        user_id: UUID,
        reward_id: UUID,
        metadata: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> RedemptionOutcome:
        current = now or utcnow()
        async with transactional(self._session):
            reward = await self._session.get(Reward, reward_id)
            if reward is None:
                raise NotFound("Reward not found", reward_id=str(reward_id))
            self._ensure_available(reward, current)

            club = await self._session.get(Club, reward.club_id)
            if club is None:
                raise NotFound("Club not found", club_id=str(reward.club_id))

            wallet = await self._ledger.get_or_create(user_id, reward.club_id)
            tier = compute_status(wallet.status_pts)
            _, redeem_boost = club.boosts_for(tier)
            price = effective_points_price(
                reward.points_price,
                redeem_multiplier=club.redeem_multiplier,
                redeem_boost=redeem_boost,
                promo_active=club.promo_active,
                promo_discount_pts=club.promo_discount_pts,
                promo_expires_at=club.promo_expires_at,
                now=current,
            )
            if wallet.balance_pts < price:
                raise InsufficientPoints(
                    "Insufficient points",
                    required=price,
                    available=wallet.balance_pts,
                )

            redemption_id = uuid4()
            transaction: PointTransaction | None = None
            hold_expires_at: datetime | None = None

            if reward.kind is RewardKindEnum.PRESALE_LOCK:
                state = RedemptionStateEnum.HELD
                hold_expires_at = current + timedelta(hours=settings.presale_hold_hours)
            else:
                if reward.kind is RewardKindEnum.VARIANT:
                    await self._take_inventory(reward)
                transaction = await self._charge(wallet, price, reward=reward, redemption_id=redemption_id)
                state = RedemptionStateEnum.CONFIRMED

            redemption = RewardRedemption(
                id=redemption_id,
                user_id=user_id,
                club_id=reward.club_id,
                reward_id=reward.id,
                wallet_id=wallet.id,
                transaction_id=transaction.id if transaction else None,
                points_spent=price,
                state=state,
                hold_expires_at=hold_expires_at,
                confirmed_at=current if state is RedemptionStateEnum.CONFIRMED else None,
                metadata_json={**(metadata or {}), "reward_kind": reward.kind.value, "tier_at_redeem": tier.value},
            )
            self._session.add(redemption)
            await self._session.flush()

        logger.info(
            "Reward redeemed",
            redemption_id=str(redemption.id),
            reward_id=str(reward.id),
            user_id=str(user_id),
            kind=reward.kind.value,
            state=state.value,
            points=price,
        )
        return RedemptionOutcome(redemption=redemption, wallet=wallet, transaction=transaction)

    async def confirm_hold(self, redemption_id: UUID, *, now: datetime | None = None) -> RedemptionOutcome:
        """Settle a presale hold: debit the wallet and take inventory if tracked."""

        current = now or utcnow()
        async with transactional(self._session):
            redemption = await self._session.get(RewardRedemption, redemption_id, with_for_update=True)
            if redemption is None:
                raise NotFound("Redemption not found", redemption_id=str(redemption_id))
            if redemption.state is not RedemptionStateEnum.HELD:
                raise InvalidRedemptionState(
                    f"Cannot confirm a {redemption.state.value} redemption",
                    state=redemption.state.value,
                )
            if redemption.is_void(current):
                raise HoldExpired("Hold expired before confirmation", redemption_id=str(redemption_id))

            reward = await self._session.get(Reward, redemption.reward_id)
            if reward is None:
                raise NotFound("Reward not found", reward_id=str(redemption.reward_id))
            wallet = await self._session.get(PointWallet, redemption.wallet_id)
            if wallet is None:
                raise NotFound("Wallet not found", wallet_id=str(redemption.wallet_id))

            if reward.tracks_inventory:
                await self._take_inventory(reward)
            transaction = await self._charge(wallet, redemption.points_spent, reward=reward, redemption_id=redemption.id)

            redemption.state = RedemptionStateEnum.CONFIRMED
            redemption.confirmed_at = current
            redemption.resolved_at = current
            redemption.transaction_id = transaction.id if transaction else None
            await self._session.flush()

        logger.info("Presale hold confirmed", redemption_id=str(redemption.id), points=redemption.points_spent)
        return RedemptionOutcome(redemption=redemption, wallet=wallet, transaction=transaction)

    async def cancel_hold(self, redemption_id: UUID, *, user_id: UUID, is_admin: bool = False) -> RewardRedemption:
        async with transactional(self._session):
            redemption = await self._session.get(RewardRedemption, redemption_id, with_for_update=True)
            if redemption is None:
                raise NotFound("Redemption not found", redemption_id=str(redemption_id))
            if redemption.user_id != user_id and not is_admin:
                raise Forbidden("Only the member who placed the hold can cancel it")
            if redemption.state is not RedemptionStateEnum.HELD:
                raise InvalidRedemptionState(
                    f"Cannot cancel a {redemption.state.value} redemption",
                    state=redemption.state.value,
                )
            redemption.state = RedemptionStateEnum.CANCELLED
            redemption.resolved_at = utcnow()
            await self._session.flush()

        logger.info("Presale hold cancelled", redemption_id=str(redemption.id), user_id=str(user_id))
        return redemption

    async def refund_redemption(
        self,
        redemption_id: UUID,
        *,
        actor: User,
        reason: str | None = None,
    ) -> RedemptionOutcome:
        """Reverse a confirmed redemption: return the points and any inventory unit.

        Only the club owner or an admin may refund. The ledger refund is keyed on the
        original debit, so the points come back once even if this is retried.
        """

        async with transactional(self._session):
            redemption = await self._session.get(RewardRedemption, redemption_id, with_for_update=True)
            if redemption is None:
                raise NotFound("Redemption not found", redemption_id=str(redemption_id))
            club = await self._session.get(Club, redemption.club_id)
            if club is None or (not actor.is_admin and club.owner_id != actor.id):
                raise Forbidden("Only the club owner or an admin can refund redemptions")
            if redemption.state is not RedemptionStateEnum.CONFIRMED:
                raise InvalidRedemptionState(
                    f"Cannot refund a {redemption.state.value} redemption",
                    state=redemption.state.value,
                )

            refund: PointTransaction | None = None
            if redemption.transaction_id is not None:
                debit = await self._session.get(PointTransaction, redemption.transaction_id)
                if debit is None:
                    raise NotFound("Redemption debit not found", transaction_id=str(redemption.transaction_id))
                refund = (await self._ledger.refund(debit, reason=reason)).transaction

            reward = await self._session.get(Reward, redemption.reward_id)
            if reward is not None and reward.tracks_inventory:
                await self._session.execute(
                    update(Reward)
                    .where(Reward.id == reward.id, Reward.inventory.isnot(None))
                    .values(inventory=Reward.inventory + 1)
                    .execution_options(synchronize_session=False)
                )

            redemption.state = RedemptionStateEnum.REFUNDED
            redemption.resolved_at = utcnow()
            await self._session.flush()
            wallet = await self._session.get(PointWallet, redemption.wallet_id, populate_existing=True)

        logger.info(
            "Redemption refunded",
            redemption_id=str(redemption.id),
            actor_id=str(actor.id),
            points=redemption.points_spent,
            reason=reason,
        )
        return RedemptionOutcome(redemption=redemption, wallet=wallet, transaction=refund)

    async def expire_holds(self, *, now: datetime | None = None, limit: int | None = None) -> int:
        """Mark HELD redemptions past their expiry as EXPIRED; returns the count."""

        current = now or utcnow()
        batch = limit or settings.hold_expiry_batch_size
        async with transactional(self._session):
            stmt = (
                select(RewardRedemption.id)
                .where(
                    RewardRedemption.state == RedemptionStateEnum.HELD,
                    RewardRedemption.hold_expires_at.isnot(None),
                    RewardRedemption.hold_expires_at <= current,
                )
                .order_by(RewardRedemption.hold_expires_at.asc())
                .limit(batch)
                .with_for_update(skip_locked=True)
            )
            expired_ids = list((await self._session.execute(stmt)).scalars().all())
            if not expired_ids:
                return 0
            await self._session.execute(
                update(RewardRedemption)
                .where(
                    RewardRedemption.id.in_(expired_ids),
                    RewardRedemption.state == RedemptionStateEnum.HELD,
                )
                .values(state=RedemptionStateEnum.EXPIRED, resolved_at=current)
                .execution_options(synchronize_session=False)
            )

        logger.info("Expired presale holds", count=len(expired_ids))
        return len(expired_ids)

    async def list_for_user(
        self,
        user_id: UUID,
        *,
        club_id: UUID | None = None,
        limit: int = 50,
    ) -> list[RewardRedemption]:
        stmt = select(RewardRedemption).where(RewardRedemption.user_id == user_id)
        if club_id is not None:
            stmt = stmt.where(RewardRedemption.club_id == club_id)
        stmt = stmt.order_by(RewardRedemption.created_at.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def _ensure_available(reward: Reward, now: datetime) -> None:
        if reward.status is not RewardStatusEnum.ACTIVE:
            raise RewardUnavailable("Reward is not active", reward_id=str(reward.id))
        if reward.tracks_inventory and reward.inventory <= 0:
            raise OutOfStock("Reward is out of stock", reward_id=str(reward.id))
        if not reward.is_available(now):
            raise RewardUnavailable("Reward is not currently available", reward_id=str(reward.id))

    async def _take_inventory(self, reward: Reward) -> None:
        if reward.inventory is None:
            return
        stmt = (
            update(Reward)
            .where(Reward.id == reward.id, Reward.inventory > 0)
            .values(inventory=Reward.inventory - 1)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise OutOfStock("Reward is out of stock", reward_id=str(reward.id))
        await self._session.refresh(reward)

    async def _charge(
        self,
        wallet: PointWallet,
        points: int,
        *,
        reward: Reward,
        redemption_id: UUID,
    ) -> PointTransaction | None:
        if points <= 0:
            return None
        result = await self._ledger.debit(
            wallet,
            points,
            kind=TransactionTypeEnum.SPEND,
            source=TransactionSourceEnum.SPENT,
            ref=_redemption_ref(redemption_id),
            metadata={"reward_id": str(reward.id), "redemption_id": str(redemption_id)},
        )
        return result.transaction


__all__ = ["RedemptionOutcome", "RedemptionService"]
