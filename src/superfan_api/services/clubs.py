"""Club economics, status multipliers and the reward catalog."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.core.time import utcnow
from superfan_api.db.session import dialect_insert, transactional
from superfan_api.domain.errors import Forbidden, InvalidPricing, NotFound
from superfan_api.domain.pricing import effective_points_price
from superfan_api.domain.status import StatusTier
from superfan_api.models.club import Club, StatusMultiplier
from superfan_api.models.reward import Reward, RewardKindEnum, RewardStatusEnum, SettleModeEnum
from superfan_api.models.tier_reward import TierReward
from superfan_api.models.user import User, UserRoleEnum

ECONOMICS_FIELDS = (
    "earn_multiplier",
    "redeem_multiplier",
    "promo_active",
    "promo_description",
    "promo_discount_pts",
    "promo_expires_at",
    "point_settle_cents",
)


@dataclass(slots=True)
class MultiplierUpdate:
    status: StatusTier
    earn_boost: Decimal
    redeem_boost: Decimal


class ClubService:
    """Operator-facing club configuration.

    Every mutation requires the club owner or an admin.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_club(self, club_id: UUID) -> Club:
        club = await self._session.get(Club, club_id)
        if club is None:
            raise NotFound("Club not found", club_id=str(club_id))
        return club

    async def list_clubs(self, *, include_inactive: bool = False) -> list[Club]:
        stmt = select(Club).order_by(Club.created_at.asc())
        if not include_inactive:
            stmt = stmt.where(Club.is_active.is_(True))
        return list((await self._session.execute(stmt)).scalars().all())

    async def create_club(self, *, actor: User, name: str, owner_id: UUID | None = None) -> Club:
        if actor.role not in (UserRoleEnum.OPERATOR.value, UserRoleEnum.ADMIN.value):
            raise Forbidden("Only operators and admins can create clubs")
        async with transactional(self._session):
            club = Club(name=name, owner_id=owner_id or actor.id)
            self._session.add(club)
            await self._session.flush()
            await self._session.refresh(club, attribute_names=["status_multipliers"])
        logger.info("Club created", club_id=str(club.id), owner_id=str(club.owner_id))
        return club

    async def update_economics(self, club_id: UUID, *, actor: User, changes: Mapping[str, Any]) -> Club:
        unknown = set(changes) - set(ECONOMICS_FIELDS)
        if unknown:
            raise ValueError(f"Unknown economics fields: {sorted(unknown)}")

        async with transactional(self._session):
            club = await self._authorized_club(club_id, actor)
            for name, value in changes.items():
                setattr(club, name, value)
            if club.promo_active and (not club.promo_description or not club.promo_discount_pts):
                raise InvalidPricing("An active promotion needs a description and a discount")
            club.updated_at = utcnow()
            await self._session.flush()

        logger.info("Club economics updated", club_id=str(club_id), actor_id=str(actor.id), fields=sorted(changes))
        return club

    async def set_multipliers(self, club_id: UUID, *, actor: User, updates: list[MultiplierUpdate]) -> Club:
        async with transactional(self._session):
            club = await self._authorized_club(club_id, actor)
            for item in updates:
                stmt = dialect_insert(self._session, StatusMultiplier).values(
                    club_id=club.id,
                    status=item.status,
                    earn_boost=item.earn_boost,
                    redeem_boost=item.redeem_boost,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["club_id", "status"],
                    set_={
                        "earn_boost": stmt.excluded.earn_boost,
                        "redeem_boost": stmt.excluded.redeem_boost,
                        "updated_at": utcnow(),
                    },
                )
                await self._session.execute(stmt)
            # Upserts bypass the identity map; reload rows already attached to the club.
            await self._session.execute(
                select(StatusMultiplier)
                .where(StatusMultiplier.club_id == club.id)
                .execution_options(populate_existing=True)
            )
            await self._session.refresh(club, attribute_names=["status_multipliers"])

        logger.info("Status multipliers updated", club_id=str(club_id), tiers=[item.status.value for item in updates])
        return club

    async def create_reward(
        self,
        club_id: UUID,
        *,
        actor: User,
        kind: RewardKindEnum,
        title: str,
        points_price: int,
        description: str | None = None,
        inventory: int | None = None,
        window_start: datetime | None = None,
        window_end: datetime | None = None,
        settle_mode: SettleModeEnum = SettleModeEnum.ZERO,
        status: RewardStatusEnum = RewardStatusEnum.ACTIVE,
    ) -> Reward:
        if window_start and window_end and window_end <= window_start:
            raise ValueError("Reward window must end after it starts")
        async with transactional(self._session):
            await self._authorized_club(club_id, actor)
            reward = Reward(
                club_id=club_id,
                kind=kind,
                title=title,
                description=description,
                points_price=points_price,
                inventory=inventory,
                window_start=window_start,
                window_end=window_end,
                settle_mode=settle_mode,
                status=status,
            )
            self._session.add(reward)
            await self._session.flush()
        logger.info("Reward created", reward_id=str(reward.id), club_id=str(club_id), kind=kind.value)
        return reward

    async def set_reward_status(self, reward_id: UUID, *, actor: User, status: RewardStatusEnum) -> Reward:
        async with transactional(self._session):
            reward = await self._session.get(Reward, reward_id)
            if reward is None:
                raise NotFound("Reward not found", reward_id=str(reward_id))
            await self._authorized_club(reward.club_id, actor)
            reward.status = status
            await self._session.flush()
        return reward

    async def list_rewards(self, club_id: UUID, *, active_only: bool = True) -> list[Reward]:
        stmt = select(Reward).where(Reward.club_id == club_id).order_by(Reward.created_at.asc())
        if active_only:
            stmt = stmt.where(Reward.status == RewardStatusEnum.ACTIVE)
        return list((await self._session.execute(stmt)).scalars().all())

    async def price_for(self, reward: Reward, tier: StatusTier, *, now: datetime | None = None) -> int:
        """Points a member of ``tier`` pays for ``reward`` right now."""

        club = await self.get_club(reward.club_id)
        _, redeem_boost = club.boosts_for(tier)
        return effective_points_price(
            reward.points_price,
            redeem_multiplier=club.redeem_multiplier,
            redeem_boost=redeem_boost,
            promo_active=club.promo_active,
            promo_discount_pts=club.promo_discount_pts,
            promo_expires_at=club.promo_expires_at,
            now=now,
        )

    async def create_tier_reward(
        self,
        club_id: UUID,
        *,
        actor: User,
        title: str,
        min_tier: StatusTier = StatusTier.CADET,
        upgrade_price_cents: int | None = None,
        description: str | None = None,
        discounts: Mapping[str, int | None] | None = None,
        is_credit_campaign: bool = False,
        credit_cost: int | None = None,
    ) -> TierReward:
        if is_credit_campaign and not credit_cost:
            raise InvalidPricing("Credit campaigns need a positive credit cost")
        if not is_credit_campaign and not upgrade_price_cents:
            raise InvalidPricing("Tier rewards need an upgrade price")
        overrides = dict(discounts or {})
        async with transactional(self._session):
            await self._authorized_club(club_id, actor)
            tier_reward = TierReward(
                club_id=club_id,
                title=title,
                description=description,
                min_tier=min_tier,
                upgrade_price_cents=upgrade_price_cents,
                resident_discount_percentage=overrides.get(StatusTier.RESIDENT.value),
                headliner_discount_percentage=overrides.get(StatusTier.HEADLINER.value),
                superfan_discount_percentage=overrides.get(StatusTier.SUPERFAN.value),
                is_credit_campaign=is_credit_campaign,
                credit_cost=credit_cost,
            )
            self._session.add(tier_reward)
            await self._session.flush()
        logger.info("Tier reward created", tier_reward_id=str(tier_reward.id), club_id=str(club_id))
        return tier_reward

    async def list_tier_rewards(self, club_id: UUID, *, active_only: bool = True) -> list[TierReward]:
        stmt = select(TierReward).where(TierReward.club_id == club_id).order_by(TierReward.created_at.asc())
        if active_only:
            stmt = stmt.where(TierReward.is_active.is_(True))
        return list((await self._session.execute(stmt)).scalars().all())

    async def _authorized_club(self, club_id: UUID, actor: User) -> Club:
        club = await self.get_club(club_id)
        if not actor.is_admin and club.owner_id != actor.id:
            raise Forbidden("Only the club owner or an admin can change this club")
        return club


__all__ = ["ClubService", "ECONOMICS_FIELDS", "MultiplierUpdate"]
