"""Credit campaigns: member credit balances, campaign items and credit spends.

Members buy credits for a campaign through card checkout; the webhook adds them
to ``campaign_credit_balances``. Spending takes an item's credit cost with one
guarded ``UPDATE`` so concurrent spends can never overdraw the balance.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from superfan_api.core.time import utcnow
from superfan_api.db.session import dialect_insert, transactional
from superfan_api.domain.errors import (
    DatastoreConflict,
    Forbidden,
    InsufficientCredits,
    InvalidPricing,
    NotFound,
    RefConflict,
    RewardUnavailable,
)
from superfan_api.models.club import Club
from superfan_api.models.tier_reward import CampaignCreditBalance, CampaignItem, CreditRedemption, TierReward
from superfan_api.models.user import User


@dataclass(slots=True)
class CampaignCredits:
    campaign_id: UUID
    campaign_title: str
    credits_purchased: int
    credits_spent: int

    @property
    def available(self) -> int:
        return self.credits_purchased - self.credits_spent


@dataclass(slots=True)
class CreditRedemptionResult:
    redemption: CreditRedemption
    item: CampaignItem
    remaining: int
    created: bool


class CreditCampaignService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_credits(self, *, user_id: UUID, campaign_id: UUID, club_id: UUID, credits: int) -> None:
        """Add purchased credits inside the caller's transaction."""

        if credits <= 0:
            raise ValueError("Credits must be a positive integer")
        stmt = dialect_insert(self._session, CampaignCreditBalance).values(
            user_id=user_id,
            campaign_id=campaign_id,
            club_id=club_id,
            credits_purchased=credits,
            credits_spent=0,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "campaign_id"],
            set_={
                "credits_purchased": CampaignCreditBalance.credits_purchased + stmt.excluded.credits_purchased,
                "updated_at": utcnow(),
            },
        )
        await self._session.execute(stmt)

    async def balance(self, user_id: UUID, campaign_id: UUID) -> int:
        stmt = select(CampaignCreditBalance.credits_purchased - CampaignCreditBalance.credits_spent).where(
            CampaignCreditBalance.user_id == user_id,
            CampaignCreditBalance.campaign_id == campaign_id,
        )
        available = (await self._session.execute(stmt)).scalar_one_or_none()
        return int(available or 0)

    async def balances(self, user_id: UUID, club_id: UUID) -> list[CampaignCredits]:
        """Campaigns in the club where the member still has credits to spend."""

        stmt = (
            select(CampaignCreditBalance, TierReward.title)
            .join(TierReward, TierReward.id == CampaignCreditBalance.campaign_id)
            .where(
                CampaignCreditBalance.user_id == user_id,
                CampaignCreditBalance.club_id == club_id,
                CampaignCreditBalance.credits_purchased > CampaignCreditBalance.credits_spent,
            )
            .order_by(TierReward.created_at.asc())
        )
        rows = (await self._session.execute(stmt)).all()
        return [
            CampaignCredits(
                campaign_id=balance.campaign_id,
                campaign_title=title,
                credits_purchased=balance.credits_purchased,
                credits_spent=balance.credits_spent,
            )
            for balance, title in rows
        ]

    async def create_item(
        self,
        campaign_id: UUID,
        *,
        actor: User,
        title: str,
        credit_cost: int,
        description: str | None = None,
    ) -> CampaignItem:
        if credit_cost <= 0:
            raise InvalidPricing("Campaign items need a positive credit cost")
        async with transactional(self._session):
            campaign = await self._campaign(campaign_id)
            club = await self._session.get(Club, campaign.club_id)
            if club is None or (not actor.is_admin and club.owner_id != actor.id):
                raise Forbidden("Only the club owner or an admin can change this campaign")
            item = CampaignItem(
                campaign_id=campaign.id,
                club_id=campaign.club_id,
                title=title,
                description=description,
                credit_cost=credit_cost,
            )
            self._session.add(item)
            await self._session.flush()
        logger.info("Campaign item created", item_id=str(item.id), campaign_id=str(campaign_id), credit_cost=credit_cost)
        return item

    async def list_items(self, campaign_id: UUID, *, active_only: bool = True) -> list[CampaignItem]:
        stmt = select(CampaignItem).where(CampaignItem.campaign_id == campaign_id).order_by(CampaignItem.created_at.asc())
        if active_only:
            stmt = stmt.where(CampaignItem.is_active.is_(True))
        return list((await self._session.execute(stmt)).scalars().all())

    async def redeem_item(
        self,
        *,
        user_id: UUID,
        campaign_id: UUID,
        item_id: UUID,
        ref: str | None = None,
    ) -> CreditRedemptionResult:
        """Spend the item's credit cost from the member's campaign balance.

        Raises ``InsufficientCredits`` with ``current_balance``, ``required`` and
        ``need_more`` when the balance cannot cover the item. A repeated ``ref``
        for the same item replays the earlier redemption.
        """

        async with transactional(self._session):
            item = await self._session.get(CampaignItem, item_id)
            if item is None or item.campaign_id != campaign_id:
                raise NotFound("Campaign item not found", item_id=str(item_id), campaign_id=str(campaign_id))
            if not item.is_active:
                raise RewardUnavailable("Campaign item is not active", item_id=str(item_id))

            if ref:
                existing = await self._find(user_id, campaign_id, ref)
                if existing is not None:
                    if existing.item_id != item.id:
                        raise RefConflict("Reference was already used for a different item", ref=ref)
                    remaining = await self.balance(user_id, campaign_id)
                    return CreditRedemptionResult(redemption=existing, item=item, remaining=remaining, created=False)

            cost = item.credit_cost
            stmt = (
                update(CampaignCreditBalance)
                .where(
                    CampaignCreditBalance.user_id == user_id,
                    CampaignCreditBalance.campaign_id == campaign_id,
                    CampaignCreditBalance.credits_purchased - CampaignCreditBalance.credits_spent >= cost,
                )
                .values(credits_spent=CampaignCreditBalance.credits_spent + cost, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            result = await self._session.execute(stmt)
            if result.rowcount != 1:
                available = await self.balance(user_id, campaign_id)
                need_more = cost - available
                raise InsufficientCredits(
                    f"Not enough credits. You have {available}, need {cost} ({need_more} more required)",
                    current_balance=available,
                    required=cost,
                    need_more=need_more,
                )

            redemption = CreditRedemption(
                user_id=user_id,
                campaign_id=campaign_id,
                item_id=item.id,
                club_id=item.club_id,
                credits_spent=cost,
                ref=ref,
            )
            self._session.add(redemption)
            try:
                await self._session.flush()
            except IntegrityError as exc:
                raise DatastoreConflict("Credit redemption was recorded by a concurrent request", ref=ref) from exc
            remaining = await self.balance(user_id, campaign_id)

        logger.info(
            "Campaign credits redeemed",
            user_id=str(user_id),
            campaign_id=str(campaign_id),
            item_id=str(item.id),
            credits=cost,
            remaining=remaining,
        )
        return CreditRedemptionResult(redemption=redemption, item=item, remaining=remaining, created=True)

    async def _campaign(self, campaign_id: UUID) -> TierReward:
        campaign = await self._session.get(TierReward, campaign_id)
        if campaign is None or not campaign.is_credit_campaign:
            raise NotFound("Credit campaign not found", campaign_id=str(campaign_id))
        return campaign

    async def _find(self, user_id: UUID, campaign_id: UUID, ref: str) -> CreditRedemption | None:
        stmt = select(CreditRedemption).where(
            CreditRedemption.user_id == user_id,
            CreditRedemption.campaign_id == campaign_id,
            CreditRedemption.ref == ref,
        )
        return (await self._session.execute(stmt)).scalar_one_or_none()


__all__ = ["CampaignCredits", "CreditCampaignService", "CreditRedemptionResult"]
