"""Currency-priced tier rewards, their claims, and credit campaign purchases and spends."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from superfan_api.db.base import Base
from superfan_api.domain.status import StatusTier


class TierReward(Base):
    __tablename__ = "tier_rewards"
    __table_args__ = (
        CheckConstraint(
            "resident_discount_percentage IS NULL OR resident_discount_percentage BETWEEN 0 AND 100",
            name="ck_tier_rewards_resident_discount_range",
        ),
        CheckConstraint(
            "headliner_discount_percentage IS NULL OR headliner_discount_percentage BETWEEN 0 AND 100",
            name="ck_tier_rewards_headliner_discount_range",
        ),
        CheckConstraint(
            "superfan_discount_percentage IS NULL OR superfan_discount_percentage BETWEEN 0 AND 100",
            name="ck_tier_rewards_superfan_discount_range",
        ),
        CheckConstraint("credit_cost IS NULL OR credit_cost > 0", name="ck_tier_rewards_credit_cost_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    club_id = Column(UUID(as_uuid=True), ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    min_tier = Column(SqlEnum(StatusTier, name="status_tier_enum"), nullable=False, default=StatusTier.CADET)
    upgrade_price_cents = Column(Integer, nullable=True)
    resident_discount_percentage = Column(Integer, nullable=True)
    headliner_discount_percentage = Column(Integer, nullable=True)
    superfan_discount_percentage = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    is_credit_campaign = Column(Boolean, nullable=False, default=False, server_default="false")
    credit_cost = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def discount_overrides(self) -> dict[str, int | None]:
        return {
            StatusTier.RESIDENT.value: self.resident_discount_percentage,
            StatusTier.HEADLINER.value: self.headliner_discount_percentage,
            StatusTier.SUPERFAN.value: self.superfan_discount_percentage,
        }


class RewardClaim(Base):
    """A completed tier reward purchase; one per member and reward."""

    __tablename__ = "reward_claims"
    __table_args__ = (
        UniqueConstraint("user_id", "tier_reward_id", name="uq_reward_claims_user_reward"),
        UniqueConstraint("checkout_session_id", name="uq_reward_claims_checkout_session"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tier_reward_id = Column(UUID(as_uuid=True), ForeignKey("tier_rewards.id", ondelete="CASCADE"), nullable=False)
    club_id = Column(UUID(as_uuid=True), ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False)
    claim_method = Column(String(32), nullable=False, default="upgrade_purchased")
    user_tier_at_claim = Column(String(16), nullable=True)
    original_price_cents = Column(Integer, nullable=False, default=0)
    paid_price_cents = Column(Integer, nullable=False, default=0)
    discount_applied_cents = Column(Integer, nullable=False, default=0)
    checkout_session_id = Column(String(255), nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    claimed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class CreditPurchase(Base):
    """Credit campaign purchase; members may buy repeatedly."""

    __tablename__ = "credit_purchases"
    __table_args__ = (
        UniqueConstraint("checkout_session_id", name="uq_credit_purchases_checkout_session"),
        CheckConstraint("credits_purchased > 0", name="ck_credit_purchases_credits_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tier_reward_id = Column(UUID(as_uuid=True), ForeignKey("tier_rewards.id", ondelete="CASCADE"), nullable=False)
    club_id = Column(UUID(as_uuid=True), ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False)
    credits_purchased = Column(Integer, nullable=False)
    price_paid_cents = Column(Integer, nullable=False)
    checkout_session_id = Column(String(255), nullable=False)
    status = Column(String(16), nullable=False, default="completed")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class CampaignItem(Base):
    """Item inside a credit campaign, paid for with that campaign's credits."""

    __tablename__ = "campaign_items"
    __table_args__ = (CheckConstraint("credit_cost > 0", name="ck_campaign_items_credit_cost_positive"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    campaign_id = Column(
        UUID(as_uuid=True), ForeignKey("tier_rewards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    club_id = Column(UUID(as_uuid=True), ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    credit_cost = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class CampaignCreditBalance(Base):
    """Running credit totals per member and campaign.

    Purchases add to ``credits_purchased``; redemptions add to ``credits_spent``
    through a guarded update, so spent can never pass purchased.
    """

    __tablename__ = "campaign_credit_balances"
    __table_args__ = (
        UniqueConstraint("user_id", "campaign_id", name="uq_campaign_credit_balances_user_campaign"),
        CheckConstraint("credits_purchased >= 0", name="ck_campaign_credit_balances_purchased_non_negative"),
        CheckConstraint("credits_spent >= 0", name="ck_campaign_credit_balances_spent_non_negative"),
        CheckConstraint("credits_spent <= credits_purchased", name="ck_campaign_credit_balances_not_overspent"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("tier_rewards.id", ondelete="CASCADE"), nullable=False)
    club_id = Column(UUID(as_uuid=True), ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False)
    credits_purchased = Column(Integer, nullable=False, default=0, server_default="0")
    credits_spent = Column(Integer, nullable=False, default=0, server_default="0")
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def available(self) -> int:
        return self.credits_purchased - self.credits_spent


class CreditRedemption(Base):
    __tablename__ = "credit_redemptions"
    __table_args__ = (
        UniqueConstraint("user_id", "campaign_id", "ref", name="uq_credit_redemptions_user_campaign_ref"),
        CheckConstraint("credits_spent > 0", name="ck_credit_redemptions_credits_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    campaign_id = Column(UUID(as_uuid=True), ForeignKey("tier_rewards.id", ondelete="CASCADE"), nullable=False)
    item_id = Column(UUID(as_uuid=True), ForeignKey("campaign_items.id", ondelete="CASCADE"), nullable=False)
    club_id = Column(UUID(as_uuid=True), ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False)
    credits_spent = Column(Integer, nullable=False)
    ref = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
