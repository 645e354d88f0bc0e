"""Point-priced rewards and their redemptions."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from superfan_api.core.time import ensure_utc, utcnow
from superfan_api.db.base import Base


class RewardKindEnum(str, Enum):
    """How a reward behaves when redeemed."""

    ACCESS = "ACCESS"
    PRESALE_LOCK = "PRESALE_LOCK"
    VARIANT = "VARIANT"


class RewardStatusEnum(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class SettleModeEnum(str, Enum):
    """Whether redemptions settle cash to the club (PRR) or not (ZERO)."""

    ZERO = "ZERO"
    PRR = "PRR"


class RedemptionStateEnum(str, Enum):
    """Redemption lifecycle; EXPIRED and CANCELLED are terminal voids, REFUNDED reverses a confirmation."""

    HELD = "HELD"
    CONFIRMED = "CONFIRMED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class Reward(Base):
    __tablename__ = "rewards"
    __table_args__ = (
        CheckConstraint("points_price >= 0", name="ck_rewards_points_price_non_negative"),
        CheckConstraint("inventory IS NULL OR inventory >= 0", name="ck_rewards_inventory_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    club_id = Column(UUID(as_uuid=True), ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(SqlEnum(RewardKindEnum, name="reward_kind_enum"), nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    points_price = Column(Integer, nullable=False)
    # NULL means unlimited.
    inventory = Column(Integer, nullable=True)
    window_start = Column(DateTime(timezone=True), nullable=True)
    window_end = Column(DateTime(timezone=True), nullable=True)
    settle_mode = Column(SqlEnum(SettleModeEnum, name="reward_settle_mode_enum"), nullable=False, default=SettleModeEnum.ZERO)
    status = Column(SqlEnum(RewardStatusEnum, name="reward_status_enum"), nullable=False, default=RewardStatusEnum.ACTIVE)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def tracks_inventory(self) -> bool:
        return self.inventory is not None and self.kind is not RewardKindEnum.ACCESS

    def is_available(self, now: datetime | None = None) -> bool:
        if self.status is not RewardStatusEnum.ACTIVE:
            return False
        current = now or utcnow()
        if self.window_start is not None and ensure_utc(self.window_start) > current:
            return False
        if self.window_end is not None and ensure_utc(self.window_end) < current:
            return False
        if self.tracks_inventory and self.inventory <= 0:
            return False
        return True


class RewardRedemption(Base):
    """One row per claim attempt."""

    __tablename__ = "reward_redemptions"
    __table_args__ = (
        CheckConstraint("points_spent >= 0", name="ck_reward_redemptions_points_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    club_id = Column(UUID(as_uuid=True), ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False)
    reward_id = Column(UUID(as_uuid=True), ForeignKey("rewards.id", ondelete="CASCADE"), nullable=False, index=True)
    wallet_id = Column(UUID(as_uuid=True), ForeignKey("point_wallets.id", ondelete="CASCADE"), nullable=False)
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("point_transactions.id", ondelete="SET NULL"), nullable=True)
    points_spent = Column(Integer, nullable=False)
    state = Column(SqlEnum(RedemptionStateEnum, name="redemption_state_enum"), nullable=False, index=True)
    hold_expires_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    resolved_at = Column(DateTime(timezone=True), nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def is_void(self, now: datetime | None = None) -> bool:
        """Expired holds count as void even before the reconciler marks them."""

        if self.state in (RedemptionStateEnum.EXPIRED, RedemptionStateEnum.CANCELLED):
            return True
        if self.state is RedemptionStateEnum.HELD and self.hold_expires_at is not None:
            return ensure_utc(self.hold_expires_at) <= (now or utcnow())
        return False

    def effective_state(self, now: datetime | None = None) -> RedemptionStateEnum:
        if self.state is RedemptionStateEnum.HELD and self.is_void(now):
            return RedemptionStateEnum.EXPIRED
        return self.state
