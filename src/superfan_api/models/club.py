"""Club economics and per-tier multipliers."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from superfan_api.db.base import Base
from superfan_api.domain.status import StatusTier


class Club(Base):
    """Membership community with operator-configurable economics."""

    __tablename__ = "clubs"
    __table_args__ = (
        CheckConstraint("earn_multiplier BETWEEN 0.5 AND 5.0", name="ck_clubs_earn_multiplier_range"),
        CheckConstraint("redeem_multiplier BETWEEN 0.5 AND 2.0", name="ck_clubs_redeem_multiplier_range"),
        CheckConstraint("promo_discount_pts >= 0", name="ck_clubs_promo_discount_non_negative"),
        CheckConstraint("point_settle_cents >= 0", name="ck_clubs_point_settle_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String, nullable=False)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    earn_multiplier = Column(Numeric(4, 3), nullable=False, default=Decimal("1.000"), server_default="1.000")
    redeem_multiplier = Column(Numeric(4, 3), nullable=False, default=Decimal("1.000"), server_default="1.000")
    promo_active = Column(Boolean, nullable=False, default=False, server_default="false")
    promo_description = Column(Text, nullable=True)
    promo_discount_pts = Column(Integer, nullable=False, default=0, server_default="0")
    promo_expires_at = Column(DateTime(timezone=True), nullable=True)
    # 100 points = $1, 1 cent per point
    system_peg_rate = Column(Integer, nullable=False, default=100, server_default="100")
    system_purchase_rate = Column(Integer, nullable=False, default=1, server_default="1")
    # Settlement value in cents of 100 points.
    point_settle_cents = Column(Integer, nullable=False, default=50, server_default="50")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    status_multipliers = relationship(
        "StatusMultiplier",
        back_populates="club",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def boosts_for(self, tier: StatusTier) -> tuple[Decimal, Decimal]:
        """Return ``(earn_boost, redeem_boost)`` for a tier, defaulting to 1."""

        for multiplier in self.status_multipliers:
            if multiplier.status == tier:
                return Decimal(multiplier.earn_boost), Decimal(multiplier.redeem_boost)
        return Decimal("1"), Decimal("1")


class StatusMultiplier(Base):
    __tablename__ = "status_multipliers"
    __table_args__ = (
        UniqueConstraint("club_id", "status", name="uq_status_multipliers_club_status"),
        CheckConstraint("earn_boost BETWEEN 1.0 AND 3.0", name="ck_status_multipliers_earn_boost_range"),
        CheckConstraint("redeem_boost BETWEEN 0.8 AND 1.2", name="ck_status_multipliers_redeem_boost_range"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    club_id = Column(UUID(as_uuid=True), ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False)
    status = Column(SqlEnum(StatusTier, name="status_tier_enum"), nullable=False)
    earn_boost = Column(Numeric(4, 3), nullable=False, default=Decimal("1.000"), server_default="1.000")
    redeem_boost = Column(Numeric(4, 3), nullable=False, default=Decimal("1.000"), server_default="1.000")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    club = relationship("Club", back_populates="status_multipliers")
