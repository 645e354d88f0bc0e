from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from superfan_api.db.base import Base


class ClubSettlementPool(Base):
    """Reserve funds a club holds against outstanding point liability."""

    __tablename__ = "club_settlement_pools"
    __table_args__ = (
        UniqueConstraint("club_id", name="uq_club_settlement_pools_club"),
        CheckConstraint("balance_usd_cents >= 0", name="ck_club_settlement_pools_balance_non_negative"),
        CheckConstraint("reserved_usd_cents >= 0", name="ck_club_settlement_pools_reserved_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    club_id = Column(UUID(as_uuid=True), ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False)
    balance_usd_cents = Column(Integer, nullable=False, default=0, server_default="0")
    reserved_usd_cents = Column(Integer, nullable=False, default=0, server_default="0")
    last_updated = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class WeeklyUpfrontStat(Base):
    __tablename__ = "weekly_upfront_stats"
    __table_args__ = (
        UniqueConstraint("club_id", "week_start", name="uq_weekly_upfront_stats_club_week"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    club_id = Column(UUID(as_uuid=True), ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False)
    week_start = Column(Date, nullable=False)
    gross_cents = Column(Integer, nullable=False, default=0, server_default="0")
    platform_fee_cents = Column(Integer, nullable=False, default=0, server_default="0")
    reserve_delta_cents = Column(Integer, nullable=False, default=0, server_default="0")
    upfront_cents = Column(Integer, nullable=False, default=0, server_default="0")
    purchase_count = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
