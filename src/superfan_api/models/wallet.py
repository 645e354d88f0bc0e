"""Point wallets and the append-only point ledger."""

from __future__ import annotations

from enum import Enum
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
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from superfan_api.core.time import utcnow
from superfan_api.db.base import Base


class TransactionTypeEnum(str, Enum):
    """Ledger entry types."""

    PURCHASE = "PURCHASE"
    BONUS = "BONUS"
    SPEND = "SPEND"
    REFUND = "REFUND"


class TransactionSourceEnum(str, Enum):
    """Where the points in a ledger entry came from or went to."""

    EARNED = "earned"
    PURCHASED = "purchased"
    SPENT = "spent"
    TRANSFERRED = "transferred"
    REFUNDED = "refunded"
    ADJUSTED = "adjusted"


class PointWallet(Base):
    """Per (user, club) balances; only ever mutated together with a ledger row."""

    __tablename__ = "point_wallets"
    __table_args__ = (
        UniqueConstraint("user_id", "club_id", name="uq_point_wallets_user_club"),
        CheckConstraint("balance_pts >= 0", name="ck_point_wallets_balance_non_negative"),
        CheckConstraint("earned_pts >= 0", name="ck_point_wallets_earned_non_negative"),
        CheckConstraint("purchased_pts >= 0", name="ck_point_wallets_purchased_non_negative"),
        CheckConstraint("spent_pts >= 0", name="ck_point_wallets_spent_non_negative"),
        CheckConstraint("escrowed_pts >= 0", name="ck_point_wallets_escrowed_non_negative"),
        CheckConstraint("balance_pts = earned_pts + purchased_pts", name="ck_point_wallets_bucket_sum"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    club_id = Column(UUID(as_uuid=True), ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False, index=True)
    balance_pts = Column(Integer, nullable=False, default=0, server_default="0")
    earned_pts = Column(Integer, nullable=False, default=0, server_default="0")
    purchased_pts = Column(Integer, nullable=False, default=0, server_default="0")
    spent_pts = Column(Integer, nullable=False, default=0, server_default="0")
    escrowed_pts = Column(Integer, nullable=False, default=0, server_default="0")
    # Denormalized tier cache; never read for pricing or access decisions.
    current_status = Column(String(16), nullable=True)
    last_activity_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def status_pts(self) -> int:
        return self.earned_pts or 0


class PointTransaction(Base):
    """Immutable ledger entry; ``pts`` is signed and equals the sum of its bucket deltas."""

    __tablename__ = "point_transactions"
    __table_args__ = (
        UniqueConstraint("wallet_id", "ref", name="uq_point_transactions_wallet_ref"),
        CheckConstraint("pts = earned_delta + purchased_delta", name="ck_point_transactions_bucket_sum"),
        CheckConstraint("pts <> 0", name="ck_point_transactions_non_zero"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    wallet_id = Column(UUID(as_uuid=True), ForeignKey("point_wallets.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(SqlEnum(TransactionTypeEnum, name="point_transaction_type"), nullable=False)
    source = Column(SqlEnum(TransactionSourceEnum, name="point_transaction_source"), nullable=False)
    pts = Column(Integer, nullable=False)
    earned_delta = Column(Integer, nullable=False, default=0, server_default="0")
    purchased_delta = Column(Integer, nullable=False, default=0, server_default="0")
    affects_status = Column(Boolean, nullable=False, default=False, server_default="false")
    ref = Column(String(255), nullable=True)
    unit_sell_cents = Column(Integer, nullable=True)
    unit_settle_cents = Column(Integer, nullable=True)
    usd_gross_cents = Column(Integer, nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False, index=True)
