"""Idempotency markers for external payment events and on-chain transfers."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from superfan_api.db.base import Base


class PaymentProviderEnum(str, Enum):
    STRIPE = "stripe"


class ProcessedPaymentEvent(Base):
    """Existence of a row means the event must not be applied again."""

    __tablename__ = "processed_payment_events"
    __table_args__ = (
        UniqueConstraint("provider", "event_id", name="uq_processed_payment_events_provider_event"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    provider = Column(SqlEnum(PaymentProviderEnum, name="payment_provider_enum"), nullable=False)
    event_id = Column(String(255), nullable=False)
    event_type = Column(String(128), nullable=False)
    outcome = Column(String(64), nullable=True)
    processed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ProcessedChainTransaction(Base):
    """A transaction hash may be credited at most once."""

    __tablename__ = "processed_chain_transactions"
    __table_args__ = (
        UniqueConstraint("tx_hash", name="uq_processed_chain_transactions_tx_hash"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tx_hash = Column(String(128), nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    club_id = Column(UUID(as_uuid=True), ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False)
    amount_cents = Column(Integer, nullable=False)
    points_credited = Column(Integer, nullable=False)
    processed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
