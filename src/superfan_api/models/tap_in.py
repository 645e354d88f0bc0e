from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Enum as SqlEnum, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from superfan_api.db.base import Base
from superfan_api.domain.earning import TapInSource


class TapIn(Base):
    """Venue or content check-in that earned points."""

    __tablename__ = "tap_ins"
    __table_args__ = (
        UniqueConstraint("user_id", "club_id", "ref", name="uq_tap_ins_user_club_ref"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    club_id = Column(UUID(as_uuid=True), ForeignKey("clubs.id", ondelete="CASCADE"), nullable=False, index=True)
    source = Column(SqlEnum(TapInSource, name="tap_in_source_enum"), nullable=False)
    points_earned = Column(Integer, nullable=False)
    location = Column(String(255), nullable=True)
    ref = Column(String(255), nullable=True)
    status_before = Column(String(16), nullable=True)
    status_after = Column(String(16), nullable=True)
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
