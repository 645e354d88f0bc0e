"""Users, external identities, clubs and status multipliers.

Revision ID: 20261018_01
Revises:
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261018_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE TYPE status_tier_enum AS ENUM ('CADET', 'RESIDENT', 'HEADLINER', 'SUPERFAN')")

    op.create_table(
        "users",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="fan"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("role IN ('fan','operator','admin')", name="ck_users_role_valid"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "user_identities",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column("external_id", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("provider", "external_id", name="uq_user_identities_provider_external"),
    )
    op.create_index("ix_user_identities_user_id", "user_identities", ["user_id"])

    op.create_table(
        "clubs",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("owner_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("earn_multiplier", sa.Numeric(4, 3), nullable=False, server_default="1.000"),
        sa.Column("redeem_multiplier", sa.Numeric(4, 3), nullable=False, server_default="1.000"),
        sa.Column("promo_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("promo_description", sa.Text(), nullable=True),
        sa.Column("promo_discount_pts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("promo_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("system_peg_rate", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("system_purchase_rate", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("point_settle_cents", sa.Integer(), nullable=False, server_default="50"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["owner_id"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("earn_multiplier BETWEEN 0.5 AND 5.0", name="ck_clubs_earn_multiplier_range"),
        sa.CheckConstraint("redeem_multiplier BETWEEN 0.5 AND 2.0", name="ck_clubs_redeem_multiplier_range"),
        sa.CheckConstraint("promo_discount_pts >= 0", name="ck_clubs_promo_discount_non_negative"),
        sa.CheckConstraint("point_settle_cents >= 0", name="ck_clubs_point_settle_non_negative"),
    )

    op.create_table(
        "status_multipliers",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("club_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.Enum(name="status_tier_enum", create_type=False), nullable=False),
        sa.Column("earn_boost", sa.Numeric(4, 3), nullable=False, server_default="1.000"),
        sa.Column("redeem_boost", sa.Numeric(4, 3), nullable=False, server_default="1.000"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["club_id"], ["clubs.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("club_id", "status", name="uq_status_multipliers_club_status"),
        sa.CheckConstraint("earn_boost BETWEEN 1.0 AND 3.0", name="ck_status_multipliers_earn_boost_range"),
        sa.CheckConstraint("redeem_boost BETWEEN 0.8 AND 1.2", name="ck_status_multipliers_redeem_boost_range"),
    )


def downgrade() -> None:
    op.drop_table("status_multipliers")
    op.drop_table("clubs")
    op.drop_index("ix_user_identities_user_id", table_name="user_identities")
    op.drop_table("user_identities")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS status_tier_enum")
