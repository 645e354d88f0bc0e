"""Credit campaign items, per-member credit balances, credit redemptions and redemption refunds.

Revision ID: 20261018_04
Revises: 20261018_03
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261018_04"
down_revision: Union[str, None] = "20261018_03"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("ALTER TYPE redemption_state_enum ADD VALUE IF NOT EXISTS 'REFUNDED'")

    op.create_table(
        "campaign_items",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("campaign_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("club_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("credit_cost", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["campaign_id"], ["tier_rewards.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["club_id"], ["clubs.id"], ondelete="CASCADE"),
        sa.CheckConstraint("credit_cost > 0", name="ck_campaign_items_credit_cost_positive"),
    )
    op.create_index("ix_campaign_items_campaign_id", "campaign_items", ["campaign_id"])

    op.create_table(
        "campaign_credit_balances",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("campaign_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("club_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("credits_purchased", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("credits_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["campaign_id"], ["tier_rewards.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["club_id"], ["clubs.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "campaign_id", name="uq_campaign_credit_balances_user_campaign"),
        sa.CheckConstraint("credits_purchased >= 0", name="ck_campaign_credit_balances_purchased_non_negative"),
        sa.CheckConstraint("credits_spent >= 0", name="ck_campaign_credit_balances_spent_non_negative"),
        sa.CheckConstraint("credits_spent <= credits_purchased", name="ck_campaign_credit_balances_not_overspent"),
    )
    op.create_index("ix_campaign_credit_balances_user_id", "campaign_credit_balances", ["user_id"])

    op.create_table(
        "credit_redemptions",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("campaign_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("item_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("club_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("credits_spent", sa.Integer(), nullable=False),
        sa.Column("ref", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["campaign_id"], ["tier_rewards.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["item_id"], ["campaign_items.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["club_id"], ["clubs.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "campaign_id", "ref", name="uq_credit_redemptions_user_campaign_ref"),
        sa.CheckConstraint("credits_spent > 0", name="ck_credit_redemptions_credits_positive"),
    )
    op.create_index("ix_credit_redemptions_user_id", "credit_redemptions", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_credit_redemptions_user_id", table_name="credit_redemptions")
    op.drop_table("credit_redemptions")
    op.drop_index("ix_campaign_credit_balances_user_id", table_name="campaign_credit_balances")
    op.drop_table("campaign_credit_balances")
    op.drop_index("ix_campaign_items_campaign_id", table_name="campaign_items")
    op.drop_table("campaign_items")
    # Postgres cannot drop an enum value; REFUNDED stays on redemption_state_enum.
