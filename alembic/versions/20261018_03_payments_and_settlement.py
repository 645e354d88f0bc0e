"""Tier rewards, processed payment markers and settlement aggregates.

Revision ID: 20261018_03
Revises: 20261018_02
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261018_03"
down_revision: Union[str, None] = "20261018_02"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE TYPE payment_provider_enum AS ENUM ('STRIPE')")

    op.create_table(
        "tier_rewards",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("club_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("min_tier", sa.Enum(name="status_tier_enum", create_type=False), nullable=False),
        sa.Column("upgrade_price_cents", sa.Integer(), nullable=True),
        sa.Column("resident_discount_percentage", sa.Integer(), nullable=True),
        sa.Column("headliner_discount_percentage", sa.Integer(), nullable=True),
        sa.Column("superfan_discount_percentage", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("is_credit_campaign", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("credit_cost", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["club_id"], ["clubs.id"], ondelete="CASCADE"),
        sa.CheckConstraint(
            "resident_discount_percentage IS NULL OR resident_discount_percentage BETWEEN 0 AND 100",
            name="ck_tier_rewards_resident_discount_range",
        ),
        sa.CheckConstraint(
            "headliner_discount_percentage IS NULL OR headliner_discount_percentage BETWEEN 0 AND 100",
            name="ck_tier_rewards_headliner_discount_range",
        ),
        sa.CheckConstraint(
            "superfan_discount_percentage IS NULL OR superfan_discount_percentage BETWEEN 0 AND 100",
            name="ck_tier_rewards_superfan_discount_range",
        ),
        sa.CheckConstraint("credit_cost IS NULL OR credit_cost > 0", name="ck_tier_rewards_credit_cost_positive"),
    )
    op.create_index("ix_tier_rewards_club_id", "tier_rewards", ["club_id"])

    op.create_table(
        "reward_claims",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tier_reward_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("club_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("claim_method", sa.String(length=32), nullable=False),
        sa.Column("user_tier_at_claim", sa.String(length=16), nullable=True),
        sa.Column("original_price_cents", sa.Integer(), nullable=False),
        sa.Column("paid_price_cents", sa.Integer(), nullable=False),
        sa.Column("discount_applied_cents", sa.Integer(), nullable=False),
        sa.Column("checkout_session_id", sa.String(length=255), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tier_reward_id"], ["tier_rewards.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["club_id"], ["clubs.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "tier_reward_id", name="uq_reward_claims_user_reward"),
        sa.UniqueConstraint("checkout_session_id", name="uq_reward_claims_checkout_session"),
    )
    op.create_index("ix_reward_claims_user_id", "reward_claims", ["user_id"])

    op.create_table(
        "credit_purchases",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tier_reward_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("club_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("credits_purchased", sa.Integer(), nullable=False),
        sa.Column("price_paid_cents", sa.Integer(), nullable=False),
        sa.Column("checkout_session_id", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["tier_reward_id"], ["tier_rewards.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["club_id"], ["clubs.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("checkout_session_id", name="uq_credit_purchases_checkout_session"),
        sa.CheckConstraint("credits_purchased > 0", name="ck_credit_purchases_credits_positive"),
    )
    op.create_index("ix_credit_purchases_user_id", "credit_purchases", ["user_id"])

    op.create_table(
        "processed_payment_events",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("provider", sa.Enum(name="payment_provider_enum", create_type=False), nullable=False),
        sa.Column("event_id", sa.String(length=255), nullable=False),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("outcome", sa.String(length=64), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("provider", "event_id", name="uq_processed_payment_events_provider_event"),
    )

    op.create_table(
        "processed_chain_transactions",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tx_hash", sa.String(length=128), nullable=False),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("club_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("points_credited", sa.Integer(), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["club_id"], ["clubs.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("tx_hash", name="uq_processed_chain_transactions_tx_hash"),
    )

    op.create_table(
        "club_settlement_pools",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("club_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("balance_usd_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reserved_usd_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["club_id"], ["clubs.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("club_id", name="uq_club_settlement_pools_club"),
        sa.CheckConstraint("balance_usd_cents >= 0", name="ck_club_settlement_pools_balance_non_negative"),
        sa.CheckConstraint("reserved_usd_cents >= 0", name="ck_club_settlement_pools_reserved_non_negative"),
    )

    op.create_table(
        "weekly_upfront_stats",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("club_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("week_start", sa.Date(), nullable=False),
        sa.Column("gross_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("platform_fee_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reserve_delta_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("upfront_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("purchase_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["club_id"], ["clubs.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("club_id", "week_start", name="uq_weekly_upfront_stats_club_week"),
    )


def downgrade() -> None:
    op.drop_table("weekly_upfront_stats")
    op.drop_table("club_settlement_pools")
    op.drop_table("processed_chain_transactions")
    op.drop_table("processed_payment_events")
    op.drop_index("ix_credit_purchases_user_id", table_name="credit_purchases")
    op.drop_table("credit_purchases")
    op.drop_index("ix_reward_claims_user_id", table_name="reward_claims")
    op.drop_table("reward_claims")
    op.drop_index("ix_tier_rewards_club_id", table_name="tier_rewards")
    op.drop_table("tier_rewards")
    op.execute("DROP TYPE IF EXISTS payment_provider_enum")
