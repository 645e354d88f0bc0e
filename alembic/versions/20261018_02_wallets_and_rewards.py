"""Point wallets, the transaction ledger, rewards, redemptions and tap-ins.

Revision ID: 20261018_02
Revises: 20261018_01
Create Date: 2026-10-18
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261018_02"
down_revision: Union[str, None] = "20261018_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE TYPE point_transaction_type AS ENUM ('PURCHASE', 'BONUS', 'SPEND', 'REFUND')")
    op.execute(
        "CREATE TYPE point_transaction_source AS ENUM "
        "('EARNED', 'PURCHASED', 'SPENT', 'TRANSFERRED', 'REFUNDED', 'ADJUSTED')"
    )
    op.execute("CREATE TYPE reward_kind_enum AS ENUM ('ACCESS', 'PRESALE_LOCK', 'VARIANT')")
    op.execute("CREATE TYPE reward_status_enum AS ENUM ('ACTIVE', 'INACTIVE')")
    op.execute("CREATE TYPE reward_settle_mode_enum AS ENUM ('ZERO', 'PRR')")
    op.execute("CREATE TYPE redemption_state_enum AS ENUM ('HELD', 'CONFIRMED', 'EXPIRED', 'CANCELLED')")
    op.execute(
        "CREATE TYPE tap_in_source_enum AS ENUM "
        "('TRAILER', 'PREMIERE_CHAT', 'SHOW_ENTRY', 'MERCH_PURCHASE', 'PRE_SAVE', 'QR_CODE', 'NFC', 'LINK')"
    )

    op.create_table(
        "point_wallets",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("club_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("balance_pts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("earned_pts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("purchased_pts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("spent_pts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("escrowed_pts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_status", sa.String(length=16), nullable=True),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["club_id"], ["clubs.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "club_id", name="uq_point_wallets_user_club"),
        sa.CheckConstraint("balance_pts >= 0", name="ck_point_wallets_balance_non_negative"),
        sa.CheckConstraint("earned_pts >= 0", name="ck_point_wallets_earned_non_negative"),
        sa.CheckConstraint("purchased_pts >= 0", name="ck_point_wallets_purchased_non_negative"),
        sa.CheckConstraint("spent_pts >= 0", name="ck_point_wallets_spent_non_negative"),
        sa.CheckConstraint("escrowed_pts >= 0", name="ck_point_wallets_escrowed_non_negative"),
        sa.CheckConstraint("balance_pts = earned_pts + purchased_pts", name="ck_point_wallets_bucket_sum"),
    )
    op.create_index("ix_point_wallets_user_id", "point_wallets", ["user_id"])
    op.create_index("ix_point_wallets_club_id", "point_wallets", ["club_id"])

    op.create_table(
        "point_transactions",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("wallet_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", sa.Enum(name="point_transaction_type", create_type=False), nullable=False),
        sa.Column("source", sa.Enum(name="point_transaction_source", create_type=False), nullable=False),
        sa.Column("pts", sa.Integer(), nullable=False),
        sa.Column("earned_delta", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("purchased_delta", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("affects_status", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("ref", sa.String(length=255), nullable=True),
        sa.Column("unit_sell_cents", sa.Integer(), nullable=True),
        sa.Column("unit_settle_cents", sa.Integer(), nullable=True),
        sa.Column("usd_gross_cents", sa.Integer(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["wallet_id"], ["point_wallets.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("wallet_id", "ref", name="uq_point_transactions_wallet_ref"),
        sa.CheckConstraint("pts = earned_delta + purchased_delta", name="ck_point_transactions_bucket_sum"),
        sa.CheckConstraint("pts <> 0", name="ck_point_transactions_non_zero"),
    )
    op.create_index("ix_point_transactions_wallet_id", "point_transactions", ["wallet_id"])
    op.create_index("ix_point_transactions_created_at", "point_transactions", ["created_at"])

    op.create_table(
        "rewards",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("club_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kind", sa.Enum(name="reward_kind_enum", create_type=False), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("points_price", sa.Integer(), nullable=False),
        sa.Column("inventory", sa.Integer(), nullable=True),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("window_end", sa.DateTime(timezone=True), nullable=True),
        sa.Column("settle_mode", sa.Enum(name="reward_settle_mode_enum", create_type=False), nullable=False),
        sa.Column("status", sa.Enum(name="reward_status_enum", create_type=False), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["club_id"], ["clubs.id"], ondelete="CASCADE"),
        sa.CheckConstraint("points_price >= 0", name="ck_rewards_points_price_non_negative"),
        sa.CheckConstraint("inventory IS NULL OR inventory >= 0", name="ck_rewards_inventory_non_negative"),
    )
    op.create_index("ix_rewards_club_id", "rewards", ["club_id"])

    op.create_table(
        "reward_redemptions",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("club_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("reward_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("wallet_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("transaction_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("points_spent", sa.Integer(), nullable=False),
        sa.Column("state", sa.Enum(name="redemption_state_enum", create_type=False), nullable=False),
        sa.Column("hold_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["club_id"], ["clubs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reward_id"], ["rewards.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["wallet_id"], ["point_wallets.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["transaction_id"], ["point_transactions.id"], ondelete="SET NULL"),
        sa.CheckConstraint("points_spent >= 0", name="ck_reward_redemptions_points_non_negative"),
    )
    op.create_index("ix_reward_redemptions_user_id", "reward_redemptions", ["user_id"])
    op.create_index("ix_reward_redemptions_reward_id", "reward_redemptions", ["reward_id"])
    op.create_index("ix_reward_redemptions_state", "reward_redemptions", ["state"])

    op.create_table(
        "tap_ins",
        sa.Column("id", sa.dialects.postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("club_id", sa.dialects.postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("source", sa.Enum(name="tap_in_source_enum", create_type=False), nullable=False),
        sa.Column("points_earned", sa.Integer(), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("ref", sa.String(length=255), nullable=True),
        sa.Column("status_before", sa.String(length=16), nullable=True),
        sa.Column("status_after", sa.String(length=16), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["club_id"], ["clubs.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "club_id", "ref", name="uq_tap_ins_user_club_ref"),
    )
    op.create_index("ix_tap_ins_user_id", "tap_ins", ["user_id"])
    op.create_index("ix_tap_ins_club_id", "tap_ins", ["club_id"])


def downgrade() -> None:
    op.drop_index("ix_tap_ins_club_id", table_name="tap_ins")
    op.drop_index("ix_tap_ins_user_id", table_name="tap_ins")
    op.drop_table("tap_ins")
    op.drop_index("ix_reward_redemptions_state", table_name="reward_redemptions")
    op.drop_index("ix_reward_redemptions_reward_id", table_name="reward_redemptions")
    op.drop_index("ix_reward_redemptions_user_id", table_name="reward_redemptions")
    op.drop_table("reward_redemptions")
    op.drop_index("ix_rewards_club_id", table_name="rewards")
    op.drop_table("rewards")
    op.drop_index("ix_point_transactions_created_at", table_name="point_transactions")
    op.drop_index("ix_point_transactions_wallet_id", table_name="point_transactions")
    op.drop_table("point_transactions")
    op.drop_index("ix_point_wallets_club_id", table_name="point_wallets")
    op.drop_index("ix_point_wallets_user_id", table_name="point_wallets")
    op.drop_table("point_wallets")
    for enum_name in (
        "tap_in_source_enum",
        "redemption_state_enum",
        "reward_settle_mode_enum",
        "reward_status_enum",
        "reward_kind_enum",
        "point_transaction_source",
        "point_transaction_type",
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
