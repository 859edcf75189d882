"""initial ledger schema

Revision ID: 5c1e2a9d0b7f
Revises:
Create Date: 2026-10-19 09:12:44.318205

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5c1e2a9d0b7f"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create accounts, ledger, abuse-guard and audit tables."""
    op.create_table(
        "user_account",
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("mobile_number", sa.String(length=20), nullable=False),
        sa.Column("display_name", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
        sa.UniqueConstraint("mobile_number"),
    )
    op.create_table(
        "user_phase_state",
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("current_tier", sa.Integer(), nullable=False),
        sa.Column("total_lifetime_steps", sa.BigInteger(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.CheckConstraint("current_tier BETWEEN 1 AND 9", name="ck_user_phase_state_tier"),
        sa.CheckConstraint("total_lifetime_steps >= 0", name="ck_user_phase_state_steps"),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id"),
    )
    op.create_table(
        "daily_accrual_record",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("steps_accrued", sa.BigInteger(), nullable=False),
        sa.Column("coins_accrued", sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "date", name="uq_daily_accrual_user_date"),
    )
    op.create_table(
        "wallet_balance",
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("total_balance", sa.BigInteger(), nullable=False),
        sa.Column("total_earned", sa.BigInteger(), nullable=False),
        sa.Column("total_redeemed", sa.BigInteger(), nullable=False),
        sa.CheckConstraint("total_balance >= 0", name="ck_wallet_balance_non_negative"),
        sa.CheckConstraint("total_balance <= total_earned", name="ck_wallet_balance_le_earned"),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id"),
    )
    op.create_table(
        "ledger_transaction",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ledger_transaction_user_id", "ledger_transaction", ["user_id"])
    op.create_table(
        "bonus_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("bonus_type", sa.String(length=32), nullable=False),
        sa.Column("amount_paisa", sa.BigInteger(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("date_earned", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "bonus_type", "description", name="uq_bonus_log_dedup"),
    )
    op.create_table(
        "rate_limit_record",
        sa.Column("subject_key", sa.String(length=64), nullable=False),
        sa.Column("operation_type", sa.String(length=32), nullable=False),
        sa.Column("attempt_count", sa.Integer(), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("blocked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("permanent_block", sa.Boolean(), nullable=False),
        sa.Column("block_count", sa.Integer(), nullable=False),
        sa.Column("daily_count", sa.Integer(), nullable=False),
        sa.Column("daily_window_date", sa.Date(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("subject_key", "operation_type"),
    )
    op.create_table(
        "otp_challenge",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("hashed_code", sa.String(length=64), nullable=False),
        sa.Column("mobile_number", sa.String(length=20), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_used", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user_account.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_otp_challenge_mobile_number", "otp_challenge", ["mobile_number"])
    op.create_table(
        "referral_relationship",
        sa.Column("referee_id", sa.String(length=36), nullable=False),
        sa.Column("referrer_id", sa.String(length=36), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('pending', 'completed')", name="ck_referral_status"),
        sa.CheckConstraint("referrer_id <> referee_id", name="ck_referral_not_self"),
        sa.ForeignKeyConstraint(["referee_id"], ["user_account.user_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["referrer_id"], ["user_account.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("referee_id"),
    )
    op.create_index(
        "ix_referral_relationship_referrer_id", "referral_relationship", ["referrer_id"]
    )
    op.create_table(
        "security_event",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("subject_key", sa.String(length=64), nullable=True),
        sa.Column("event_type", sa.String(length=48), nullable=False),
        sa.Column("severity", sa.String(length=8), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_security_event_user_id", "security_event", ["user_id"])


def downgrade() -> None:
    """Drop every ledger table."""
    op.drop_index("ix_security_event_user_id", table_name="security_event")
    op.drop_table("security_event")
    op.drop_index("ix_referral_relationship_referrer_id", table_name="referral_relationship")
    op.drop_table("referral_relationship")
    op.drop_index("ix_otp_challenge_mobile_number", table_name="otp_challenge")
    op.drop_table("otp_challenge")
    op.drop_table("rate_limit_record")
    op.drop_table("bonus_log")
    op.drop_index("ix_ledger_transaction_user_id", table_name="ledger_transaction")
    op.drop_table("ledger_transaction")
    op.drop_table("wallet_balance")
    op.drop_table("daily_accrual_record")
    op.drop_table("user_phase_state")
    op.drop_table("user_account")
