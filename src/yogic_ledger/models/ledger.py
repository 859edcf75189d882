# src/yogic_ledger/models/ledger.py
"""Daily accruals, wallet balances, the transaction log and bonus dedup keys."""

from __future__ import annotations

import datetime as dt
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from yogic_ledger.db.session import Base
from yogic_ledger.db.time import utcnow


class DailyAccrualRecord(Base):
    """Steps and coins accrued by one user on one ledger calendar day."""

    __tablename__ = "daily_accrual_record"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_daily_accrual_user_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_account.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    steps_accrued: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    coins_accrued: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class WalletBalance(Base):
    """Cached projection of a user's transaction log."""

    __tablename__ = "wallet_balance"
    __table_args__ = (
        CheckConstraint("total_balance >= 0", name="ck_wallet_balance_non_negative"),
        CheckConstraint("total_balance <= total_earned", name="ck_wallet_balance_le_earned"),
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_account.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    total_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_redeemed: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


class Transaction(Base):
    """Write-once ledger entry; the source of truth for reconciliation."""

    __tablename__ = "ledger_transaction"
    __table_args__ = (Index("ix_ledger_transaction_user_id", "user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_account.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    # Event tag, e.g. "accrual", "milestone", "redemption".
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    # Signed amount in paisa; redemptions are negative.
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # Column is named "metadata" in the database; the attribute avoids
    # shadowing DeclarativeBase.metadata.
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


class BonusLogEntry(Base):
    """One awarded bonus; the unique key doubles as the dedup guard."""

    __tablename__ = "bonus_log"
    __table_args__ = (
        UniqueConstraint("user_id", "bonus_type", "description", name="uq_bonus_log_dedup"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_account.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    bonus_type: Mapped[str] = mapped_column(String(32), nullable=False)
    amount_paisa: Mapped[int] = mapped_column(BigInteger, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    date_earned: Mapped[dt.date] = mapped_column(Date, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
