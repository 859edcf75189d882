# src/yogic_ledger/models/rate_limit.py
"""Attempt counters backing the rate limiter."""

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from yogic_ledger.db.session import Base
from yogic_ledger.db.time import utcnow


class RateLimitRecord(Base):
    """Rolling-window and daily counters for one (subject, operation) pair."""

    __tablename__ = "rate_limit_record"

    # Mobile number or account id.
    subject_key: Mapped[str] = mapped_column(String(64), primary_key=True)
    operation_type: Mapped[str] = mapped_column(String(32), primary_key=True)

    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    window_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    blocked_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    # Terminal; only support tooling clears it.
    permanent_block: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    block_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    daily_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_window_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
