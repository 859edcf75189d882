# src/yogic_ledger/models/otp.py
"""One-time password challenges."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from yogic_ledger.db.session import Base
from yogic_ledger.db.time import utcnow


class OtpChallenge(Base):
    """A hashed, single-use code issued to a mobile number.

    Plaintext codes are never stored.
    """

    __tablename__ = "otp_challenge"
    __table_args__ = (Index("ix_otp_challenge_mobile_number", "mobile_number"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_account.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    hashed_code: Mapped[str] = mapped_column(String(64), nullable=False)
    mobile_number: Mapped[str] = mapped_column(String(20), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
