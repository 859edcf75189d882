# src/yogic_ledger/models/referral.py
"""Referral relationships between users."""

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from yogic_ledger.db.session import Base
from yogic_ledger.db.time import utcnow

REFERRAL_STATUS_PENDING = "pending"
REFERRAL_STATUS_COMPLETED = "completed"


class ReferralRelationship(Base):
    """Links a referee to the single referrer who signed them up."""

    __tablename__ = "referral_relationship"
    __table_args__ = (
        CheckConstraint("status IN ('pending', 'completed')", name="ck_referral_status"),
        CheckConstraint("referrer_id <> referee_id", name="ck_referral_not_self"),
        Index("ix_referral_relationship_referrer_id", "referrer_id"),
    )

    # Primary key on the referee enforces one referrer per referee.
    referee_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_account.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    referrer_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_account.user_id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=REFERRAL_STATUS_PENDING
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
