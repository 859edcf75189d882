# src/yogic_ledger/models/user.py
"""Identity mirror and per-user phase progression."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from yogic_ledger.db.session import Base
from yogic_ledger.db.time import utcnow


def _new_user_id() -> str:
    return str(uuid.uuid4())


class UserAccount(Base):
    """Local mirror of an identity supplied by the authentication provider."""

    __tablename__ = "user_account"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_user_id)
    mobile_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    phase_state: Mapped[UserPhaseState | None] = relationship(
        "UserPhaseState",
        back_populates="user",
        cascade="all, delete-orphan",
        uselist=False,
    )


class UserPhaseState(Base):
    """Authoritative tier and lifetime step count for a user.

    ``version`` is bumped by every accrual; writers compare-and-swap on it so
    two concurrent accruals for the same user serialize instead of racing.
    """

    __tablename__ = "user_phase_state"
    __table_args__ = (
        CheckConstraint("current_tier BETWEEN 1 AND 9", name="ck_user_phase_state_tier"),
        CheckConstraint("total_lifetime_steps >= 0", name="ck_user_phase_state_steps"),
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_account.user_id", ondelete="CASCADE"),
        primary_key=True,
    )
    current_tier: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_lifetime_steps: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    user: Mapped[UserAccount] = relationship("UserAccount", back_populates="phase_state")
