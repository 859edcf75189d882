# src/yogic_ledger/models/audit.py
"""Security audit trail."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from yogic_ledger.db.session import Base
from yogic_ledger.db.time import utcnow

SEVERITY_LOW = "low"
SEVERITY_MEDIUM = "medium"
SEVERITY_HIGH = "high"


class SecurityEvent(Base):
    """Append-only record of authentication and fraud signals."""

    __tablename__ = "security_event"
    __table_args__ = (Index("ix_security_event_user_id", "user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Either may be null: OTP events precede a known user, fraud events have no mobile.
    user_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    subject_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    event_type: Mapped[str] = mapped_column(String(48), nullable=False)
    severity: Mapped[str] = mapped_column(String(8), nullable=False, default=SEVERITY_LOW)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
