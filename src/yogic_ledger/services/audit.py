"""Security audit helpers."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from yogic_ledger.models import SecurityEvent
from yogic_ledger.models.audit import SEVERITY_LOW

logger = logging.getLogger(__name__)


def mask_mobile(mobile_number: str) -> str:
    """Hide all but the last four digits of a mobile number for logs."""
    if len(mobile_number) <= 4:
        return "*" * len(mobile_number)
    return "*" * (len(mobile_number) - 4) + mobile_number[-4:]


def record_security_event(
    db: Session,
    event_type: str,
    *,
    user_id: str | None = None,
    subject_key: str | None = None,
    severity: str = SEVERITY_LOW,
    details: dict[str, Any] | None = None,
    commit: bool = True,
) -> SecurityEvent:
    """Append a security event, committing unless the caller owns the transaction."""
    event = SecurityEvent(
        user_id=user_id,
        subject_key=subject_key,
        event_type=event_type,
        severity=severity,
        details=dict(details or {}),
    )
    db.add(event)
    if commit:
        db.commit()
    else:
        db.flush()
    logger.info("Security event %s (severity=%s, user=%s)", event_type, severity, user_id)
    return event


def recent_security_events(
    db: Session,
    event_type: str,
    *,
    user_id: str,
    limit: int = 10,
) -> list[SecurityEvent]:
    """Return a user's latest events of ``event_type``, newest first."""
    return list(
        db.execute(
            select(SecurityEvent)
            .where(SecurityEvent.user_id == user_id, SecurityEvent.event_type == event_type)
            .order_by(SecurityEvent.id.desc())
            .limit(limit)
        ).scalars()
    )
