# src/yogic_ledger/db/time.py
"""Time utilities for database models and ledger calendar days."""

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from yogic_ledger.core.settings import settings


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive values read back from backends without tz support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def ledger_zone() -> ZoneInfo:
    """Return the timezone that defines a user's calendar day."""
    return ZoneInfo(settings.ledger_timezone)


def local_day(moment: datetime) -> date:
    """Return the ledger calendar day containing ``moment``."""
    return as_utc(moment).astimezone(ledger_zone()).date()


def next_local_midnight(moment: datetime) -> datetime:
    """Return the UTC instant at which the ledger day after ``moment`` starts."""
    zone = ledger_zone()
    tomorrow = local_day(moment) + timedelta(days=1)
    return datetime.combine(tomorrow, time.min, tzinfo=zone).astimezone(UTC)
