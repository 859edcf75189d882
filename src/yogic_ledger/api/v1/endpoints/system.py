"""System and transparency endpoints for the Yogic Ledger API."""

from __future__ import annotations

import logging

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from yogic_ledger.api.v1.dependencies import SessionDep
from yogic_ledger.core.phases import PHASE_TABLE
from yogic_ledger.core.settings import settings
from yogic_ledger.services.bonuses import MILESTONES
from yogic_ledger.services.ledger import SOCIAL_ENGAGEMENT_REWARDS
from yogic_ledger.services.rate_limiter import DEFAULT_POLICIES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/system", tags=["system", "transparency"])


@router.get("/health")
def system_health(db: SessionDep) -> dict[str, str]:
    """Report whether the database answers queries."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as err:
        logger.error("Database health check failed: %s", err)
        return {"status": "degraded", "database": "unavailable"}
    return {"status": "ok", "database": "ok"}


@router.get("/config")
def get_public_config() -> dict[str, object]:
    """Return a sanitized snapshot of public runtime configuration.

    Excludes secrets and connection strings; suitable for transparency UIs.
    """
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "jwt_algorithm": settings.jwt_algorithm,
            "access_token_expire_minutes": settings.access_token_expire_minutes,
            "debug": settings.debug,
        },
        "ledger": {
            "timezone": settings.ledger_timezone,
            "steps_per_coin": settings.steps_per_coin,
            "phases": len(PHASE_TABLE),
            "milestones": {m.name: m.bonus for m in MILESTONES},
            "social_rewards": dict(SOCIAL_ENGAGEMENT_REWARDS),
        },
        "activity_limits": {
            "max_walking_speed_kmh": settings.max_walking_speed_kmh,
            "max_steps_per_hour": settings.max_steps_per_hour,
            "max_steps_per_day": settings.max_steps_per_day,
        },
        "otp": {
            "length": settings.otp_length,
            "expiry_seconds": settings.otp_expiry_seconds,
            "resend_interval_seconds": settings.otp_resend_interval_seconds,
            "transport": "whatsapp" if settings.twilio_configured else "console",
        },
        "rate_limits": {
            name: {
                "threshold": policy.threshold,
                "window_seconds": int(policy.window.total_seconds()),
                "block_seconds": int(policy.block_duration.total_seconds()),
                "daily_ceiling": policy.daily_ceiling,
            }
            for name, policy in DEFAULT_POLICIES.items()
        },
        "referrals": {
            "step_threshold": settings.referral_step_threshold,
            "referrer_bonus": settings.referral_referrer_bonus,
            "referee_bonus": settings.referral_referee_bonus,
        },
    }
