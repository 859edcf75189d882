"""Referral registration and the one-time referral unlock."""

from __future__ import annotations

import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from yogic_ledger.core.settings import settings
from yogic_ledger.models import (
    REFERRAL_STATUS_COMPLETED,
    REFERRAL_STATUS_PENDING,
    ReferralRelationship,
    UserAccount,
)
from yogic_ledger.schemas.events import ReferralBonusEvent
from yogic_ledger.services.errors import ReferralError
from yogic_ledger.services.ledger import RewardLedger

logger = logging.getLogger(__name__)


def get_referral(ledger: RewardLedger, referee_id: str) -> ReferralRelationship | None:
    return ledger.db.execute(
        select(ReferralRelationship)
        .where(ReferralRelationship.referee_id == referee_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def list_referrals(ledger: RewardLedger, referrer_id: str) -> list[ReferralRelationship]:
    return list(
        ledger.db.execute(
            select(ReferralRelationship)
            .where(ReferralRelationship.referrer_id == referrer_id)
            .order_by(ReferralRelationship.created_at.desc())
        ).scalars()
    )


def register_referral(ledger: RewardLedger, referrer_id: str, referee_id: str) -> ReferralRelationship:
    """Record that ``referrer_id`` invited ``referee_id``.

    A referee can be claimed once; the first registration wins.

    Raises:
        ReferralError: On self-referral, an unknown referrer, or a referee
            that already has a referrer.
    """
    db = ledger.db
    if referrer_id == referee_id:
        raise ReferralError("Users cannot refer themselves")
    if db.get(UserAccount, referrer_id) is None:
        raise ReferralError("Referrer not found")

    relationship = ReferralRelationship(
        referrer_id=referrer_id,
        referee_id=referee_id,
        status=REFERRAL_STATUS_PENDING,
    )
    db.add(relationship)
    try:
        db.commit()
    except IntegrityError as err:
        db.rollback()
        raise ReferralError("Referee already has a referrer") from err
    db.refresh(relationship)
    logger.info("Registered referral %s -> %s", referrer_id, referee_id)
    return relationship


def on_referee_activity(ledger: RewardLedger, referee_id: str, lifetime_steps: int) -> bool:
    """Complete a pending referral once the referee has walked enough.

    The status flip and both credits share one database transaction; only the
    caller whose conditional update wins pays out. Returns True if this call
    unlocked the referral.
    """
    if lifetime_steps < settings.referral_step_threshold:
        return False

    def _unlock() -> str | None:
        now = ledger.now()
        completed = ledger.db.execute(
            update(ReferralRelationship)
            .where(
                ReferralRelationship.referee_id == referee_id,
                ReferralRelationship.status == REFERRAL_STATUS_PENDING,
            )
            .values(status=REFERRAL_STATUS_COMPLETED, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        if completed.rowcount != 1:
            return None
        referrer_id = ledger.db.execute(
            select(ReferralRelationship.referrer_id).where(
                ReferralRelationship.referee_id == referee_id
            )
        ).scalar_one()
        ledger.credit(
            referrer_id,
            settings.referral_referrer_bonus,
            ReferralBonusEvent(role="referrer", referrer_id=referrer_id, referee_id=referee_id),
            f"Referral bonus for inviting {referee_id}",
        )
        ledger.credit(
            referee_id,
            settings.referral_referee_bonus,
            ReferralBonusEvent(role="referee", referrer_id=referrer_id, referee_id=referee_id),
            f"Referral welcome bonus from {referrer_id}",
        )
        return referrer_id

    referrer_id = ledger.run_atomic(_unlock, description=f"Referral unlock for {referee_id}")
    if referrer_id is None:
        return False
    logger.info("Referral %s -> %s completed", referrer_id, referee_id)
    return True
