"""OTP challenge lifecycle: issue, deliver and consume one-time codes.

Codes are stored as a keyed BLAKE3 digest bound to the mobile number. A
challenge is consumed by a conditional UPDATE, so of two concurrent
verifications with the right code exactly one succeeds.
"""

from __future__ import annotations

import hmac
import logging
import re
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache

from blake3 import blake3
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from yogic_ledger.core.settings import settings
from yogic_ledger.db.time import as_utc, utcnow
from yogic_ledger.models import OtpChallenge, UserAccount
from yogic_ledger.models.audit import SEVERITY_MEDIUM
from yogic_ledger.services.audit import mask_mobile, record_security_event
from yogic_ledger.services.cooldown import CooldownService
from yogic_ledger.services.errors import (
    ExpiredOrConsumedChallengeError,
    InvalidOtpError,
    MessagingError,
    RateLimitExceededError,
)
from yogic_ledger.services.messaging import MessagingTransport, get_messaging_transport, otp_message
from yogic_ledger.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

OTP_GENERATION = "otp_generation"
OTP_VERIFICATION = "otp_verification"

_E164 = re.compile(r"^\+[1-9]\d{7,14}$")
_SEPARATORS = re.compile(r"[\s\-().]")


def normalize_mobile(mobile_number: str) -> str:
    """Return ``mobile_number`` in E.164 form.

    Raises:
        ValueError: If the number cannot be an E.164 number.
    """
    cleaned = _SEPARATORS.sub("", mobile_number or "")
    if cleaned.startswith("00"):
        cleaned = cleaned[2:]
    if not cleaned.startswith("+"):
        cleaned = f"+{cleaned}"
    if not _E164.match(cleaned):
        raise ValueError("Mobile number must be in international format, e.g. +919876543210")
    return cleaned


@lru_cache(maxsize=1)
def _hash_key(secret_key: str) -> bytes:
    return blake3(secret_key.encode("utf-8")).digest()


def hash_code(mobile_number: str, code: str) -> str:
    """Keyed BLAKE3 digest of ``code`` bound to ``mobile_number``."""
    hasher = blake3(key=_hash_key(settings.secret_key))
    hasher.update(f"{mobile_number}:{code}".encode())
    return hasher.hexdigest()


def generate_code(length: int | None = None) -> str:
    digits = length or settings.otp_length
    return f"{secrets.randbelow(10**digits):0{digits}d}"


@dataclass(frozen=True)
class OtpIssue:
    user_id: str
    expires_at: datetime
    attempts_remaining: int


class OtpService:
    """Issues and verifies WhatsApp one-time passwords."""

    def __init__(
        self,
        db: Session,
        *,
        limiter: RateLimiter | None = None,
        transport: MessagingTransport | None = None,
        cooldowns: CooldownService | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self._clock = clock
        self.limiter = limiter or RateLimiter(db, clock=clock)
        self.transport = transport or get_messaging_transport()
        self.cooldowns = cooldowns or CooldownService()

    def generate_otp(self, mobile_number: str) -> OtpIssue:
        """Issue a fresh code to ``mobile_number`` and deliver it.

        Raises:
            ValueError: For malformed numbers.
            RateLimitExceededError: Inside the resend interval or when blocked.
            PermanentBlockError: When the number is permanently blocked.
            MessagingError: When the transport fails.
        """
        mobile = normalize_mobile(mobile_number)
        cooldown_key = f"otp:resend:{mobile}"
        if not self.cooldowns.claim(cooldown_key, settings.otp_resend_interval_seconds):
            wait = max(1, self.cooldowns.remaining(cooldown_key))
            raise RateLimitExceededError(
                OTP_GENERATION, self._clock() + timedelta(seconds=wait), "resend_cooldown"
            )

        decision = self.limiter.enforce(mobile, OTP_GENERATION)
        now = self._clock()
        user = self._find_or_create_user(mobile)

        self.db.execute(
            update(OtpChallenge)
            .where(OtpChallenge.user_id == user.user_id, OtpChallenge.is_used.is_(False))
            .values(is_used=True)
            .execution_options(synchronize_session=False)
        )
        code = generate_code()
        expires_at = now + timedelta(seconds=settings.otp_expiry_seconds)
        challenge = OtpChallenge(
            user_id=user.user_id,
            hashed_code=hash_code(mobile, code),
            mobile_number=mobile,
            expires_at=expires_at,
            is_used=False,
            created_at=now,
        )
        self.db.add(challenge)
        record_security_event(
            self.db,
            "otp_generated",
            user_id=user.user_id,
            subject_key=mobile,
            details={"mobile_number": mask_mobile(mobile)},
            commit=False,
        )
        self.db.commit()

        try:
            self.transport.send(mobile, otp_message(code, settings.otp_expiry_seconds))
        except MessagingError:
            self.cooldowns.clear(cooldown_key)
            raise
        logger.info("Issued OTP to %s", mask_mobile(mobile))
        return OtpIssue(
            user_id=user.user_id,
            expires_at=expires_at,
            attempts_remaining=decision.attempts_remaining,
        )

    def verify_otp(self, mobile_number: str, code: str) -> str:
        """Consume the live challenge for ``mobile_number`` and return the user id.

        Raises:
            InvalidOtpError: If the code is malformed or does not match.
            ExpiredOrConsumedChallengeError: If no unexpired, unused challenge exists.
            RateLimitExceededError: When verification attempts are blocked.
            PermanentBlockError: When the number is permanently blocked.
        """
        mobile = normalize_mobile(mobile_number)
        self.limiter.enforce(mobile, OTP_VERIFICATION)
        code = (code or "").strip()
        if len(code) != settings.otp_length or not code.isdigit():
            raise InvalidOtpError(f"OTP must be {settings.otp_length} digits")

        now = self._clock()
        challenge = self.db.execute(
            select(OtpChallenge)
            .where(OtpChallenge.mobile_number == mobile, OtpChallenge.is_used.is_(False))
            .order_by(OtpChallenge.created_at.desc(), OtpChallenge.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        if challenge is None or as_utc(challenge.expires_at) <= now:
            raise ExpiredOrConsumedChallengeError("OTP expired or already used")

        if not hmac.compare_digest(challenge.hashed_code, hash_code(mobile, code)):
            record_security_event(
                self.db,
                "otp_verification_failed",
                user_id=challenge.user_id,
                subject_key=mobile,
                severity=SEVERITY_MEDIUM,
                details={"mobile_number": mask_mobile(mobile)},
            )
            logger.warning("Wrong OTP submitted for %s", mask_mobile(mobile))
            raise InvalidOtpError("Invalid OTP")

        consumed = self.db.execute(
            update(OtpChallenge)
            .where(
                OtpChallenge.id == challenge.id,
                OtpChallenge.is_used.is_(False),
                OtpChallenge.expires_at > now,
            )
            .values(is_used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )
        if consumed.rowcount != 1:
            self.db.rollback()
            raise ExpiredOrConsumedChallengeError("OTP expired or already used")

        user_id = challenge.user_id
        record_security_event(
            self.db,
            "otp_verified",
            user_id=user_id,
            subject_key=mobile,
            details={"mobile_number": mask_mobile(mobile)},
        )
        self.limiter.reset(mobile, OTP_VERIFICATION)
        logger.info("OTP verified for %s", mask_mobile(mobile))
        return user_id

    def _find_or_create_user(self, mobile: str) -> UserAccount:
        user = self.db.execute(
            select(UserAccount).where(UserAccount.mobile_number == mobile)
        ).scalar_one_or_none()
        if user is not None:
            return user
        user = UserAccount(mobile_number=mobile)
        self.db.add(user)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            return self.db.execute(
                select(UserAccount).where(UserAccount.mobile_number == mobile)
            ).scalar_one()
        logger.info("Created account for %s", mask_mobile(mobile))
        return user
