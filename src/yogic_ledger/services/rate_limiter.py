"""Rate limiting and progressive lockout for guarded operations.

Each ``(subject_key, operation_type)`` pair owns one ``rate_limit_record``
row. An attempt is counted by a single conditional UPDATE that resets an
expired window, increments the counter, and imposes a block once the
threshold is reached. Its row count decides whether the attempt was allowed,
so two parallel requests can never both be counted as the same attempt.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Final

from sqlalchemy import DateTime, and_, case, literal, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from yogic_ledger.core.settings import settings
from yogic_ledger.db.time import as_utc, local_day, next_local_midnight, utcnow
from yogic_ledger.models import RateLimitRecord
from yogic_ledger.models.audit import SEVERITY_HIGH, SEVERITY_MEDIUM
from yogic_ledger.services.audit import mask_mobile, record_security_event
from yogic_ledger.services.errors import PermanentBlockError, RateLimitExceededError

logger = logging.getLogger(__name__)

ALLOWED: Final[str] = "allowed"
BLOCKED: Final[str] = "blocked"
PERMANENTLY_BLOCKED: Final[str] = "permanently_blocked"

REASON_THRESHOLD: Final[str] = "too_many_attempts"
REASON_DAILY_CEILING: Final[str] = "daily_limit_reached"
REASON_PERMANENT: Final[str] = "permanent_block"


@dataclass(frozen=True)
class RateLimitPolicy:
    """Threshold, rolling window, block duration and optional daily ceiling."""

    threshold: int
    window: timedelta
    block_duration: timedelta
    daily_ceiling: int | None = None


def _hourly(threshold: int) -> RateLimitPolicy:
    return RateLimitPolicy(
        threshold=threshold,
        window=timedelta(seconds=settings.rate_limit_window_seconds),
        block_duration=timedelta(seconds=settings.rate_limit_block_seconds),
    )


DEFAULT_POLICIES: Final[Mapping[str, RateLimitPolicy]] = {
    "otp_generation": RateLimitPolicy(
        threshold=settings.otp_generation_threshold,
        window=timedelta(seconds=settings.otp_generation_window_seconds),
        block_duration=timedelta(seconds=settings.otp_generation_block_seconds),
        daily_ceiling=settings.otp_daily_ceiling,
    ),
    "otp_verification": _hourly(settings.otp_verification_threshold),
    "login_attempt": _hourly(5),
    "password_reset": _hourly(3),
    "data_export": _hourly(2),
    "profile_update": _hourly(10),
    "step_submission": _hourly(100),
}
FALLBACK_POLICY: Final[RateLimitPolicy] = _hourly(10)


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of one guarded attempt."""

    status: str
    operation_type: str
    retry_after: datetime | None = None
    reason: str | None = None
    attempts_remaining: int = 0

    def __post_init__(self) -> None:
        if self.status == BLOCKED and self.retry_after is None:
            raise ValueError(f"A blocked {self.operation_type} decision needs retry_after")

    @property
    def allowed(self) -> bool:
        return self.status == ALLOWED


class RateLimiter:
    """Per-subject attempt counter with blocks and a permanent lockout."""

    def __init__(
        self,
        db: Session,
        policies: Mapping[str, RateLimitPolicy] | None = None,
        *,
        permanent_after_blocks: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.policies = dict(DEFAULT_POLICIES if policies is None else policies)
        self.permanent_after_blocks = (
            settings.rate_limit_permanent_after_blocks
            if permanent_after_blocks is None
            else permanent_after_blocks
        )
        self._clock = clock

    def policy_for(self, operation_type: str) -> RateLimitPolicy:
        return self.policies.get(operation_type, FALLBACK_POLICY)

    # --- Attempt accounting ---------------------------------------------------------
    def check_and_record(
        self,
        subject_key: str,
        operation_type: str,
        now: datetime | None = None,
    ) -> RateLimitDecision:
        """Count one attempt and report whether it may proceed.

        The attempt is committed before returning so that it still counts if
        the guarded operation later fails.
        """
        moment = as_utc(now or self._clock())
        policy = self.policy_for(operation_type)
        # A lost insert race leaves a row behind, so the second pass always updates.
        for _ in range(2):
            try:
                if self._count_attempt(subject_key, operation_type, policy, moment):
                    decision = self._allowed_decision(subject_key, operation_type, policy, moment)
                else:
                    decision = self._rejection(subject_key, operation_type, policy, moment)
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.debug("Concurrent first attempt for %s/%s", subject_key, operation_type)
                continue
            except Exception:
                self.db.rollback()
                raise
            return decision
        raise RuntimeError(f"Could not record attempt for {subject_key}/{operation_type}")

    def enforce(
        self,
        subject_key: str,
        operation_type: str,
        now: datetime | None = None,
    ) -> RateLimitDecision:
        """Like :meth:`check_and_record` but raise on any rejection.

        Raises:
            PermanentBlockError: If the subject is permanently blocked.
            RateLimitExceededError: If the subject is temporarily blocked.
        """
        decision = self.check_and_record(subject_key, operation_type, now)
        if decision.status == PERMANENTLY_BLOCKED:
            raise PermanentBlockError(operation_type)
        if decision.status == BLOCKED and decision.retry_after is not None:
            raise RateLimitExceededError(
                operation_type,
                decision.retry_after,
                decision.reason or REASON_THRESHOLD,
            )
        return decision

    def _count_attempt(
        self,
        subject_key: str,
        operation_type: str,
        policy: RateLimitPolicy,
        now: datetime,
    ) -> bool:
        """Run the increment-and-compare UPDATE, inserting the row on first use."""
        record = RateLimitRecord
        at_now = literal(now, DateTime(timezone=True))
        today = local_day(now)

        block_expired = and_(record.blocked_until.is_not(None), record.blocked_until <= now)
        fresh_window = or_(record.window_start <= now - policy.window, block_expired)
        new_count = case((fresh_window, 1), else_=record.attempt_count + 1)
        reaches_threshold = new_count >= policy.threshold
        new_day = or_(record.daily_window_date.is_(None), record.daily_window_date != today)

        conditions = [
            record.subject_key == subject_key,
            record.operation_type == operation_type,
            record.permanent_block.is_(False),
            or_(record.blocked_until.is_(None), record.blocked_until <= now),
        ]
        if policy.daily_ceiling is not None:
            conditions.append(or_(new_day, record.daily_count < policy.daily_ceiling))

        result = self.db.execute(
            update(record)
            .where(*conditions)
            .values(
                attempt_count=new_count,
                window_start=case((fresh_window, at_now), else_=record.window_start),
                blocked_until=case(
                    (reaches_threshold, literal(now + policy.block_duration, DateTime(timezone=True))),
                    else_=None,
                ),
                block_count=case(
                    (reaches_threshold, record.block_count + 1), else_=record.block_count
                ),
                permanent_block=case(
                    (
                        and_(
                            reaches_threshold,
                            record.block_count + 1 >= self.permanent_after_blocks,
                        ),
                        True,
                    ),
                    else_=False,
                ),
                daily_count=case((new_day, 1), else_=record.daily_count + 1),
                daily_window_date=today,
                updated_at=at_now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return True
        if self._get(subject_key, operation_type) is not None:
            return False

        blocked = policy.threshold <= 1
        self.db.add(
            RateLimitRecord(
                subject_key=subject_key,
                operation_type=operation_type,
                attempt_count=1,
                window_start=now,
                blocked_until=now + policy.block_duration if blocked else None,
                permanent_block=blocked and self.permanent_after_blocks <= 1,
                block_count=1 if blocked else 0,
                daily_count=1,
                daily_window_date=today,
                updated_at=now,
            )
        )
        self.db.flush()
        return True

    def _allowed_decision(
        self,
        subject_key: str,
        operation_type: str,
        policy: RateLimitPolicy,
        now: datetime,
    ) -> RateLimitDecision:
        record = self._require(subject_key, operation_type)
        remaining = max(0, policy.threshold - record.attempt_count)
        if record.blocked_until is not None:
            blocked_until = as_utc(record.blocked_until)
            severity = SEVERITY_HIGH if record.permanent_block else SEVERITY_MEDIUM
            logger.warning(
                "Blocking %s for %s until %s (block %d%s)",
                _masked(subject_key),
                operation_type,
                blocked_until.isoformat(),
                record.block_count,
                ", permanent" if record.permanent_block else "",
            )
            record_security_event(
                self.db,
                "rate_limit_block",
                subject_key=subject_key,
                severity=severity,
                details={
                    "operation_type": operation_type,
                    "blocked_until": blocked_until.isoformat(),
                    "block_count": record.block_count,
                    "permanent": record.permanent_block,
                },
                commit=False,
            )
        return RateLimitDecision(ALLOWED, operation_type, attempts_remaining=remaining)

    def _rejection(
        self,
        subject_key: str,
        operation_type: str,
        policy: RateLimitPolicy,
        now: datetime,
    ) -> RateLimitDecision:
        record = self._require(subject_key, operation_type)
        if record.permanent_block:
            logger.warning("Rejected %s for %s: permanent block", _masked(subject_key), operation_type)
            return RateLimitDecision(PERMANENTLY_BLOCKED, operation_type, reason=REASON_PERMANENT)
        if record.blocked_until is not None and as_utc(record.blocked_until) > now:
            return RateLimitDecision(
                BLOCKED,
                operation_type,
                retry_after=as_utc(record.blocked_until),
                reason=REASON_THRESHOLD,
            )
        logger.info("Daily ceiling reached for %s on %s", _masked(subject_key), operation_type)
        return RateLimitDecision(
            BLOCKED,
            operation_type,
            retry_after=next_local_midnight(now),
            reason=REASON_DAILY_CEILING,
        )

    def _require(self, subject_key: str, operation_type: str) -> RateLimitRecord:
        record = self._get(subject_key, operation_type)
        if record is None:
            raise RuntimeError(f"Attempt counted but no record for {subject_key}/{operation_type}")
        return record

    # --- Support operations ---------------------------------------------------------
    def get_record(self, subject_key: str, operation_type: str) -> RateLimitRecord | None:
        return self._get(subject_key, operation_type)

    def reset(self, subject_key: str, operation_type: str) -> None:
        """Clear the rolling counter after a successful operation.

        Block history, permanent blocks and the daily count are kept.
        """
        now = self._clock()
        self.db.execute(
            update(RateLimitRecord)
            .where(
                RateLimitRecord.subject_key == subject_key,
                RateLimitRecord.operation_type == operation_type,
                RateLimitRecord.permanent_block.is_(False),
            )
            .values(attempt_count=0, window_start=now, blocked_until=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    def lift_block(self, subject_key: str, operation_type: str) -> bool:
        """Clear every block, including a permanent one. Returns False if no record exists."""
        now = self._clock()
        result = self.db.execute(
            update(RateLimitRecord)
            .where(
                RateLimitRecord.subject_key == subject_key,
                RateLimitRecord.operation_type == operation_type,
            )
            .values(
                attempt_count=0,
                window_start=now,
                blocked_until=None,
                permanent_block=False,
                block_count=0,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        if result.rowcount:
            logger.info("Lifted %s block for %s", operation_type, _masked(subject_key))
        return bool(result.rowcount)

    def set_permanent_block(self, subject_key: str, operation_type: str) -> None:
        """Permanently block a subject, creating its record if needed."""
        now = self._clock()
        record = self._get(subject_key, operation_type)
        if record is None:
            record = RateLimitRecord(
                subject_key=subject_key,
                operation_type=operation_type,
                attempt_count=0,
                window_start=now,
                block_count=0,
                daily_count=0,
            )
            self.db.add(record)
        record.permanent_block = True
        record.updated_at = now
        record_security_event(
            self.db,
            "rate_limit_permanent_block",
            subject_key=subject_key,
            severity=SEVERITY_HIGH,
            details={"operation_type": operation_type, "manual": True},
            commit=False,
        )
        self.db.commit()
        logger.warning("Permanently blocked %s for %s", _masked(subject_key), operation_type)

    def _get(self, subject_key: str, operation_type: str) -> RateLimitRecord | None:
        return self.db.execute(
            select(RateLimitRecord)
            .where(
                RateLimitRecord.subject_key == subject_key,
                RateLimitRecord.operation_type == operation_type,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()


def _masked(subject_key: str) -> str:
    return mask_mobile(subject_key) if subject_key.startswith("+") else subject_key
