# src/yogic_ledger/api/v1/endpoints/activity.py
"""Step submission endpoint."""

import logging

from fastapi import APIRouter

from yogic_ledger.api.v1.dependencies import (
    CurrentUserDep,
    LedgerDep,
    RateLimiterDep,
    ValidatorDep,
)
from yogic_ledger.api.v1.errors import to_http_exception
from yogic_ledger.db.time import as_utc
from yogic_ledger.models.audit import SEVERITY_HIGH, SEVERITY_MEDIUM
from yogic_ledger.schemas.activity import (
    ActivityResult,
    ActivitySubmission,
    MilestoneAwardResponse,
)
from yogic_ledger.services.activity_validator import (
    ACTION_BLOCK,
    FRAUD_WINDOW,
    REASON_DAILY,
    REASON_FRAUD,
    ActivitySample,
    RecentSample,
    detect_fraud,
    fraud_severity,
)
from yogic_ledger.services.audit import record_security_event, recent_security_events
from yogic_ledger.services.bonuses import check_milestones
from yogic_ledger.services.errors import (
    ActivityValidationError,
    DailyStepLimitError,
    LedgerError,
)
from yogic_ledger.services.ledger import RewardLedger
from yogic_ledger.services.referrals import on_referee_activity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/activity", tags=["activity"])

STEP_SUBMISSION = "step_submission"
ACTIVITY_REJECTED = "activity_rejected"
FRAUD_SUSPECTED = "fraud_suspected"


def _recent_samples(
    ledger: RewardLedger, user_id: str, submission: ActivitySubmission
) -> list[RecentSample]:
    """The submission being scored plus the user's latest accepted and rejected ones."""
    samples = [
        RecentSample(
            steps=submission.steps,
            recorded_at=ledger.now(),
            speed_kmh=submission.speed_kmh,
            gps_accuracy_meters=submission.gps_accuracy_meters,
        )
    ]
    for recorded_at, event in ledger.recent_accruals(user_id, limit=FRAUD_WINDOW):
        samples.append(
            RecentSample(
                steps=event.steps,
                recorded_at=recorded_at,
                speed_kmh=event.speed_kmh or 0.0,
                gps_accuracy_meters=event.gps_accuracy_meters,
            )
        )
    for rejected in recent_security_events(
        ledger.db, ACTIVITY_REJECTED, user_id=user_id, limit=FRAUD_WINDOW
    ):
        details = rejected.details
        samples.append(
            RecentSample(
                steps=int(details.get("steps", 0)),
                recorded_at=as_utc(rejected.created_at),
                speed_kmh=float(details.get("speed_kmh") or 0.0),
                gps_accuracy_meters=details.get("gps_accuracy_meters"),
            )
        )
    return samples


def _rejection(
    ledger: RewardLedger,
    user_id: str,
    submission: ActivitySubmission,
    reason: str,
    confidence: str,
    severity: str,
) -> ActivityValidationError:
    """Record a dropped sample and build the error the caller raises."""
    record_security_event(
        ledger.db,
        ACTIVITY_REJECTED,
        user_id=user_id,
        severity=severity,
        details={
            "reason": reason,
            "steps": submission.steps,
            "window_seconds": submission.window_seconds,
            "speed_kmh": submission.speed_kmh,
            "gps_accuracy_meters": submission.gps_accuracy_meters,
            "gps_confidence": confidence,
        },
    )
    logger.warning("Rejected activity from %s: %s", user_id, reason)
    return ActivityValidationError(reason, confidence)


@router.post("/", response_model=ActivityResult)
def submit_activity(
    submission: ActivitySubmission,
    current_user: CurrentUserDep,
    ledger: LedgerDep,
    limiter: RateLimiterDep,
    validator: ValidatorDep,
) -> ActivityResult:
    """Validate a step sample and convert it into coins.

    Every sample is also scored against the user's recent submissions; a
    suspicious pattern is escalated as a security event and a blocking one
    drops the sample. Accepted samples trigger the milestone check and the
    referral unlock for the submitting user.
    """
    user_id = current_user.user_id
    try:
        limiter.enforce(user_id, STEP_SUBMISSION)
        sample = ActivitySample(
            steps=submission.steps,
            window_seconds=submission.window_seconds,
            speed_kmh=submission.speed_kmh,
            gps_accuracy_meters=submission.gps_accuracy_meters,
            prior_steps_today=ledger.steps_today(user_id),
            prior_steps_last_hour=ledger.steps_in_last_hour(user_id),
        )
        verdict = validator.validate(sample)

        assessment = detect_fraud(_recent_samples(ledger, user_id, submission))
        if assessment.suspicious:
            record_security_event(
                ledger.db,
                FRAUD_SUSPECTED,
                user_id=user_id,
                severity=SEVERITY_HIGH if assessment.action == ACTION_BLOCK else SEVERITY_MEDIUM,
                details={
                    "score": assessment.score,
                    "reasons": list(assessment.reasons),
                    "action": assessment.action,
                },
            )
            logger.warning(
                "Suspicious activity from %s (score=%d, action=%s): %s",
                user_id,
                assessment.score,
                assessment.action,
                ", ".join(assessment.reasons),
            )

        if verdict.reason is not None:
            raise _rejection(
                ledger,
                user_id,
                submission,
                verdict.reason,
                verdict.confidence,
                fraud_severity(verdict) or SEVERITY_MEDIUM,
            )
        if assessment.action == ACTION_BLOCK:
            raise _rejection(
                ledger, user_id, submission, REASON_FRAUD, verdict.confidence, SEVERITY_HIGH
            )

        try:
            accrual = ledger.accrue_steps(
                user_id,
                submission.steps,
                submission.source,
                speed_kmh=submission.speed_kmh,
                gps_accuracy_meters=submission.gps_accuracy_meters,
            )
        except DailyStepLimitError as err:
            # A concurrent submission filled the day after validation read it.
            raise _rejection(
                ledger, user_id, submission, REASON_DAILY, verdict.confidence, SEVERITY_MEDIUM
            ) from err
        milestones = check_milestones(ledger, user_id)
        unlocked = on_referee_activity(ledger, user_id, accrual.lifetime_steps)
    except LedgerError as err:
        raise to_http_exception(err) from err

    return ActivityResult(
        coins_awarded=accrual.coins_awarded,
        multiplier=float(accrual.multiplier),
        confidence=verdict.confidence,
        tier=accrual.tier,
        milestones=[
            MilestoneAwardResponse(
                milestone_name=award.milestone_name,
                bonus_awarded=award.bonus_awarded,
            )
            for award in milestones
        ],
        referral_unlocked=unlocked,
    )
