# src/yogic_ledger/services/activity_validator.py
"""Plausibility checks for client-reported activity."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Final

from yogic_ledger.core.settings import settings
from yogic_ledger.models.audit import SEVERITY_HIGH, SEVERITY_MEDIUM

SECONDS_PER_HOUR: Final[int] = 3600

CONFIDENCE_EXCELLENT: Final[str] = "excellent"
CONFIDENCE_GOOD: Final[str] = "good"
CONFIDENCE_POOR: Final[str] = "poor"

REASON_INVALID_SAMPLE: Final[str] = "invalid_sample"
REASON_SPEED: Final[str] = "speed_exceeded"
REASON_HOURLY: Final[str] = "hourly_limit_exceeded"
REASON_DAILY: Final[str] = "daily_limit_exceeded"
REASON_FRAUD: Final[str] = "fraud_suspected"

# Pattern scoring over a user's recent submissions.
FRAUD_WINDOW: Final[int] = 10
FRAUD_SPEED_KMH: Final[float] = 25.0
FRAUD_LIMIT_SCORE: Final[int] = 40
FRAUD_BLOCK_SCORE: Final[int] = 70

ACTION_ALLOW: Final[str] = "allow"
ACTION_LIMIT: Final[str] = "limit"
ACTION_BLOCK: Final[str] = "block"

SIGNAL_HIGH_FREQUENCY: Final[str] = "high_step_frequency"
SIGNAL_REPEATED_SPEEDING: Final[str] = "repeated_high_speed"
SIGNAL_ROUND_NUMBERS: Final[str] = "round_number_pattern"
SIGNAL_RAPID_ENTRIES: Final[str] = "rapid_entries"
SIGNAL_POOR_GPS: Final[str] = "repeated_poor_gps"


@dataclass(frozen=True)
class ActivitySample:
    """One measurement window reported by a device."""

    steps: int
    window_seconds: int
    speed_kmh: float = 0.0
    gps_accuracy_meters: float | None = None
    prior_steps_today: int = 0
    # Steps already accrued in the trailing hour, not counting this sample.
    prior_steps_last_hour: int = 0


@dataclass(frozen=True)
class ValidationResult:
    """Accepted when ``reason`` is None."""

    confidence: str
    reason: str | None = None

    @property
    def accepted(self) -> bool:
        return self.reason is None


@dataclass(frozen=True)
class RecentSample:
    """A past submission as seen by :func:`detect_fraud`."""

    steps: int
    recorded_at: datetime
    speed_kmh: float = 0.0
    gps_accuracy_meters: float | None = None


@dataclass(frozen=True)
class FraudAssessment:
    score: int
    reasons: tuple[str, ...] = ()
    action: str = ACTION_ALLOW

    @property
    def suspicious(self) -> bool:
        return self.action != ACTION_ALLOW


def gps_confidence(accuracy_meters: float | None) -> str:
    """Grade a GPS fix for display; advisory only."""
    if accuracy_meters is None:
        return CONFIDENCE_POOR
    if accuracy_meters <= 10:
        return CONFIDENCE_EXCELLENT
    if accuracy_meters <= 50:
        return CONFIDENCE_GOOD
    return CONFIDENCE_POOR


class ActivityValidator:
    """Rejects samples that no person on foot could have produced."""

    def __init__(
        self,
        *,
        max_speed_kmh: float | None = None,
        max_steps_per_hour: int | None = None,
        max_steps_per_day: int | None = None,
    ) -> None:
        self.max_speed_kmh = (
            settings.max_walking_speed_kmh if max_speed_kmh is None else max_speed_kmh
        )
        self.max_steps_per_hour = (
            settings.max_steps_per_hour if max_steps_per_hour is None else max_steps_per_hour
        )
        self.max_steps_per_day = (
            settings.max_steps_per_day if max_steps_per_day is None else max_steps_per_day
        )

    def validate(self, sample: ActivitySample) -> ValidationResult:
        """Return an accepted or rejected result for ``sample``.

        Speed is checked first so vehicular movement is rejected regardless of
        step count or GPS quality. The hourly ceiling applies to the steps
        accrued in the trailing hour plus this sample, so splitting a burst
        across several small windows does not get around it.
        """
        confidence = gps_confidence(sample.gps_accuracy_meters)

        if sample.steps < 0 or sample.window_seconds <= 0 or sample.speed_kmh < 0:
            return ValidationResult(confidence, REASON_INVALID_SAMPLE)

        if sample.speed_kmh > self.max_speed_kmh:
            return ValidationResult(confidence, REASON_SPEED)

        # A window longer than an hour only contributes its average hourly rate.
        hourly_steps = sample.steps
        if sample.window_seconds > SECONDS_PER_HOUR:
            hourly_steps = sample.steps * SECONDS_PER_HOUR / sample.window_seconds
        if sample.prior_steps_last_hour + hourly_steps > self.max_steps_per_hour:
            return ValidationResult(confidence, REASON_HOURLY)

        if sample.prior_steps_today + sample.steps > self.max_steps_per_day:
            return ValidationResult(confidence, REASON_DAILY)

        return ValidationResult(confidence)


def fraud_severity(result: ValidationResult) -> str | None:
    """Severity a caller should attach when escalating a rejection."""
    if result.accepted:
        return None
    if result.confidence == CONFIDENCE_POOR:
        return SEVERITY_HIGH
    return SEVERITY_MEDIUM


def detect_fraud(recent_samples: Sequence[RecentSample]) -> FraudAssessment:
    """Score the newest :data:`FRAUD_WINDOW` submissions for scripted patterns.

    Each signal adds a fixed weight:

    - average sample above 2000 steps: 30
    - more than three samples above 25 km/h: 40
    - more than two samples that are exact multiples of 1000 steps: 20
    - more than three submissions less than a second apart: 25
    - more than three samples with a poor GPS fix: 15

    A score above 70 blocks, above 40 limits, anything else is allowed.
    """
    samples = sorted(recent_samples, key=lambda s: s.recorded_at)[-FRAUD_WINDOW:]
    if not samples:
        return FraudAssessment(score=0)

    score = 0
    reasons: list[str] = []

    if sum(s.steps for s in samples) / len(samples) > 2000:
        score += 30
        reasons.append(SIGNAL_HIGH_FREQUENCY)

    if sum(1 for s in samples if s.speed_kmh > FRAUD_SPEED_KMH) > 3:
        score += 40
        reasons.append(SIGNAL_REPEATED_SPEEDING)

    if sum(1 for s in samples if s.steps > 0 and s.steps % 1000 == 0) > 2:
        score += 20
        reasons.append(SIGNAL_ROUND_NUMBERS)

    rapid = sum(
        1
        for earlier, later in zip(samples, samples[1:])
        if (later.recorded_at - earlier.recorded_at).total_seconds() < 1
    )
    if rapid > 3:
        score += 25
        reasons.append(SIGNAL_RAPID_ENTRIES)

    poor_fixes = sum(
        1 for s in samples if gps_confidence(s.gps_accuracy_meters) == CONFIDENCE_POOR
    )
    if poor_fixes > 3:
        score += 15
        reasons.append(SIGNAL_POOR_GPS)

    if score > FRAUD_BLOCK_SCORE:
        action = ACTION_BLOCK
    elif score > FRAUD_LIMIT_SCORE:
        action = ACTION_LIMIT
    else:
        action = ACTION_ALLOW
    return FraudAssessment(score=score, reasons=tuple(reasons), action=action)
