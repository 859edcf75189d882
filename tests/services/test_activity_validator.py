"""Tests for the activity plausibility validator."""

from datetime import UTC, datetime, timedelta

import pytest

from yogic_ledger.services.activity_validator import (
    ACTION_ALLOW,
    ACTION_BLOCK,
    ACTION_LIMIT,
    CONFIDENCE_EXCELLENT,
    CONFIDENCE_GOOD,
    CONFIDENCE_POOR,
    REASON_DAILY,
    REASON_HOURLY,
    REASON_INVALID_SAMPLE,
    REASON_SPEED,
    ActivitySample,
    ActivityValidator,
    RecentSample,
    detect_fraud,
    fraud_severity,
    gps_confidence,
)


@pytest.fixture()
def validator() -> ActivityValidator:
    return ActivityValidator()


def test_plausible_walk_is_accepted(validator: ActivityValidator) -> None:
    result = validator.validate(
        ActivitySample(steps=3000, window_seconds=1800, speed_kmh=5.0, gps_accuracy_meters=8)
    )

    assert result.accepted
    assert result.confidence == CONFIDENCE_EXCELLENT
    assert fraud_severity(result) is None


def test_speed_over_limit_is_rejected_even_with_good_gps(validator: ActivityValidator) -> None:
    result = validator.validate(
        ActivitySample(steps=10, window_seconds=60, speed_kmh=12.5, gps_accuracy_meters=5)
    )

    assert result.reason == REASON_SPEED
    assert fraud_severity(result) == "medium"


def test_speed_at_limit_is_accepted(validator: ActivityValidator) -> None:
    result = validator.validate(ActivitySample(steps=100, window_seconds=60, speed_kmh=12.0))

    assert result.accepted


@pytest.mark.parametrize(
    "sample",
    [
        ActivitySample(steps=-1, window_seconds=60),
        ActivitySample(steps=10, window_seconds=0),
        ActivitySample(steps=10, window_seconds=60, speed_kmh=-1.0),
    ],
)
def test_malformed_samples_are_rejected(validator: ActivityValidator, sample: ActivitySample) -> None:
    assert validator.validate(sample).reason == REASON_INVALID_SAMPLE


def test_hourly_ceiling_applies_to_short_windows(validator: ActivityValidator) -> None:
    assert validator.validate(ActivitySample(steps=8000, window_seconds=600)).accepted
    result = validator.validate(ActivitySample(steps=8001, window_seconds=600))

    assert result.reason == REASON_HOURLY


def test_long_windows_use_average_hourly_rate(validator: ActivityValidator) -> None:
    assert validator.validate(ActivitySample(steps=16_000, window_seconds=7200)).accepted
    result = validator.validate(ActivitySample(steps=16_002, window_seconds=7200))

    assert result.reason == REASON_HOURLY


def test_daily_ceiling_counts_prior_steps(validator: ActivityValidator) -> None:
    ok = ActivitySample(steps=2000, window_seconds=3600, prior_steps_today=48_000)
    over = ActivitySample(steps=2001, window_seconds=3600, prior_steps_today=48_000)

    assert validator.validate(ok).accepted
    assert validator.validate(over).reason == REASON_DAILY


def test_rejection_with_poor_gps_is_high_severity(validator: ActivityValidator) -> None:
    result = validator.validate(ActivitySample(steps=10, window_seconds=60, speed_kmh=40.0))

    assert result.confidence == CONFIDENCE_POOR
    assert fraud_severity(result) == "high"


@pytest.mark.parametrize(
    ("accuracy", "grade"),
    [
        (None, CONFIDENCE_POOR),
        (0, CONFIDENCE_EXCELLENT),
        (10, CONFIDENCE_EXCELLENT),
        (10.5, CONFIDENCE_GOOD),
        (50, CONFIDENCE_GOOD),
        (51, CONFIDENCE_POOR),
    ],
)
def test_gps_confidence_grades(accuracy: float | None, grade: str) -> None:
    assert gps_confidence(accuracy) == grade


def test_custom_ceilings() -> None:
    strict = ActivityValidator(max_speed_kmh=8.0, max_steps_per_hour=1000, max_steps_per_day=1500)

    assert strict.validate(ActivitySample(steps=10, window_seconds=60, speed_kmh=9)).reason == (
        REASON_SPEED
    )
    assert strict.validate(ActivitySample(steps=1001, window_seconds=60)).reason == REASON_HOURLY
    assert strict.validate(
        ActivitySample(steps=600, window_seconds=3600, prior_steps_today=1000)
    ).reason == REASON_DAILY


def test_hourly_ceiling_counts_steps_already_accrued_this_hour(
    validator: ActivityValidator,
) -> None:
    # Six one-minute samples of 7999 steps must not each pass on their own.
    accrued = 0
    verdicts = []
    for _ in range(6):
        result = validator.validate(
            ActivitySample(steps=7999, window_seconds=60, prior_steps_last_hour=accrued)
        )
        verdicts.append(result.reason)
        if result.accepted:
            accrued += 7999

    assert verdicts == [None] + [REASON_HOURLY] * 5
    assert accrued == 7999


def test_hourly_ceiling_allows_topping_up_to_the_limit(validator: ActivityValidator) -> None:
    assert validator.validate(
        ActivitySample(steps=1000, window_seconds=60, prior_steps_last_hour=7000)
    ).accepted
    result = validator.validate(
        ActivitySample(steps=1001, window_seconds=60, prior_steps_last_hour=7000)
    )

    assert result.reason == REASON_HOURLY


T0 = datetime(2026, 10, 19, 6, 0, tzinfo=UTC)


def _history(steps: list[int], *, gap_seconds: float = 600, **fields) -> list[RecentSample]:
    return [
        RecentSample(steps=count, recorded_at=T0 + timedelta(seconds=i * gap_seconds), **fields)
        for i, count in enumerate(steps)
    ]


def test_ordinary_walking_is_not_flagged() -> None:
    assessment = detect_fraud(
        _history([1234, 987, 1510, 640], speed_kmh=4.8, gps_accuracy_meters=9)
    )

    assert assessment.score == 0
    assert assessment.reasons == ()
    assert assessment.action == ACTION_ALLOW
    assert not assessment.suspicious


def test_empty_history_is_allowed() -> None:
    assert detect_fraud([]).action == ACTION_ALLOW


def test_round_numbers_and_high_average_limit() -> None:
    assessment = detect_fraud(_history([3000, 4000, 5000], gps_accuracy_meters=5))

    assert assessment.score == 50
    assert assessment.reasons == ("high_step_frequency", "round_number_pattern")
    assert assessment.action == ACTION_LIMIT
    assert assessment.suspicious


def test_scripted_bursts_block() -> None:
    assessment = detect_fraud(_history([2000, 3000, 4000, 5000, 6000], gap_seconds=0.2))

    assert set(assessment.reasons) == {
        "high_step_frequency",
        "round_number_pattern",
        "rapid_entries",
        "repeated_poor_gps",
    }
    assert assessment.score == 90
    assert assessment.action == ACTION_BLOCK


def test_repeated_high_speed_contributes() -> None:
    assessment = detect_fraud(
        _history([100, 120, 90, 110], speed_kmh=30.0, gps_accuracy_meters=5)
    )

    assert assessment.reasons == ("repeated_high_speed",)
    assert assessment.score == 40
    assert assessment.action == ACTION_ALLOW


def test_only_the_newest_samples_are_scored() -> None:
    old_bursts = _history([5000] * 10, gap_seconds=0.1, gps_accuracy_meters=5)
    recent = [
        RecentSample(
            steps=800 + i,
            recorded_at=T0 + timedelta(hours=1, minutes=10 * i),
            gps_accuracy_meters=5,
        )
        for i in range(10)
    ]

    assessment = detect_fraud(recent + old_bursts)

    assert assessment.score == 0
