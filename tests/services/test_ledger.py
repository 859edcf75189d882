"""Tests for the reward ledger."""

import threading
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from yogic_ledger.db.session import Base, build_engine
from yogic_ledger.models import (
    BonusLogEntry,
    DailyAccrualRecord,
    Transaction,
    UserAccount,
    UserPhaseState,
    WalletBalance,
)
from yogic_ledger.schemas.events import AccrualEvent, StreakBonusEvent, parse_event
from yogic_ledger.services.errors import (
    DailyStepLimitError,
    InsufficientBalanceError,
    PersistenceConflictError,
)
from yogic_ledger.services.ledger import RewardLedger, compute_coins


def _set_phase(db_session, user_id: str, tier: int, lifetime_steps: int) -> None:
    db_session.add(
        UserPhaseState(
            user_id=user_id,
            current_tier=tier,
            total_lifetime_steps=lifetime_steps,
            version=1,
        )
    )
    db_session.commit()


@pytest.mark.parametrize(
    ("steps", "tier", "coins"),
    [(24, 1, 0), (25, 1, 1), (1000, 3, 48), (1000, 1, 40), (2499, 9, 178)],
)
def test_compute_coins_rounds_down(steps: int, tier: int, coins: int) -> None:
    assert compute_coins(steps, tier) == coins


def test_accrual_rounds_down_to_whole_coins(ledger, test_user) -> None:
    first = ledger.accrue_steps(test_user.user_id, 24)
    second = ledger.accrue_steps(test_user.user_id, 25)

    assert first.coins_awarded == 0
    assert second.coins_awarded == 1
    assert second.multiplier == Decimal("1.0")
    assert ledger.wallet(test_user.user_id).total_balance == 1
    assert ledger.steps_today(test_user.user_id) == 49


def test_accrual_applies_tier_multiplier(ledger, db_session, test_user) -> None:
    _set_phase(db_session, test_user.user_id, tier=3, lifetime_steps=500_000)

    result = ledger.accrue_steps(test_user.user_id, 1000)

    assert result.coins_awarded == 48
    assert result.multiplier == Decimal("1.2")
    wallet = ledger.wallet(test_user.user_id)
    assert wallet.total_balance == 48
    assert wallet.total_earned == 48


def test_accrual_writes_daily_record_and_transaction(ledger, db_session, test_user) -> None:
    ledger.accrue_steps(test_user.user_id, 2500, source="google_fit")
    ledger.accrue_steps(test_user.user_id, 500)

    record = ledger.daily_record(test_user.user_id)
    assert record is not None
    assert record.steps_accrued == 3000
    assert record.coins_accrued == 120
    assert db_session.query(DailyAccrualRecord).count() == 1

    entries = ledger.transactions(test_user.user_id)
    assert [entry.amount for entry in entries] == [20, 100]
    event = parse_event(entries[-1].metadata_)
    assert isinstance(event, AccrualEvent)
    assert event.steps == 2500
    assert event.source == "google_fit"
    assert event.tier == 1


def test_unknown_source_is_attributed_to_step_tracking(ledger, test_user) -> None:
    ledger.accrue_steps(test_user.user_id, 100, source="smartwatch-x")

    event = parse_event(ledger.transactions(test_user.user_id)[0].metadata_)
    assert event.source == "step_tracking"


def test_zero_steps_write_nothing(ledger, db_session, test_user) -> None:
    result = ledger.accrue_steps(test_user.user_id, 0)

    assert result.coins_awarded == 0
    assert db_session.query(Transaction).count() == 0
    assert db_session.query(UserPhaseState).count() == 0
    assert db_session.query(WalletBalance).count() == 0


def test_accrual_advances_tier_after_crediting_at_current_rate(
    ledger, db_session, test_user
) -> None:
    _set_phase(db_session, test_user.user_id, tier=1, lifetime_steps=199_990)

    result = ledger.accrue_steps(test_user.user_id, 100)

    assert result.coins_awarded == 4
    assert result.tier == 2
    assert result.tier_advanced
    state = ledger.phase_state(test_user.user_id)
    assert state.current_tier == 2
    assert state.total_lifetime_steps == 200_090
    assert state.version == 2


def test_run_atomic_gives_up_after_bounded_retries(db_session, test_user) -> None:
    ledger = RewardLedger(db_session, max_retries=3, retry_backoff_seconds=0)
    calls = []

    def _always_locked() -> None:
        calls.append(1)
        db_session.add(WalletBalance(user_id=test_user.user_id, total_balance=5, total_earned=5))
        db_session.flush()
        raise OperationalError("UPDATE wallet_balance", {}, Exception("database is locked"))

    with pytest.raises(PersistenceConflictError):
        ledger.run_atomic(_always_locked, description="locked write")

    assert len(calls) == 3
    assert db_session.query(WalletBalance).count() == 0


def test_award_bonus_is_deduplicated(ledger, db_session, test_user) -> None:
    event = StreakBonusEvent(streak_days=7)

    first = ledger.award_bonus(test_user.user_id, 100, event, "7-day streak bonus")
    second = ledger.award_bonus(test_user.user_id, 100, event, "7-day streak bonus")

    assert first.awarded is True
    assert second.awarded is False
    assert second.amount == 0
    assert ledger.wallet(test_user.user_id).total_balance == 100
    assert db_session.query(BonusLogEntry).count() == 1
    assert db_session.query(Transaction).count() == 1


def test_social_engagement_rewarded_once_per_target(ledger, test_user) -> None:
    assert ledger.award_social_engagement(test_user.user_id, "like", "post-1").amount == 1
    assert ledger.award_social_engagement(test_user.user_id, "like", "post-1").awarded is False
    assert ledger.award_social_engagement(test_user.user_id, "comment", "post-1").amount == 3
    assert ledger.award_social_engagement(test_user.user_id, "post", "post-2").amount == 10

    assert ledger.wallet(test_user.user_id).total_balance == 14
    with pytest.raises(ValueError):
        ledger.award_social_engagement(test_user.user_id, "retweet", "post-3")


def test_redeem_spends_balance(ledger, test_user) -> None:
    ledger.accrue_steps(test_user.user_id, 2500)

    new_balance = ledger.redeem(test_user.user_id, 40, "Coupon", reference="order-1")

    assert new_balance == 60
    wallet = ledger.wallet(test_user.user_id)
    assert wallet.total_redeemed == 40
    assert wallet.total_earned == 100
    latest = ledger.transactions(test_user.user_id)[0]
    assert latest.amount == -40
    assert latest.type == "redemption"
    assert ledger.reconcile(test_user.user_id).consistent


def test_redeem_rejects_overdraft(ledger, test_user) -> None:
    ledger.accrue_steps(test_user.user_id, 250)

    with pytest.raises(InsufficientBalanceError):
        ledger.redeem(test_user.user_id, 11)

    assert ledger.wallet(test_user.user_id).total_balance == 10
    assert len(ledger.transactions(test_user.user_id)) == 1


def test_reconcile_reports_drift(ledger, db_session, test_user) -> None:
    ledger.accrue_steps(test_user.user_id, 2500)
    assert ledger.reconcile(test_user.user_id).consistent

    db_session.execute(
        update(WalletBalance)
        .where(WalletBalance.user_id == test_user.user_id)
        .values(total_balance=90)
    )
    db_session.commit()

    report = ledger.reconcile(test_user.user_id)
    assert report.drift == -10
    assert not report.consistent


def test_reward_summary(ledger, test_user) -> None:
    ledger.accrue_steps(test_user.user_id, 2500)
    ledger.award_bonus(test_user.user_id, 100, StreakBonusEvent(streak_days=7), "7-day streak bonus")

    summary = ledger.reward_summary(test_user.user_id)

    assert summary["wallet"].total_balance == 200
    assert summary["today"].steps_accrued == 2500
    assert [bonus.description for bonus in summary["recent_bonuses"]] == ["7-day streak bonus"]
    assert summary["multiplier"] == Decimal("1.0")
    assert summary["phase"]["tier"] == 1


def test_concurrent_accruals_do_not_lose_updates(tmp_path) -> None:
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    with SessionLocal() as setup:
        user = UserAccount(mobile_number="+919800000001")
        setup.add(user)
        setup.commit()
        user_id = user.user_id

    rounds = 5
    barrier = threading.Barrier(2)
    errors: list[Exception] = []

    def _worker() -> None:
        with SessionLocal() as session:
            ledger = RewardLedger(session, max_retries=25, retry_backoff_seconds=0.01)
            barrier.wait()
            try:
                for _ in range(rounds):
                    ledger.accrue_steps(user_id, 2500)
            except Exception as err:
                errors.append(err)

    threads = [threading.Thread(target=_worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    try:
        assert errors == []
        with SessionLocal() as check:
            ledger = RewardLedger(check)
            assert ledger.wallet(user_id).total_balance == 2 * rounds * 100
            assert ledger.reconcile(user_id).consistent
            state = check.execute(
                select(UserPhaseState).where(UserPhaseState.user_id == user_id)
            ).scalar_one()
            assert state.total_lifetime_steps == 2 * rounds * 2500
            assert state.version == 1 + 2 * rounds
            assert ledger.steps_today(user_id) == 2 * rounds * 2500
    finally:
        engine.dispose()


def test_accrual_past_daily_ceiling_rolls_back(db_session, test_user) -> None:
    ledger = RewardLedger(db_session, retry_backoff_seconds=0, max_steps_per_day=5000)
    ledger.accrue_steps(test_user.user_id, 4000)

    with pytest.raises(DailyStepLimitError) as excinfo:
        ledger.accrue_steps(test_user.user_id, 1001)

    assert excinfo.value.steps_today == 4000
    assert excinfo.value.ceiling == 5000
    assert ledger.steps_today(test_user.user_id) == 4000
    assert ledger.wallet(test_user.user_id).total_balance == 160
    assert len(ledger.transactions(test_user.user_id)) == 1
    assert ledger.phase_state(test_user.user_id).total_lifetime_steps == 4000

    ledger.accrue_steps(test_user.user_id, 1000)
    assert ledger.steps_today(test_user.user_id) == 5000


def test_first_accrual_of_the_day_respects_ceiling(db_session, test_user) -> None:
    ledger = RewardLedger(db_session, retry_backoff_seconds=0, max_steps_per_day=5000)

    with pytest.raises(DailyStepLimitError):
        ledger.accrue_steps(test_user.user_id, 5001)

    assert ledger.daily_record(test_user.user_id) is None
    assert ledger.wallet(test_user.user_id).total_balance == 0


def test_steps_in_last_hour_sums_trailing_accruals(db_session, test_user) -> None:
    now = [datetime(2026, 10, 19, 6, 0, tzinfo=UTC)]
    ledger = RewardLedger(db_session, retry_backoff_seconds=0, clock=lambda: now[0])

    ledger.accrue_steps(test_user.user_id, 1000)
    now[0] += timedelta(minutes=30)
    ledger.accrue_steps(test_user.user_id, 2000)
    ledger.award_bonus(test_user.user_id, 200, StreakBonusEvent(streak_days=7), "7-day streak bonus")

    assert ledger.steps_in_last_hour(test_user.user_id) == 3000
    now[0] += timedelta(minutes=40)
    assert ledger.steps_in_last_hour(test_user.user_id) == 2000
    now[0] += timedelta(hours=1)
    assert ledger.steps_in_last_hour(test_user.user_id) == 0


def test_recent_accruals_keep_device_readings(ledger, test_user) -> None:
    ledger.accrue_steps(test_user.user_id, 1200, speed_kmh=4.2, gps_accuracy_meters=12.0)
    ledger.accrue_steps(test_user.user_id, 800)

    accruals = ledger.recent_accruals(test_user.user_id)

    assert [event.steps for _, event in accruals] == [800, 1200]
    assert accruals[0][1].speed_kmh is None
    assert accruals[1][1].speed_kmh == 4.2
    assert accruals[1][1].gps_accuracy_meters == 12.0
    assert all(recorded_at.tzinfo is not None for recorded_at, _ in accruals)


def test_concurrent_accruals_cannot_overshoot_daily_ceiling(tmp_path) -> None:
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    with SessionLocal() as setup:
        user = UserAccount(mobile_number="+919800000002")
        setup.add(user)
        setup.commit()
        user_id = user.user_id
        RewardLedger(setup, max_steps_per_day=50_000).accrue_steps(user_id, 45_000)

    barrier = threading.Barrier(2)
    accepted: list[int] = []
    refused: list[DailyStepLimitError] = []
    errors: list[Exception] = []

    def _worker() -> None:
        with SessionLocal() as session:
            ledger = RewardLedger(
                session, max_retries=25, retry_backoff_seconds=0.01, max_steps_per_day=50_000
            )
            barrier.wait()
            try:
                accepted.append(ledger.accrue_steps(user_id, 5000).coins_awarded)
            except DailyStepLimitError as err:
                refused.append(err)
            except Exception as err:
                errors.append(err)

    threads = [threading.Thread(target=_worker) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    try:
        assert errors == []
        assert accepted == [200]
        assert len(refused) == 1
        with SessionLocal() as check:
            ledger = RewardLedger(check)
            assert ledger.steps_today(user_id) == 50_000
            assert ledger.wallet(user_id).total_balance == 2000
            assert ledger.reconcile(user_id).consistent
            assert len(ledger.transactions(user_id)) == 2
    finally:
        engine.dispose()
