"""Reward ledger services.

The ledger converts validated steps and bonus events into wallet credit.
Every money-moving unit of work runs inside :meth:`RewardLedger.run_atomic`,
which commits the daily record, wallet increment and transaction append
together or rolls all of them back.

Concurrency is handled without read-then-write on hot rows:

- ``UserPhaseState.version`` is compare-and-swapped by every accrual, so two
  accruals for the same user serialize.
- Wallet and daily totals are incremented in SQL; the daily increment is
  conditional on staying under the step ceiling.
- Bonus deduplication relies on the ``bonus_log`` unique key.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Final, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from yogic_ledger.core.phases import advance_tier, phase_progress, rate_for_tier
from yogic_ledger.core.settings import settings
from yogic_ledger.db.time import as_utc, local_day, utcnow
from yogic_ledger.models import (
    BonusLogEntry,
    DailyAccrualRecord,
    Transaction,
    UserPhaseState,
    WalletBalance,
)
from yogic_ledger.schemas.events import (
    AccrualEvent,
    BonusEvent,
    LedgerEvent,
    RedemptionEvent,
    SocialEngagementEvent,
    parse_event,
)
from yogic_ledger.services.errors import (
    DailyStepLimitError,
    DuplicateBonusError,
    InsufficientBalanceError,
    PersistenceConflictError,
)

logger = logging.getLogger(__name__)

KNOWN_SOURCES: Final[frozenset[str]] = frozenset(
    {"step_tracking", "google_fit", "healthkit", "background_sync", "manual_sync"}
)
DEFAULT_SOURCE: Final[str] = "step_tracking"

SOCIAL_ENGAGEMENT_REWARDS: Final[dict[str, int]] = {
    "like": 1,
    "comment": 3,
    "share": 5,
    "post": 10,
}

T = TypeVar("T")


class _StaleVersion(Exception):
    """Internal signal that a compare-and-swap lost to a concurrent writer."""


@dataclass(frozen=True)
class AccrualResult:
    """Outcome of a single accrual."""

    coins_awarded: int
    multiplier: Decimal
    tier: int
    previous_tier: int
    lifetime_steps: int

    @property
    def tier_advanced(self) -> bool:
        return self.tier > self.previous_tier


@dataclass(frozen=True)
class BonusResult:
    """Outcome of a deduplicated bonus; ``awarded`` is False for repeats."""

    awarded: bool
    amount: int


@dataclass(frozen=True)
class ReconciliationReport:
    """Cached balance compared with the sum of the transaction log."""

    user_id: str
    cached_balance: int
    transaction_total: int

    @property
    def drift(self) -> int:
        return self.cached_balance - self.transaction_total

    @property
    def consistent(self) -> bool:
        return self.drift == 0


def normalize_source(source: str | None) -> str:
    """Attribute unknown sources to the default step tracker."""
    if source and source in KNOWN_SOURCES:
        return source
    if source:
        logger.debug("Unknown accrual source %r attributed to %s", source, DEFAULT_SOURCE)
    return DEFAULT_SOURCE


def compute_coins(steps: int, tier: int) -> int:
    """Return ``floor(floor(steps / 25) * multiplier)`` using exact decimals."""
    base = steps // settings.steps_per_coin
    scaled = Decimal(base) * rate_for_tier(tier)
    return int(scaled.to_integral_value(rounding=ROUND_FLOOR))


class RewardLedger:
    """Service owning wallet balances, daily records and the transaction log."""

    def __init__(
        self,
        db: Session,
        *,
        max_retries: int | None = None,
        retry_backoff_seconds: float | None = None,
        max_steps_per_day: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.max_retries = max(1, settings.ledger_max_retries if max_retries is None else max_retries)
        self.retry_backoff_seconds = (
            settings.ledger_retry_backoff_seconds
            if retry_backoff_seconds is None
            else retry_backoff_seconds
        )
        self.max_steps_per_day = (
            settings.max_steps_per_day if max_steps_per_day is None else max_steps_per_day
        )
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # --- Transaction discipline ---------------------------------------------------
    def run_atomic(self, operation: Callable[[], T], *, description: str) -> T:
        """Run ``operation`` and commit, retrying lost races a bounded number of times.

        Any other exception rolls back and propagates unchanged.
        """
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                result = operation()
                self.db.commit()
            except (_StaleVersion, IntegrityError, OperationalError) as err:
                self.db.rollback()
                last_error = err
                logger.warning(
                    "%s lost a write race (attempt %d/%d): %s",
                    description,
                    attempt,
                    self.max_retries,
                    err,
                )
                if self.retry_backoff_seconds and attempt < self.max_retries:
                    time.sleep(self.retry_backoff_seconds * attempt)
                continue
            except Exception:
                self.db.rollback()
                raise
            return result
        raise PersistenceConflictError(
            f"{description} failed after {self.max_retries} attempts"
        ) from last_error

    # --- Accrual ------------------------------------------------------------------
    def accrue_steps(
        self,
        user_id: str,
        steps: int,
        source: str | None = DEFAULT_SOURCE,
        *,
        speed_kmh: float | None = None,
        gps_accuracy_meters: float | None = None,
    ) -> AccrualResult:
        """Convert ``steps`` into coins at the user's current tier multiplier.

        Raises:
            DailyStepLimitError: If the day's accrued steps would pass the
                daily ceiling. Checked inside the same unit of work as the
                increment, so concurrent accruals cannot both slip under it.
        """
        attributed = normalize_source(source)
        if steps <= 0:
            state = self.phase_state(user_id)
            multiplier = rate_for_tier(state.current_tier)
            return AccrualResult(
                0, multiplier, state.current_tier, state.current_tier, state.total_lifetime_steps
            )
        result = self.run_atomic(
            lambda: self._accrue(
                user_id,
                steps,
                attributed,
                speed_kmh=speed_kmh,
                gps_accuracy_meters=gps_accuracy_meters,
            ),
            description=f"Accrual for {user_id}",
        )
        if result.tier_advanced:
            logger.info(
                "User %s advanced from tier %d to tier %d",
                user_id,
                result.previous_tier,
                result.tier,
            )
        return result

    def _accrue(
        self,
        user_id: str,
        steps: int,
        source: str,
        *,
        speed_kmh: float | None = None,
        gps_accuracy_meters: float | None = None,
    ) -> AccrualResult:
        now = self._clock()
        state = self._load_phase_state(user_id)
        tier = state.current_tier
        version = state.version
        previous_steps = state.total_lifetime_steps
        multiplier = rate_for_tier(tier)

        coins = compute_coins(steps, tier)
        lifetime = previous_steps + steps
        new_tier = advance_tier(tier, lifetime)

        swapped = self.db.execute(
            update(UserPhaseState)
            .where(UserPhaseState.user_id == user_id, UserPhaseState.version == version)
            .values(total_lifetime_steps=lifetime, current_tier=new_tier, version=version + 1)
            .execution_options(synchronize_session=False)
        )
        if swapped.rowcount != 1:
            raise _StaleVersion(f"phase state for {user_id} changed under version {version}")

        self._add_to_daily_record(user_id, local_day(now), steps, coins)
        if coins:
            self._increment_wallet(user_id, coins)
        self._append_transaction(
            user_id,
            AccrualEvent(
                steps=steps,
                multiplier=float(multiplier),
                source=source,
                tier=tier,
                speed_kmh=speed_kmh,
                gps_accuracy_meters=gps_accuracy_meters,
            ),
            coins,
            f"{steps} steps converted to coins ({multiplier}x multiplier)",
            now,
        )
        return AccrualResult(coins, multiplier, new_tier, tier, lifetime)

    def _load_phase_state(self, user_id: str) -> UserPhaseState:
        state = self.db.execute(
            select(UserPhaseState)
            .where(UserPhaseState.user_id == user_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if state is None:
            state = UserPhaseState(
                user_id=user_id,
                current_tier=1,
                total_lifetime_steps=0,
                version=1,
            )
            self.db.add(state)
            self.db.flush()
        return state

    def _add_to_daily_record(self, user_id: str, day: date, steps: int, coins: int) -> None:
        ceiling = self.max_steps_per_day
        updated = self.db.execute(
            update(DailyAccrualRecord)
            .where(
                DailyAccrualRecord.user_id == user_id,
                DailyAccrualRecord.date == day,
                DailyAccrualRecord.steps_accrued + steps <= ceiling,
            )
            .values(
                steps_accrued=DailyAccrualRecord.steps_accrued + steps,
                coins_accrued=DailyAccrualRecord.coins_accrued + coins,
            )
            .execution_options(synchronize_session=False)
        )
        if updated.rowcount == 0:
            steps_today = self.db.execute(
                select(DailyAccrualRecord.steps_accrued).where(
                    DailyAccrualRecord.user_id == user_id, DailyAccrualRecord.date == day
                )
            ).scalar_one_or_none()
            if steps_today is not None or steps > ceiling:
                raise DailyStepLimitError(user_id, steps_today or 0, steps, ceiling)
            self.db.add(
                DailyAccrualRecord(
                    user_id=user_id,
                    date=day,
                    steps_accrued=steps,
                    coins_accrued=coins,
                )
            )
            self.db.flush()

    def _increment_wallet(self, user_id: str, amount: int) -> None:
        updated = self.db.execute(
            update(WalletBalance)
            .where(WalletBalance.user_id == user_id)
            .values(
                total_balance=WalletBalance.total_balance + amount,
                total_earned=WalletBalance.total_earned + amount,
            )
            .execution_options(synchronize_session=False)
        )
        if updated.rowcount == 0:
            self.db.add(
                WalletBalance(
                    user_id=user_id,
                    total_balance=amount,
                    total_earned=amount,
                    total_redeemed=0,
                )
            )
            self.db.flush()

    def _append_transaction(
        self,
        user_id: str,
        event: LedgerEvent,
        amount: int,
        description: str,
        now: datetime,
    ) -> Transaction:
        entry = Transaction(
            user_id=user_id,
            type=event.kind,
            amount=amount,
            description=description,
            metadata_=event.model_dump(mode="json"),
            created_at=now,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    # --- Bonuses --------------------------------------------------------------------
    def credit(
        self,
        user_id: str,
        amount: int,
        event: BonusEvent,
        description: str,
    ) -> None:
        """Record a deduplicated bonus inside the caller's transaction.

        Raises:
            DuplicateBonusError: If ``(user_id, event.kind, description)`` was
                already awarded.
        """
        if amount <= 0:
            raise ValueError("bonus amount must be positive")
        now = self._clock()
        self.db.add(
            BonusLogEntry(
                user_id=user_id,
                bonus_type=event.kind,
                amount_paisa=amount,
                description=description,
                date_earned=local_day(now),
                created_at=now,
            )
        )
        try:
            self.db.flush()
        except IntegrityError as err:
            raise DuplicateBonusError(
                f"{event.kind} bonus {description!r} already awarded to {user_id}"
            ) from err
        self._increment_wallet(user_id, amount)
        self._append_transaction(user_id, event, amount, description, now)

    def award_bonus(
        self,
        user_id: str,
        amount: int,
        event: BonusEvent,
        description: str,
    ) -> BonusResult:
        """Credit a bonus in its own unit of work; repeats are successful no-ops."""
        try:
            self.run_atomic(
                lambda: self.credit(user_id, amount, event, description),
                description=f"{event.kind} bonus for {user_id}",
            )
        except DuplicateBonusError:
            logger.info("Skipping duplicate %s bonus %r for %s", event.kind, description, user_id)
            return BonusResult(awarded=False, amount=0)
        logger.info("Awarded %s bonus %r (%d) to %s", event.kind, description, amount, user_id)
        return BonusResult(awarded=True, amount=amount)

    def award_social_engagement(
        self,
        user_id: str,
        engagement_type: str,
        target_id: str,
    ) -> BonusResult:
        """Reward a like, comment, share or post once per target."""
        amount = SOCIAL_ENGAGEMENT_REWARDS.get(engagement_type)
        if amount is None:
            raise ValueError(f"Unknown engagement type: {engagement_type}")
        event = SocialEngagementEvent(engagement_type=engagement_type, target_id=target_id)
        return self.award_bonus(
            user_id,
            amount,
            event,
            f"{engagement_type} engagement reward for {target_id}",
        )

    # --- Redemption -----------------------------------------------------------------
    def redeem(
        self,
        user_id: str,
        amount: int,
        description: str = "Redemption",
        reference: str | None = None,
    ) -> int:
        """Spend ``amount`` from the balance and return the new balance."""
        if amount <= 0:
            raise ValueError("redemption amount must be positive")

        def _redeem() -> int:
            now = self._clock()
            spent = self.db.execute(
                update(WalletBalance)
                .where(WalletBalance.user_id == user_id, WalletBalance.total_balance >= amount)
                .values(
                    total_balance=WalletBalance.total_balance - amount,
                    total_redeemed=WalletBalance.total_redeemed + amount,
                )
                .execution_options(synchronize_session=False)
            )
            if spent.rowcount != 1:
                raise InsufficientBalanceError(
                    f"Balance of {user_id} is below the requested {amount}"
                )
            self._append_transaction(
                user_id, RedemptionEvent(reference=reference), -amount, description, now
            )
            return self.wallet(user_id).total_balance

        return self.run_atomic(_redeem, description=f"Redemption for {user_id}")

    # --- Reads ----------------------------------------------------------------------
    def wallet(self, user_id: str) -> WalletBalance:
        """Return the wallet row, or an unsaved zero wallet for new users."""
        wallet = self.db.execute(
            select(WalletBalance)
            .where(WalletBalance.user_id == user_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if wallet is None:
            return WalletBalance(user_id=user_id, total_balance=0, total_earned=0, total_redeemed=0)
        return wallet

    def phase_state(self, user_id: str) -> UserPhaseState:
        """Return the phase row, or an unsaved tier-1 state for new users."""
        state = self.db.execute(
            select(UserPhaseState)
            .where(UserPhaseState.user_id == user_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if state is None:
            return UserPhaseState(user_id=user_id, current_tier=1, total_lifetime_steps=0, version=0)
        return state

    def multiplier(self, user_id: str) -> Decimal:
        return rate_for_tier(self.phase_state(user_id).current_tier)

    def daily_record(self, user_id: str, day: date | None = None) -> DailyAccrualRecord | None:
        target = day or local_day(self._clock())
        return self.db.execute(
            select(DailyAccrualRecord)
            .where(DailyAccrualRecord.user_id == user_id, DailyAccrualRecord.date == target)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def steps_today(self, user_id: str) -> int:
        record = self.daily_record(user_id)
        return record.steps_accrued if record else 0

    def steps_in_last_hour(self, user_id: str) -> int:
        """Sum the steps accrued during the trailing hour."""
        since = self.now() - timedelta(hours=1)
        return sum(event.steps for _, event in self.recent_accruals(user_id, since=since))

    def recent_accruals(
        self,
        user_id: str,
        *,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[tuple[datetime, AccrualEvent]]:
        """Return ``(created_at, event)`` pairs for accruals, newest first."""
        query = (
            select(Transaction.created_at, Transaction.metadata_)
            .where(Transaction.user_id == user_id, Transaction.type == "accrual")
            .order_by(Transaction.id.desc())
        )
        if since is not None:
            query = query.where(Transaction.created_at >= since)
        if limit is not None:
            query = query.limit(limit)
        accruals: list[tuple[datetime, AccrualEvent]] = []
        for created_at, payload in self.db.execute(query):
            event = parse_event(payload)
            if isinstance(event, AccrualEvent):
                accruals.append((as_utc(created_at), event))
        return accruals

    def transactions(self, user_id: str, limit: int = 50, offset: int = 0) -> list[Transaction]:
        return list(
            self.db.execute(
                select(Transaction)
                .where(Transaction.user_id == user_id)
                .order_by(Transaction.id.desc())
                .offset(offset)
                .limit(limit)
            ).scalars()
        )

    def recent_bonuses(self, user_id: str, limit: int = 5) -> list[BonusLogEntry]:
        return list(
            self.db.execute(
                select(BonusLogEntry)
                .where(BonusLogEntry.user_id == user_id)
                .order_by(BonusLogEntry.created_at.desc(), BonusLogEntry.id.desc())
                .limit(limit)
            ).scalars()
        )

    def reward_summary(self, user_id: str) -> dict[str, Any]:
        """Collect the figures shown on the rewards dashboard."""
        state = self.phase_state(user_id)
        return {
            "wallet": self.wallet(user_id),
            "today": self.daily_record(user_id),
            "recent_bonuses": self.recent_bonuses(user_id),
            "multiplier": rate_for_tier(state.current_tier),
            "phase": phase_progress(state.current_tier, state.total_lifetime_steps),
        }

    def reconcile(self, user_id: str) -> ReconciliationReport:
        """Compare the cached balance with the sum of the user's transactions."""
        total = self.db.execute(
            select(func.coalesce(func.sum(Transaction.amount), 0)).where(
                Transaction.user_id == user_id
            )
        ).scalar_one()
        report = ReconciliationReport(
            user_id=user_id,
            cached_balance=self.wallet(user_id).total_balance,
            transaction_total=int(total),
        )
        if not report.consistent:
            logger.error(
                "Wallet drift for %s: cached %d, transactions %d",
                user_id,
                report.cached_balance,
                report.transaction_total,
            )
        return report
