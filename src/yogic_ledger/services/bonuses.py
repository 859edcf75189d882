"""Streak and lifetime-milestone bonuses.

Both are deduplicated by the bonus log, so re-running a check after a crash
or from a second worker can never pay the same bonus twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final

from yogic_ledger.schemas.events import MilestoneBonusEvent, StreakBonusEvent
from yogic_ledger.services.ledger import BonusResult, RewardLedger

logger = logging.getLogger(__name__)

STREAK_PERIOD_DAYS: Final[int] = 7
STREAK_BONUS_PER_WEEK: Final[int] = 100


@dataclass(frozen=True)
class Milestone:
    name: str
    steps: int
    bonus: int


# Ascending by steps.
MILESTONES: Final[tuple[Milestone, ...]] = (
    Milestone("100K Steps", 100_000, 500),
    Milestone("250K Steps", 250_000, 1_500),
    Milestone("500K Steps", 500_000, 3_000),
    Milestone("1M Steps", 1_000_000, 7_500),
)


@dataclass(frozen=True)
class MilestoneAward:
    milestone_name: str
    bonus_awarded: int


def streak_bonus_amount(streak_days: int) -> int:
    """Return the weekly streak payout, or 0 when no week boundary was reached."""
    if streak_days <= 0 or streak_days % STREAK_PERIOD_DAYS:
        return 0
    return STREAK_BONUS_PER_WEEK * (streak_days // STREAK_PERIOD_DAYS)


def award_streak_bonus(ledger: RewardLedger, user_id: str, streak_days: int) -> BonusResult:
    """Pay the weekly streak bonus for ``streak_days`` at most once."""
    amount = streak_bonus_amount(streak_days)
    if not amount:
        return BonusResult(awarded=False, amount=0)
    return ledger.award_bonus(
        user_id,
        amount,
        StreakBonusEvent(streak_days=streak_days),
        f"{streak_days}-day streak bonus",
    )


def check_milestones(ledger: RewardLedger, user_id: str) -> list[MilestoneAward]:
    """Award every milestone the user's lifetime steps have crossed.

    Each milestone is its own unit of work; only those newly awarded by this
    call are returned.
    """
    lifetime_steps = ledger.phase_state(user_id).total_lifetime_steps
    awarded: list[MilestoneAward] = []
    for milestone in MILESTONES:
        if lifetime_steps < milestone.steps:
            break
        result = ledger.award_bonus(
            user_id,
            milestone.bonus,
            MilestoneBonusEvent(milestone_name=milestone.name, milestone_steps=milestone.steps),
            milestone.name,
        )
        if result.awarded:
            logger.info("User %s reached milestone %s", user_id, milestone.name)
            awarded.append(MilestoneAward(milestone.name, result.amount))
    return awarded
