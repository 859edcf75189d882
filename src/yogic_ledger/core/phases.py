# src/yogic_ledger/core/phases.py
"""The nine-tier phase schedule and the multiplier derived from it.

Tiers are entered by cumulative lifetime steps. The multiplier applied to
accruals grows by ten percent per tier above the first; ``rate_numerator``
(paisa per 100 steps) is the figure shown to users on the phase journey.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Final


@dataclass(frozen=True)
class PhaseTier:
    """One immutable row of the phase schedule."""

    tier: int
    name: str
    rate_numerator: int
    step_threshold: int


PHASE_TABLE: Final[tuple[PhaseTier, ...]] = (
    PhaseTier(1, "Paisa Phase", 1, 0),
    PhaseTier(2, "Coin Phase", 2, 200_000),
    PhaseTier(3, "Token Phase", 3, 500_000),
    PhaseTier(4, "Gem Phase", 5, 900_000),
    PhaseTier(5, "Diamond Phase", 7, 1_400_000),
    PhaseTier(6, "Crown Phase", 10, 2_000_000),
    PhaseTier(7, "Emperor Phase", 15, 2_800_000),
    PhaseTier(8, "Legend Phase", 20, 3_800_000),
    PhaseTier(9, "Immortal Phase", 30, 5_000_000),
)

MIN_TIER: Final[int] = PHASE_TABLE[0].tier
MAX_TIER: Final[int] = PHASE_TABLE[-1].tier


def get_tier(tier: int) -> PhaseTier:
    """Return the schedule row for ``tier``."""
    if not MIN_TIER <= tier <= MAX_TIER:
        raise ValueError(f"Tier must be between {MIN_TIER} and {MAX_TIER}, got {tier}")
    return PHASE_TABLE[tier - 1]


def rate_for_tier(tier: int) -> Decimal:
    """Return the accrual multiplier for ``tier`` (1.0, 1.1, ... 1.8)."""
    get_tier(tier)
    return Decimal(10 + tier - 1) / Decimal(10)


def advance_tier(current_tier: int, lifetime_steps: int) -> int:
    """Advance one tier at a time while the next threshold has been crossed.

    The tier never decreases, even if ``lifetime_steps`` sits below the
    current tier's own threshold.
    """
    tier = max(current_tier, MIN_TIER)
    while tier < MAX_TIER and lifetime_steps >= PHASE_TABLE[tier].step_threshold:
        tier += 1
    return tier


def phase_progress(current_tier: int, lifetime_steps: int) -> dict[str, object]:
    """Describe progress towards the next tier for display surfaces."""
    phase = get_tier(current_tier)
    if current_tier >= MAX_TIER:
        return {
            "tier": phase.tier,
            "name": phase.name,
            "rate_numerator": phase.rate_numerator,
            "next_tier": None,
            "steps_to_next": 0,
            "progress_percentage": 100.0,
        }
    upcoming = PHASE_TABLE[current_tier]
    span = upcoming.step_threshold - phase.step_threshold
    done = max(0, lifetime_steps - phase.step_threshold)
    return {
        "tier": phase.tier,
        "name": phase.name,
        "rate_numerator": phase.rate_numerator,
        "next_tier": upcoming.tier,
        "steps_to_next": max(0, upcoming.step_threshold - lifetime_steps),
        "progress_percentage": round(min(done / span * 100, 100.0), 2),
    }
