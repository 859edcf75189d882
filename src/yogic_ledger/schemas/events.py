"""Tagged payloads stored in the transaction log.

Each ledger movement carries exactly one of these variants; ``kind`` doubles
as the transaction ``type`` column.
"""

from __future__ import annotations

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class _LedgerEvent(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class AccrualEvent(_LedgerEvent):
    """Steps converted to coins."""

    kind: Literal["accrual"] = "accrual"
    steps: int = Field(..., ge=0)
    multiplier: float
    source: str
    tier: int = Field(..., ge=1, le=9)
    # Device readings kept for pattern scoring of later submissions.
    speed_kmh: float | None = None
    gps_accuracy_meters: float | None = None


class StreakBonusEvent(_LedgerEvent):
    """Weekly streak payout."""

    kind: Literal["streak_bonus"] = "streak_bonus"
    streak_days: int = Field(..., gt=0)


class MilestoneBonusEvent(_LedgerEvent):
    """One-time lifetime step milestone."""

    kind: Literal["milestone"] = "milestone"
    milestone_name: str
    milestone_steps: int = Field(..., gt=0)


class ReferralBonusEvent(_LedgerEvent):
    """One side of a completed referral."""

    kind: Literal["referral_bonus"] = "referral_bonus"
    role: Literal["referrer", "referee"]
    referrer_id: str
    referee_id: str


class SocialEngagementEvent(_LedgerEvent):
    """Small reward for community engagement."""

    kind: Literal["social_engagement"] = "social_engagement"
    engagement_type: Literal["like", "comment", "share", "post"]
    target_id: str


class RedemptionEvent(_LedgerEvent):
    """Coins spent from the balance."""

    kind: Literal["redemption"] = "redemption"
    reference: str | None = None


LedgerEvent = Annotated[
    AccrualEvent
    | StreakBonusEvent
    | MilestoneBonusEvent
    | ReferralBonusEvent
    | SocialEngagementEvent
    | RedemptionEvent,
    Field(discriminator="kind"),
]

BonusEvent = (
    StreakBonusEvent | MilestoneBonusEvent | ReferralBonusEvent | SocialEngagementEvent
)

_EVENT_ADAPTER: TypeAdapter[LedgerEvent] = TypeAdapter(LedgerEvent)


def parse_event(payload: dict[str, object]) -> LedgerEvent:
    """Rebuild a typed event from a stored transaction payload."""
    return _EVENT_ADAPTER.validate_python(payload)
