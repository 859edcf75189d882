"""Wallet, bonus and history schemas."""

from __future__ import annotations

import datetime as dt
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class WalletResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    total_balance: int
    total_earned: int
    total_redeemed: int


class DailyRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    steps_accrued: int
    coins_accrued: int


class BonusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    bonus_type: str
    amount_paisa: int
    description: str
    date_earned: dt.date


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    amount: int
    description: str
    metadata: dict[str, Any] = Field(validation_alias="metadata_")
    created_at: dt.datetime


class RewardSummaryResponse(BaseModel):
    wallet: WalletResponse
    today: DailyRecordResponse | None
    recent_bonuses: list[BonusResponse]
    multiplier: float
    phase: dict[str, Any]


class StreakBonusRequest(BaseModel):
    """Issued by the daily check-in process."""

    user_id: str
    streak_days: int = Field(..., ge=0)


class StreakBonusResponse(BaseModel):
    awarded: bool
    amount: int


class RedeemRequest(BaseModel):
    amount: int = Field(..., gt=0)
    description: str = Field("Redemption", max_length=200)
    reference: str | None = Field(None, max_length=64)


class SocialEngagementRequest(BaseModel):
    engagement_type: Literal["like", "comment", "share", "post"]
    target_id: str = Field(..., min_length=1, max_length=64)


class BonusAwardResponse(BaseModel):
    awarded: bool
    amount: int


class PhaseResponse(BaseModel):
    tier: int
    name: str
    rate_numerator: int
    step_threshold: int
    multiplier: float
