"""Referral schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ReferralCreate(BaseModel):
    """Attach the authenticated user to the friend who invited them."""

    referrer_id: str = Field(..., min_length=1, max_length=36)


class ReferralResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    referrer_id: str
    referee_id: str
    status: str
    created_at: datetime
    completed_at: datetime | None = None


class RefereeActivityRequest(BaseModel):
    """Issued by internal jobs that observe a referee's lifetime steps."""

    referee_id: str
    lifetime_steps: int = Field(..., ge=0)


class RefereeActivityResponse(BaseModel):
    unlocked: bool


class ReferralOverview(BaseModel):
    referred_by: ReferralResponse | None = None
    referrals: list[ReferralResponse] = Field(default_factory=list)
