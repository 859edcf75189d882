# src/yogic_ledger/schemas/__init__.py
"""
Pydantic schemas for API request/response models and ledger event payloads.
"""

from .activity import ActivityResult, ActivitySubmission, MilestoneAwardResponse
from .auth import OtpGenerateRequest, OtpGenerateResponse, OtpVerifyRequest, OtpVerifyResponse
from .events import (
    AccrualEvent,
    LedgerEvent,
    MilestoneBonusEvent,
    RedemptionEvent,
    ReferralBonusEvent,
    SocialEngagementEvent,
    StreakBonusEvent,
)
from .referral import ReferralCreate, ReferralOverview, ReferralResponse

__all__ = [
    "ActivityResult", "ActivitySubmission", "MilestoneAwardResponse",
    "OtpGenerateRequest", "OtpGenerateResponse", "OtpVerifyRequest", "OtpVerifyResponse",
    "AccrualEvent", "LedgerEvent", "MilestoneBonusEvent", "RedemptionEvent",
    "ReferralBonusEvent", "SocialEngagementEvent", "StreakBonusEvent",
    "ReferralCreate", "ReferralOverview", "ReferralResponse",
]
