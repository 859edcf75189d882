# src/yogic_ledger/models/__init__.py
"""SQLAlchemy models for the Yogic Ledger service."""

from .audit import SecurityEvent
from .ledger import BonusLogEntry, DailyAccrualRecord, Transaction, WalletBalance
from .otp import OtpChallenge
from .rate_limit import RateLimitRecord
from .referral import REFERRAL_STATUS_COMPLETED, REFERRAL_STATUS_PENDING, ReferralRelationship
from .user import UserAccount, UserPhaseState

__all__ = [
    "SecurityEvent",
    "BonusLogEntry", "DailyAccrualRecord", "Transaction", "WalletBalance",
    "OtpChallenge",
    "RateLimitRecord",
    "REFERRAL_STATUS_COMPLETED", "REFERRAL_STATUS_PENDING", "ReferralRelationship",
    "UserAccount", "UserPhaseState",
]
