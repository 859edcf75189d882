# src/yogic_ledger/services/__init__.py
"""Business logic services for the Yogic Ledger engine."""

from .activity_validator import ActivitySample, ActivityValidator, ValidationResult
from .cooldown import CooldownService
from .ledger import AccrualResult, BonusResult, RewardLedger
from .otp import OtpService
from .rate_limiter import RateLimitDecision, RateLimiter, RateLimitPolicy

__all__ = [
    "ActivitySample",
    "ActivityValidator",
    "ValidationResult",
    "CooldownService",
    "AccrualResult",
    "BonusResult",
    "RewardLedger",
    "OtpService",
    "RateLimitDecision",
    "RateLimiter",
    "RateLimitPolicy",
]
