"""Exceptions raised by the ledger and abuse-guard services."""

from __future__ import annotations

from datetime import datetime


class LedgerError(RuntimeError):
    """Base exception for every engine failure surfaced to callers."""


class ActivityValidationError(LedgerError):
    """Raised when an activity sample is physically implausible.

    The sample is dropped with no currency effect.
    """

    def __init__(self, reason: str, confidence: str) -> None:
        super().__init__(f"Activity rejected: {reason}")
        self.reason = reason
        self.confidence = confidence


class DailyStepLimitError(LedgerError):
    """Raised inside an accrual when it would push the day past the step ceiling.

    The accrual rolls back as a whole.
    """

    def __init__(self, user_id: str, steps_today: int, steps: int, ceiling: int) -> None:
        super().__init__(
            f"Accruing {steps} steps for {user_id} would exceed the daily ceiling "
            f"({steps_today}/{ceiling} already accrued)"
        )
        self.user_id = user_id
        self.steps_today = steps_today
        self.steps = steps
        self.ceiling = ceiling


class RateLimitExceededError(LedgerError):
    """Raised when a guarded operation is temporarily blocked.

    Retryable by the client once ``retry_after`` has passed.
    """

    def __init__(self, operation_type: str, retry_after: datetime, reason: str) -> None:
        super().__init__(f"Rate limit exceeded for {operation_type}: {reason}")
        self.operation_type = operation_type
        self.retry_after = retry_after
        self.reason = reason


class PermanentBlockError(LedgerError):
    """Raised when a subject is permanently blocked; only support can lift it."""

    def __init__(self, operation_type: str) -> None:
        super().__init__(f"Permanently blocked from {operation_type}. Contact support.")
        self.operation_type = operation_type


class PersistenceConflictError(LedgerError):
    """Raised when a ledger write keeps losing concurrent races."""


class DuplicateBonusError(LedgerError):
    """Raised internally when a bonus dedup key already exists."""


class InsufficientBalanceError(LedgerError):
    """Raised when a redemption exceeds the available balance."""


class ReferralError(LedgerError):
    """Raised when a referral cannot be registered."""


class OtpError(LedgerError):
    """Base class for OTP verification failures."""


class InvalidOtpError(OtpError):
    """Raised when the submitted code does not match."""


class ExpiredOrConsumedChallengeError(OtpError):
    """Raised when no live challenge exists; the client should request a resend."""


class MessagingError(LedgerError):
    """Raised when the messaging transport fails to deliver a code."""
