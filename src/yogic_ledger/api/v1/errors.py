"""Translation of ledger exceptions into HTTP responses."""

from __future__ import annotations

import math

from fastapi import HTTPException, status

from yogic_ledger.db.time import utcnow
from yogic_ledger.services.errors import (
    ActivityValidationError,
    DailyStepLimitError,
    ExpiredOrConsumedChallengeError,
    InsufficientBalanceError,
    InvalidOtpError,
    LedgerError,
    MessagingError,
    PermanentBlockError,
    PersistenceConflictError,
    RateLimitExceededError,
    ReferralError,
)

_STATUS_CODES: tuple[tuple[type[LedgerError], int], ...] = (
    (PermanentBlockError, status.HTTP_403_FORBIDDEN),
    (PersistenceConflictError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (DailyStepLimitError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ExpiredOrConsumedChallengeError, status.HTTP_410_GONE),
    (InvalidOtpError, status.HTTP_401_UNAUTHORIZED),
    (InsufficientBalanceError, status.HTTP_409_CONFLICT),
    (ReferralError, status.HTTP_409_CONFLICT),
    (MessagingError, status.HTTP_502_BAD_GATEWAY),
)


def to_http_exception(err: LedgerError) -> HTTPException:
    """Map a service exception onto the status code clients rely on."""
    if isinstance(err, RateLimitExceededError):
        wait = max(1, math.ceil((err.retry_after - utcnow()).total_seconds()))
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "message": str(err),
                "reason": err.reason,
                "next_allowed_at": err.retry_after.isoformat(),
            },
            headers={"Retry-After": str(wait)},
        )
    if isinstance(err, ActivityValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(err), "reason": err.reason, "confidence": err.confidence},
        )
    for error_type, status_code in _STATUS_CODES:
        if isinstance(err, error_type):
            return HTTPException(status_code=status_code, detail=str(err))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Ledger operation failed",
    )
