"""Shared API dependencies for authentication and services."""

import hmac
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from yogic_ledger.core.settings import settings
from yogic_ledger.db.session import get_db
from yogic_ledger.models import UserAccount
from yogic_ledger.services.activity_validator import ActivityValidator
from yogic_ledger.services.cooldown import CooldownService
from yogic_ledger.services.ledger import RewardLedger
from yogic_ledger.services.messaging import MessagingTransport, get_messaging_transport
from yogic_ledger.services.otp import OtpService
from yogic_ledger.services.rate_limiter import RateLimiter

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
    db: SessionDep,
) -> UserAccount:
    """Get the current authenticated user from the JWT issued at OTP verification.

    Raises:
        HTTPException: If the token is invalid or the user no longer exists.
    """
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    user = db.get(UserAccount, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user


def require_internal_key(
    x_internal_key: Annotated[str | None, Header(alias="X-Internal-Key")] = None,
) -> None:
    """Guard endpoints reserved for trusted internal jobs."""
    expected = settings.internal_api_key
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Internal API is not configured",
        )
    if x_internal_key is None or not hmac.compare_digest(x_internal_key, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid internal key",
        )


def get_ledger(db: SessionDep) -> RewardLedger:
    return RewardLedger(db)


def get_rate_limiter(db: SessionDep) -> RateLimiter:
    return RateLimiter(db)


def get_activity_validator() -> ActivityValidator:
    return ActivityValidator()


def get_messaging_transport_dep() -> MessagingTransport:
    """Return the configured messaging transport."""
    return get_messaging_transport()


@lru_cache(maxsize=1)
def get_cooldown_service() -> CooldownService:
    """Return the shared cooldown service."""
    return CooldownService()


def get_otp_service(
    db: SessionDep,
    transport: Annotated[MessagingTransport, Depends(get_messaging_transport_dep)],
    cooldowns: Annotated[CooldownService, Depends(get_cooldown_service)],
) -> OtpService:
    return OtpService(db, transport=transport, cooldowns=cooldowns)


CurrentUserDep = Annotated[UserAccount, Depends(get_current_user)]
LedgerDep = Annotated[RewardLedger, Depends(get_ledger)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter)]
ValidatorDep = Annotated[ActivityValidator, Depends(get_activity_validator)]
OtpServiceDep = Annotated[OtpService, Depends(get_otp_service)]
InternalKeyDep = Depends(require_internal_key)
