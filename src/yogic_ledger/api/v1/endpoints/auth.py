# src/yogic_ledger/api/v1/endpoints/auth.py
"""WhatsApp OTP authentication endpoints."""

from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, HTTPException, status
from jose import jwt

from yogic_ledger.api.v1.dependencies import OtpServiceDep
from yogic_ledger.api.v1.errors import to_http_exception
from yogic_ledger.core.settings import settings
from yogic_ledger.schemas.auth import (
    OtpGenerateRequest,
    OtpGenerateResponse,
    OtpVerifyRequest,
    OtpVerifyResponse,
)
from yogic_ledger.services.errors import LedgerError

router = APIRouter(prefix="/auth", tags=["auth"])


def create_access_token(user_id: str, extra_claims: dict[str, str] | None = None) -> str:
    """Create JWT access token for user authentication."""
    to_encode: dict[str, object] = {"sub": user_id}
    if extra_claims:
        to_encode.update(extra_claims)
    expire = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode["exp"] = expire
    encoded_jwt: str = jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )
    return encoded_jwt


@router.post(
    "/otp/generate",
    summary="Send a one-time code over WhatsApp",
    response_model=OtpGenerateResponse,
)
def generate_otp(payload: OtpGenerateRequest, otp_service: OtpServiceDep) -> OtpGenerateResponse:
    """Issue a fresh OTP, subject to the resend interval and rate limits."""
    try:
        issue = otp_service.generate_otp(payload.mobile_number)
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(err),
        ) from err
    except LedgerError as err:
        raise to_http_exception(err) from err
    return OtpGenerateResponse(attempts_remaining=issue.attempts_remaining)


@router.post(
    "/otp/verify",
    summary="Exchange a one-time code for an access token",
    response_model=OtpVerifyResponse,
)
def verify_otp(payload: OtpVerifyRequest, otp_service: OtpServiceDep) -> OtpVerifyResponse:
    """Consume the live OTP challenge and return a bearer token."""
    try:
        user_id = otp_service.verify_otp(payload.mobile_number, payload.code)
    except ValueError as err:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(err),
        ) from err
    except LedgerError as err:
        raise to_http_exception(err) from err
    return OtpVerifyResponse(user_id=user_id, access_token=create_access_token(user_id))
