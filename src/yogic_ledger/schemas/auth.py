"""OTP authentication schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class OtpGenerateRequest(BaseModel):
    """Request a code for a mobile number."""

    mobile_number: str = Field(..., min_length=8, max_length=20)


class OtpGenerateResponse(BaseModel):
    success: bool = True
    message: str = "OTP sent via WhatsApp"
    attempts_remaining: int


class OtpVerifyRequest(BaseModel):
    """Submit a received code."""

    mobile_number: str = Field(..., min_length=8, max_length=20)
    code: str = Field(..., min_length=1, max_length=12)


class OtpVerifyResponse(BaseModel):
    success: bool = True
    user_id: str
    access_token: str
    token_type: str = "bearer"
