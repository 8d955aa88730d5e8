"""Pydantic schemas for OTP verification, resend and status flows."""

from typing import Any

from otp_auth.schemas.common import CamelModel


class OTPVerify(CamelModel):
    """Payload used when submitting a received OTP code for validation.

    Both fields are loosely typed so the service can answer with its own
    messages ("otp is required", "invalid otp", "invalid reset").
    """

    otp: Any = None
    reset: Any = None


class OTPPayload(CamelModel):
    email: str
    phone: str | None = None
    expiry_time: int


class OTPResponse(CamelModel):
    success: bool = True
    otp: OTPPayload


class OTPStatusPayload(CamelModel):
    expiry_time: int
    message: str
    attempts: int


class OTPStatusResponse(CamelModel):
    success: bool = True
    otp: OTPStatusPayload
