from otp_auth.schemas.auth import (
    AuthResponse,
    DeleteAccount,
    ForgotPassword,
    PasswordUpdate,
    StatusChange,
    UserCreate,
    UserLogin,
    UserResponse,
)
from otp_auth.schemas.common import Message
from otp_auth.schemas.otp import OTPPayload, OTPResponse, OTPStatusPayload, OTPStatusResponse, OTPVerify

__all__ = [
    "AuthResponse",
    "DeleteAccount",
    "ForgotPassword",
    "Message",
    "OTPPayload",
    "OTPResponse",
    "OTPStatusPayload",
    "OTPStatusResponse",
    "OTPVerify",
    "PasswordUpdate",
    "StatusChange",
    "UserCreate",
    "UserLogin",
    "UserResponse",
]
