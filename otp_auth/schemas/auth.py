"""Pydantic schemas for authentication-related payloads and responses.

Request fields are optional on purpose: required-field and shape checks are
done by `services.validation.check_credentials`, which produces the
client-facing messages.
"""

from typing import Any, Literal

from pydantic import ConfigDict

from otp_auth.schemas.common import CamelModel


class UserCreate(CamelModel):
    """Payload for registration requests."""

    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    password: str | None = None


class UserLogin(CamelModel):
    """Payload for login attempts, by email or phone."""

    email: str | None = None
    phone: str | None = None
    password: str | None = None


class ForgotPassword(CamelModel):
    email: str | None = None
    phone: str | None = None


class PasswordUpdate(CamelModel):
    password: str | None = None


class UserResponse(CamelModel):
    """Response body representing a user record."""

    id: int
    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    image: str | None = None
    role: str
    status: str

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(CamelModel):
    """User plus the bearer token also set as the auth cookie."""

    success: bool = True
    user: UserResponse
    token: str


class DeleteAccount(CamelModel):
    reason: Any = None


class StatusChange(CamelModel):
    """Payload for admin-driven account status changes."""

    status: Literal["active", "inactive"] | None = None
