"""Authentication domain logic orchestrating users, OTP, sessions and JWT issuance."""

import html
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from otp_auth.core.errors import ForbiddenError, NotFoundError, RequestError
from otp_auth.core.security import create_access_token, get_password_hash, verify_password
from otp_auth.db.models.user import ROLE_USER, STATUS_ACTIVE, DeleteAccountRequest, User
from otp_auth.schemas.auth import ForgotPassword, UserCreate, UserLogin
from otp_auth.services.email import Mailer, MailMessage
from otp_auth.services.otp import REGISTRATION_CONTENT, RESET_CONTENT, IssuedOtp, OTPService, OtpStatus
from otp_auth.services.pending import PendingCredentials, PendingSession, normalize_phone
from otp_auth.services.validation import has_text, is_present

logger = logging.getLogger(__name__)

INACTIVE_MESSAGE = "user account is currently inactive. please contact support for assistance"
DELETED_MESSAGE = (
    "your account has been permanently deleted. "
    "all associated data will be removed from our servers within 30 working days"
)


@dataclass
class AuthenticatedUser:
    user: User
    token: str


def issue_token(user: User) -> AuthenticatedUser:
    return AuthenticatedUser(user=user, token=create_access_token(subject=str(user.id)))


class AuthService:
    """High-level service used by API routes; holds DB session, OTP service and mailer."""

    def __init__(self, session: AsyncSession, otp_service: OTPService, mailer: Mailer):
        """Inject dependencies so the service can hit the DB, the OTP store and SMTP."""
        self.session = session
        self.otp_service = otp_service
        self.mailer = mailer

    async def _get_user_by_email(self, email: str) -> User | None:
        """Fetch a live (not soft-deleted) user by email."""
        return await self.session.scalar(select(User).where(User.email == email, User.is_deleted.is_(False)))

    async def _get_user_by_phone(self, phone: str) -> User | None:
        return await self.session.scalar(select(User).where(User.phone == phone, User.is_deleted.is_(False)))

    async def _resolve_user(self, email: str | None, phone: str | None) -> User:
        """Look a user up by email, else by phone, with the matching error messages."""
        if has_text(email):
            user = await self._get_user_by_email(email)
            if user is None:
                raise RequestError("email doesn't exist")
            return user
        if has_text(phone):
            user = await self._get_user_by_phone(phone)
            if user is None:
                raise RequestError("phone number doesn't exist")
            return user
        raise RequestError("email or phone number is required")

    @staticmethod
    def _ensure_usable(user: User) -> None:
        if user.is_deleted:
            raise ForbiddenError(DELETED_MESSAGE)
        if not user.is_active:
            raise ForbiddenError(INACTIVE_MESSAGE)

    async def _require_pending(self, pending: PendingSession) -> PendingCredentials:
        credentials = await pending.load()
        if credentials is None:
            raise RequestError("session expired")
        return credentials

    async def register(self, payload: UserCreate, pending: PendingSession) -> IssuedOtp:
        """Hold the registration details in the session and send an OTP.

        No account exists until `verify` succeeds.
        """
        if await self._get_user_by_email(payload.email) is not None:
            raise RequestError("email already exist")
        if has_text(payload.phone) and await self._get_user_by_phone(payload.phone) is not None:
            raise RequestError("phone already exist")

        phone = normalize_phone(payload.phone)
        # a rate-limited issue must leave the session as it was
        issued = await self.otp_service.issue(
            first_name=payload.first_name, email=payload.email, phone=phone, content=REGISTRATION_CONTENT
        )
        await pending.save(
            PendingCredentials(
                first_name=payload.first_name,
                last_name=payload.last_name,
                email=payload.email,
                phone=phone,
                password_hash=get_password_hash(payload.password),
                purpose="register",
            )
        )
        return issued

    async def resend_otp(self, reset: bool, pending: PendingSession) -> IssuedOtp:
        """Re-issue a code for the session, in registration or reset context.

        Registration requires the email/phone to be free; reset requires them
        to belong to an account.
        """
        credentials = await self._require_pending(pending)

        email_taken = await self._get_user_by_email(credentials.email) is not None
        if email_taken and not reset:
            raise RequestError("email already exist")
        if not email_taken and reset:
            raise RequestError("email doesn't exist")

        if is_present(credentials.phone):
            phone_taken = await self._get_user_by_phone(credentials.phone) is not None
            if phone_taken and not reset:
                raise RequestError("phone already exist")
            if not phone_taken and reset:
                raise RequestError("phone number doesn't exist")

        return await self.otp_service.issue(
            first_name=credentials.first_name,
            email=credentials.email,
            phone=credentials.phone,
            content=RESET_CONTENT if reset else REGISTRATION_CONTENT,
        )

    async def otp_status(self, pending: PendingSession) -> OtpStatus:
        credentials = await self._require_pending(pending)
        return await self.otp_service.status(credentials.email)

    async def verify(self, otp: Any, reset: Any, pending: PendingSession) -> AuthenticatedUser | None:
        """Confirm the session's OTP.

        In reset mode this only unlocks `update_password` and returns None.
        Otherwise the pending registration becomes a user account.
        """
        if otp is None:
            raise RequestError("otp is required")
        if isinstance(otp, bool) or not isinstance(otp, (int, float)):
            raise RequestError("invalid otp")
        if reset is not None and not isinstance(reset, bool):
            raise RequestError("invalid reset")

        credentials = await self._require_pending(pending)
        if isinstance(otp, float) and not otp.is_integer():
            raise RequestError("invalid passcode")
        await self.otp_service.verify(code=int(otp), email=credentials.email, phone=credentials.phone)

        if reset:
            await pending.save(credentials.model_copy(update={"verified": True}))
            return None

        if await self._get_user_by_email(credentials.email) is not None:
            raise RequestError("user already exists")
        if credentials.password_hash is None:
            raise RequestError("session expired")

        user = User(
            first_name=credentials.first_name.capitalize(),
            last_name=credentials.last_name.capitalize(),
            email=credentials.email,
            phone=credentials.phone,
            hashed_password=credentials.password_hash,
            role=ROLE_USER,
            status=STATUS_ACTIVE,
            is_deleted=False,
        )
        self.session.add(user)
        await self.session.commit()
        await self.session.refresh(user)
        await pending.clear()
        logger.info("Registered user %s", user.id)
        return issue_token(user)

    async def login(self, payload: UserLogin) -> AuthenticatedUser:
        """Check credentials of a live account and mint an access token."""
        user = await self._resolve_user(payload.email, payload.phone)
        if not has_text(payload.password):
            raise RequestError("password is required")
        if not verify_password(payload.password, user.hashed_password):
            raise RequestError("invalid password")
        self._ensure_usable(user)
        return issue_token(user)

    async def forgot_password(self, payload: ForgotPassword, pending: PendingSession) -> IssuedOtp:
        user = await self._resolve_user(payload.email, payload.phone)
        self._ensure_usable(user)

        issued = await self.otp_service.issue(
            first_name=user.first_name, email=user.email, phone=user.phone, content=RESET_CONTENT
        )
        await pending.save(
            PendingCredentials(
                first_name=user.first_name,
                last_name=user.last_name,
                email=user.email,
                phone=user.phone,
                purpose="reset",
            )
        )
        return issued

    async def update_password(self, password: str | None, pending: PendingSession) -> None:
        """Set a new password once the reset OTP has been verified."""
        credentials = await self._require_pending(pending)
        if not credentials.verified:
            raise RequestError("otp verification required")

        user = await self._resolve_user(credentials.email, credentials.phone)
        self._ensure_usable(user)
        if not has_text(password):
            raise RequestError("password is required")

        user.hashed_password = get_password_hash(password)
        await self.session.commit()
        await self.mailer.send(
            MailMessage(
                first_name=user.first_name,
                email=user.email,
                subject="Password Updated",
                html_body="<p>Your password has been successfully updated.</p>",
            )
        )
        await pending.clear()
        logger.info("Password updated for user %s", user.id)

    async def reauthenticate(self, user: User) -> AuthenticatedUser:
        return issue_token(user)

    async def delete_account(self, user: User, reason: Any) -> None:
        """Record the request and soft-delete the account."""
        if reason is None:
            raise RequestError("reason is required")
        if not isinstance(reason, str):
            raise RequestError("invalid reason")

        existing = await self.session.scalar(
            select(DeleteAccountRequest).where(DeleteAccountRequest.user_id == user.id)
        )
        if existing is not None:
            raise ForbiddenError("delete account request already submitted")

        self.session.add(DeleteAccountRequest(user_id=user.id, reason=reason))
        user.is_deleted = True
        await self.session.commit()
        await self.mailer.send(
            MailMessage(
                first_name=user.first_name,
                email=user.email,
                subject="Account Permanently Deleted",
                html_body=(
                    "<p>Your account has been <strong>permanently deleted</strong>.</p>"
                    f"<p><strong>Reason for Deletion:</strong> {html.escape(reason)}</p>"
                    "<p>Your account deletion will be processed within <strong>30 working days</strong>.</p>"
                ),
            )
        )
        logger.info("Soft-deleted user %s", user.id)

    async def change_status(self, user_id: int, status: str | None) -> None:
        if status is None:
            raise RequestError("status is required")
        user = await self.session.scalar(select(User).where(User.id == user_id, User.is_deleted.is_(False)))
        if user is None:
            raise NotFoundError("user not found")
        user.status = status
        await self.session.commit()
