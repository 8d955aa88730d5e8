"""Dependency providers used by FastAPI endpoints.

These helpers expose database sessions, the Redis client, pending sessions,
the authenticated user and composed services through FastAPI's dependency
injection system so route handlers remain thin.
"""

from typing import AsyncGenerator, Callable

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from redis.asyncio import Redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from otp_auth.core.config import settings
from otp_auth.core.errors import ForbiddenError, NotFoundError, UnauthorizedError
from otp_auth.core.security import decode_access_token, sign_session_id, unsign_session_id
from otp_auth.db.models.user import User
from otp_auth.db.session import get_session
from otp_auth.services.auth import DELETED_MESSAGE, INACTIVE_MESSAGE, AuthService
from otp_auth.services.email import Mailer
from otp_auth.services.otp import Clock, OTPService, utcnow
from otp_auth.services.pending import PendingSession, PendingSessionStore, get_redis_client
from otp_auth.services.phone import PhoneVerificationOracle

bearer_scheme = HTTPBearer(auto_error=False)

_mailer = Mailer()
_phone_oracle = PhoneVerificationOracle()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async SQLAlchemy session tied to the shared engine."""

    async for session in get_session():
        yield session


def get_redis() -> Redis:
    """Return the singleton Redis client used for pending sessions."""
    return get_redis_client()


def get_mailer() -> Mailer:
    return _mailer


def get_phone_oracle() -> PhoneVerificationOracle:
    return _phone_oracle


def get_clock() -> Clock:
    return utcnow


def get_otp_service(
    session: AsyncSession = Depends(get_db_session),
    mailer: Mailer = Depends(get_mailer),
    phone_oracle: PhoneVerificationOracle = Depends(get_phone_oracle),
    clock: Clock = Depends(get_clock),
) -> OTPService:
    return OTPService(
        session=session,
        mailer=mailer,
        phone_oracle=phone_oracle,
        clock=clock,
        missing_record_passes=settings.OTP_MISSING_RECORD_PASSES,
    )


def get_auth_service(
    session: AsyncSession = Depends(get_db_session),
    otp_service: OTPService = Depends(get_otp_service),
    mailer: Mailer = Depends(get_mailer),
) -> AuthService:
    """Assemble AuthService with its database session, OTP service and mailer."""
    return AuthService(session=session, otp_service=otp_service, mailer=mailer)


def get_pending_session(request: Request, redis: Redis = Depends(get_redis)) -> PendingSession:
    """Resolve the caller's pending session from the signed session cookie."""
    store = PendingSessionStore(redis, ttl_seconds=settings.PENDING_SESSION_TTL_SECONDS)
    cookie = request.cookies.get(settings.SESSION_COOKIE_NAME)
    session_id = unsign_session_id(cookie, max_age=settings.PENDING_SESSION_TTL_SECONDS) if cookie else None
    return PendingSession(store, session_id)


def persist_session_cookie(response: Response, pending: PendingSession) -> None:
    """Write back or drop the session cookie after the handler touched the session."""
    if not pending.dirty:
        return
    if pending.cleared or pending.session_id is None:
        response.delete_cookie(settings.SESSION_COOKIE_NAME)
        return
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        sign_session_id(pending.session_id),
        max_age=settings.PENDING_SESSION_TTL_SECONDS,
        httponly=True,
        samesite="lax",
        secure=settings.COOKIE_SECURE,
    )


def set_token_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.TOKEN_COOKIE_NAME,
        token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        samesite="lax",
        secure=settings.COOKIE_SECURE,
    )


def clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(settings.TOKEN_COOKIE_NAME)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_db_session),
) -> User:
    """Resolve the user behind the auth cookie (or a Bearer header)."""
    token = request.cookies.get(settings.TOKEN_COOKIE_NAME) or (credentials.credentials if credentials else None)
    if not token:
        raise UnauthorizedError("please login to continue")

    subject = decode_access_token(token)
    if subject is None or not subject.isdigit():
        raise UnauthorizedError("invalid or expired token")

    user = await session.scalar(select(User).where(User.id == int(subject)))
    if user is None:
        raise NotFoundError("user not found")
    if user.is_deleted:
        raise ForbiddenError(DELETED_MESSAGE)
    return user


async def get_active_user(user: User = Depends(get_current_user)) -> User:
    if not user.is_active:
        raise ForbiddenError(INACTIVE_MESSAGE)
    return user


def require_roles(*roles: str) -> Callable[..., User]:
    """Build a dependency that admits only users holding one of `roles`."""

    async def _check(user: User = Depends(get_active_user)) -> User:
        if user.role not in roles:
            raise ForbiddenError(f"{user.role} cannot access this resource")
        return user

    return _check
