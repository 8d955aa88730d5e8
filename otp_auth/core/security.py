"""Password hashing, JWT access tokens and signed session identifiers."""

from datetime import datetime, timedelta, timezone
from typing import Any

from itsdangerous import BadSignature, URLSafeTimedSerializer
from jose import JWTError, jwt
from passlib.context import CryptContext

from otp_auth.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SESSION_SALT = "pending-session"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(subject: str, expires_delta: timedelta | None = None) -> str:
    """Encode a signed JWT whose `sub` claim identifies the user."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode: dict[str, Any] = {"sub": subject, "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> str | None:
    """Return the `sub` claim of a valid token, or None."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    subject = payload.get("sub")
    return str(subject) if subject is not None else None


def _session_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.SECRET_KEY, salt=SESSION_SALT)


def sign_session_id(session_id: str) -> str:
    return _session_serializer().dumps(session_id)


def unsign_session_id(value: str, max_age: int) -> str | None:
    """Return the session id carried by a cookie value, or None if tampered/expired."""
    try:
        session_id = _session_serializer().loads(value, max_age=max_age)
    except BadSignature:
        return None
    return session_id if isinstance(session_id, str) else None
