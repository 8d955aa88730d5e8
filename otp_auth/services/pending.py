"""Server-held pending credentials, keyed by a signed session id.

Registration and password reset span two requests (initiate, then verify).
The details submitted in between live in Redis under ``pending:<sid>``; the
client only holds the signed ``sid`` cookie.
"""

import secrets
from typing import Literal, Optional

from pydantic import BaseModel, ValidationError
from redis.asyncio import Redis

from otp_auth.core.config import settings

MIN_PHONE_LENGTH = 6

_redis_client: Optional[Redis] = None


def get_redis_client() -> Redis:
    """Return a lazily initialized Redis client shared across the service."""
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_client


async def close_redis_client() -> None:
    """Close the shared Redis client; invoked during application shutdown."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None


def _pending_key(session_id: str) -> str:
    return f"pending:{session_id}"


def normalize_phone(phone: str | None) -> str | None:
    """Drop phone values too short to be a real number."""
    if phone is None or len(phone.strip()) < MIN_PHONE_LENGTH:
        return None
    return phone


class PendingCredentials(BaseModel):
    """Details awaiting OTP confirmation for a single client session."""

    first_name: str
    last_name: str
    email: str
    phone: str | None = None
    # registration only; the plaintext password never leaves the request
    password_hash: str | None = None
    purpose: Literal["register", "reset"] = "register"
    verified: bool = False


class PendingSessionStore:
    """Redis persistence for `PendingCredentials` with a sliding TTL."""

    def __init__(self, redis_client: Redis, ttl_seconds: int = settings.PENDING_SESSION_TTL_SECONDS):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds

    async def load(self, session_id: str) -> PendingCredentials | None:
        raw = await self.redis.get(_pending_key(session_id))
        if raw is None:
            return None
        try:
            return PendingCredentials.model_validate_json(raw)
        except ValidationError:
            await self.redis.delete(_pending_key(session_id))
            return None

    async def save(self, session_id: str, credentials: PendingCredentials) -> None:
        await self.redis.set(_pending_key(session_id), credentials.model_dump_json(), ex=self.ttl_seconds)

    async def discard(self, session_id: str) -> None:
        await self.redis.delete(_pending_key(session_id))


class PendingSession:
    """Request-scoped handle on one client's pending credentials.

    `session_id` is None until something is saved for a client that arrived
    without a valid cookie. `dirty` tells the route whether the cookie must be
    (re)written or removed.
    """

    def __init__(self, store: PendingSessionStore, session_id: str | None = None):
        self.store = store
        self.session_id = session_id
        self.dirty = False
        self.cleared = False

    async def load(self) -> PendingCredentials | None:
        if self.session_id is None:
            return None
        return await self.store.load(self.session_id)

    async def save(self, credentials: PendingCredentials) -> None:
        if self.session_id is None:
            self.session_id = secrets.token_urlsafe(32)
        await self.store.save(self.session_id, credentials)
        self.dirty = True
        self.cleared = False

    async def clear(self) -> None:
        if self.session_id is not None:
            await self.store.discard(self.session_id)
        self.session_id = None
        self.dirty = True
        self.cleared = True
