import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "test"

from datetime import datetime, timedelta, timezone  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy import select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from otp_auth.api import deps  # noqa: E402
from otp_auth.core.security import get_password_hash  # noqa: E402
from otp_auth.db import models  # noqa: E402,F401
from otp_auth.db.base import Base  # noqa: E402
from otp_auth.db.models import OtpRecord, User  # noqa: E402
from otp_auth.main import app  # noqa: E402
from otp_auth.services.email import Mailer, MailMessage  # noqa: E402


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the pending session store."""

    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        return True

    async def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)


class FakeMailer(Mailer):
    def __init__(self, deliver: bool = True):
        self.sent: list[MailMessage] = []
        self.deliver = deliver

    async def send(self, message: MailMessage) -> bool:
        self.sent.append(message)
        return self.deliver

    @property
    def subjects(self) -> list[str]:
        return [message.subject for message in self.sent]


class FakePhoneOracle:
    def __init__(self, verified=()):
        self.verified = set(verified)
        self.calls: list[str] = []

    async def is_verified(self, phone: str) -> bool:
        self.calls.append(phone)
        return phone in self.verified


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, days: int = 0) -> None:
        self.now += timedelta(seconds=seconds, days=days)

    @property
    def millis(self) -> int:
        return int(self.now.timestamp() * 1000)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 10, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def phone_oracle():
    return FakePhoneOracle()


@pytest.fixture
def redis():
    return FakeRedis()


@pytest.fixture
async def client(session_factory, clock, mailer, phone_oracle, redis):
    async def _get_db_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[deps.get_db_session] = _get_db_session
    app.dependency_overrides[deps.get_redis] = lambda: redis
    app.dependency_overrides[deps.get_mailer] = lambda: mailer
    app.dependency_overrides[deps.get_phone_oracle] = lambda: phone_oracle
    app.dependency_overrides[deps.get_clock] = lambda: clock

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_user(
    session_factory,
    *,
    email: str = "jane@example.com",
    phone: str | None = None,
    password: str = "supersecret",
    first_name: str = "Jane",
    last_name: str = "Roe",
    status: str = "active",
    role: str = "user",
) -> User:
    async with session_factory() as session:
        user = User(
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=phone,
            hashed_password=get_password_hash(password),
            role=role,
            status=status,
            is_deleted=False,
        )
        session.add(user)
        await session.commit()
        await session.refresh(user)
        return user


async def get_otp_record(session_factory, email: str) -> OtpRecord | None:
    async with session_factory() as session:
        return await session.scalar(select(OtpRecord).where(OtpRecord.email == email))


async def get_user(session_factory, email: str) -> User | None:
    async with session_factory() as session:
        return await session.scalar(select(User).where(User.email == email))
