from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from otp_auth.core.config import settings


def _normalize_database_url(url: str) -> str:
    """Force the async driver for plain postgres URLs copied from hosting dashboards."""
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


database_url = _normalize_database_url(settings.DATABASE_URL)
engine = create_async_engine(database_url, echo=False, **_engine_options(database_url))
# attributes stay loaded after commit; async sessions cannot lazy-load them
async_session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        yield session
