import os

os.environ.setdefault("CD_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CD_AUTH_MODE", "dev")
os.environ.setdefault("CD_SCHEDULER_ENABLED", "false")
os.environ.setdefault("CD_REDIS_URL", "")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from campus_drive.models import Base


@pytest.fixture()
async def async_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=async_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()
