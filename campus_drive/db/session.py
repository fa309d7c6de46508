from typing import Any

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from campus_drive.core.config import settings


def engine_options(database_url: str) -> dict[str, Any]:
    if database_url.startswith("sqlite"):
        # Writers wait on the file lock for up to 30s before raising "database is locked".
        return {"connect_args": {"timeout": 30}}
    return {"pool_pre_ping": True, "pool_recycle": 1800}


engine = create_async_engine(settings.database_url, echo=False, **engine_options(settings.database_url))
SessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


async def init_models() -> None:
    from campus_drive.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
