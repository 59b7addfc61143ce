from typing import Any, AsyncGenerator, Dict

import structlog
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from ..config.settings import get_settings

logger = structlog.get_logger(__name__)

settings = get_settings()

DATABASE_URL = settings.DATABASE_URL


def _engine_options(url: str) -> Dict[str, Any]:
    # SQLite pools do not accept sizing arguments.
    if url.startswith("sqlite"):
        return {"echo": settings.DB_ECHO}
    return {
        "echo": settings.DB_ECHO,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
    }


engine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()

async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def rollback_quietly(session: AsyncSession) -> None:
    try:
        if session.is_active: await session.rollback()
    except Exception as rb_exc: logger.error("Error during rollback attempt", error=str(rb_exc), exc_info=True)
