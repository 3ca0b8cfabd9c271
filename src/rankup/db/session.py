# src/rankup/db/session.py

"""Engine and session factory shared by the API and the background jobs."""
import logging
import os
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./rankup.db")
SQLITE_LOCK_TIMEOUT_SECONDS = float(os.getenv("SQLITE_LOCK_TIMEOUT_SECONDS", "15"))


def _create_engine(url: str = DATABASE_URL) -> AsyncEngine:
    echo = os.getenv("DB_ECHO", "false").lower() == "true"

    if url.startswith("sqlite"):
        # Concurrent member reads each take a connection; writers wait on the lock.
        return create_async_engine(
            url, echo=echo, connect_args={"timeout": SQLITE_LOCK_TIMEOUT_SECONDS}
        )

    return create_async_engine(
        url,
        echo=echo,
        pool_size=int(os.getenv("DB_POOL_SIZE", "20")),
        max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
        pool_pre_ping=True,
    )


engine = _create_engine()

# Services hand ORM rows back after their session closes.
AsyncSessionLocal = async_sessionmaker(
    bind=engine, autoflush=False, expire_on_commit=False
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; rolled back if the handler raises."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            logger.exception("Rolling back request session")
            await session.rollback()
            raise
