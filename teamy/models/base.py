"""Database base and session setup."""
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

import config

logger = logging.getLogger("teamy.db")


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


engine = create_async_engine(
    config.DATABASE_URL,
    echo=False,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


# Column additions for databases created before these fields existed
_MIGRATIONS = [
    "ALTER TABLE tournament_registrations ADD COLUMN paid BOOLEAN NOT NULL DEFAULT 0",
    "ALTER TABLE attempt_answers ADD COLUMN marked_for_review BOOLEAN NOT NULL DEFAULT 0",
    "ALTER TABLE tournaments ADD COLUMN approved BOOLEAN NOT NULL DEFAULT 0",
    "ALTER TABLE tournaments ADD COLUMN slug VARCHAR(120)",
    "ALTER TABLE activity_logs ADD COLUMN log_type VARCHAR(32) DEFAULT 'USER_ACTION'",
    "ALTER TABLE activity_logs ADD COLUMN severity VARCHAR(16) DEFAULT 'INFO'",
    "ALTER TABLE activity_logs ADD COLUMN route VARCHAR(255)",
]


async def _run_migrations(conn) -> None:
    """Add new columns if they don't exist."""
    for sql in _MIGRATIONS:
        try:
            await conn.execute(text(sql))
        except Exception:
            logger.debug("Migration skipped (column likely exists): %s", sql)


async def init_db() -> None:
    """Create all tables and run migrations."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await _run_migrations(conn)
