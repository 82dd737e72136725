"""
Database connection helper.

This module centralizes how connections are created. A single
`psycopg_pool.AsyncConnectionPool` is owned by a `Database` object which is
built once at startup and handed to every repository.

Why this exists:
- Single place to configure pooling, timeouts and row mapping.
- Keeps repository code focused on SQL and row mapping.
- Repositories receive the handle explicitly so tests can swap them out.

Usage:
    db = Database.from_settings()
    await db.open()
    async with db.connection() as conn:
        await conn.execute("SELECT 1;")

Connections run in autocommit mode: every statement the repositories issue
is a single atomic unit, so no explicit transaction boundaries are needed.
"""

import logging

from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from settings import settings

logger = logging.getLogger(__name__)


SCHEMA = '''
CREATE TABLE IF NOT EXISTS owners (
    user_id TEXT PRIMARY KEY,
    points BIGINT NOT NULL DEFAULT 0,
    badges TEXT[] NOT NULL DEFAULT '{}',
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now(),
    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS habits (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id TEXT NOT NULL,
    name VARCHAR(100) NOT NULL,
    icon TEXT NOT NULL,
    color TEXT NOT NULL,
    daily_target DOUBLE PRECISION NOT NULL DEFAULT 1,
    unit TEXT NOT NULL,
    reminder BOOLEAN NOT NULL DEFAULT TRUE,
    reminder_time TEXT NOT NULL DEFAULT '09:00',
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now(),
    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_habits_user_created ON habits (user_id, created_at DESC);

CREATE TABLE IF NOT EXISTS progress (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    user_id TEXT NOT NULL,
    habit_id UUID NOT NULL,
    day DATE NOT NULL,
    value DOUBLE PRECISION NOT NULL DEFAULT 0,
    complete BOOLEAN NOT NULL DEFAULT FALSE,
    points INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now(),
    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT now()
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_progress_owner_habit_day ON progress (user_id, habit_id, day);
CREATE INDEX IF NOT EXISTS idx_progress_user_day ON progress (user_id, day DESC);
'''


class Database:
    """Process-wide store handle shared by all request handlers."""

    def __init__(
        self,
        conninfo: str,
        min_size: int = 1,
        max_size: int = 10,
        timeout: float = 5.0,
        statement_timeout_ms: int = 5000,
    ):
        self.timeout = timeout
        self.pool = AsyncConnectionPool(
            conninfo,
            min_size=min_size,
            max_size=max_size,
            timeout=timeout,
            open=False,
            kwargs={
                "autocommit": True,
                "row_factory": dict_row,
                "options": f"-c statement_timeout={statement_timeout_ms}",
            },
        )

    @classmethod
    def from_settings(cls) -> "Database":
        return cls(
            settings.db_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
            timeout=settings.db_connect_timeout,
            statement_timeout_ms=settings.db_statement_timeout_ms,
        )

    async def open(self) -> None:
        await self.pool.open(wait=True, timeout=self.timeout)
        logger.info("Database pool opened (max_size=%s)", self.pool.max_size)

    async def close(self) -> None:
        await self.pool.close()
        logger.info("Database pool closed")

    def connection(self):
        """Borrow a connection; use as `async with db.connection() as conn`."""

        return self.pool.connection()

    async def ping(self) -> None:
        """Lightweight health check. Raises on error."""

        async with self.connection() as conn:
            await conn.execute("SELECT 1;")

    async def create_schema(self) -> None:
        async with self.connection() as conn:
            await conn.execute(SCHEMA)
        logger.info("Schema applied")
