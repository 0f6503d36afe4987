"""
═══════════════════════════════════════════════════════════════════════════════
BookAPI: Database connection pool (Database Connection Pool)
═══════════════════════════════════════════════════════════════════════════════

``Database`` owns the asyncpg pool of the credential store. One instance is
created in the application lifespan and handed to the repository; nothing
in the service reaches for a module-level pool.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import asyncpg

from bookapi.config import BookApiSettings

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "db" / "migrations"


class Database:
    """asyncpg pool wrapper scoped to the process lifetime."""

    def __init__(self, dsn: str, min_size: int = 2, max_size: int = 10) -> None:
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._pool: asyncpg.Pool | None = None

    @classmethod
    def from_settings(cls, settings: BookApiSettings) -> "Database":
        return cls(
            settings.database_url,
            min_size=settings.database_pool_min,
            max_size=settings.database_pool_max,
        )

    async def connect(self) -> None:
        """Creates the pool. Raises when PostgreSQL is unreachable."""
        if self._pool is not None:
            return
        self._pool = await asyncpg.create_pool(
            dsn=self._dsn,
            min_size=self._min_size,
            max_size=self._max_size,
            command_timeout=60,
        )
        logger.info(
            "BookAPI DB pool created (min=%d, max=%d)", self._min_size, self._max_size
        )

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            logger.info("BookAPI DB pool closed")

    @property
    def connected(self) -> bool:
        return self._pool is not None

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[asyncpg.Connection, None]:
        """
        Acquires a connection from the pool and returns it afterwards.

        Usage::

            async with database.connection() as conn:
                row = await conn.fetchrow("SELECT * FROM accounts WHERE email = $1", email)
        """
        if self._pool is None:
            raise RuntimeError("Database pool is not initialized; call connect() first")
        async with self._pool.acquire() as conn:
            yield conn

    async def check(self) -> bool:
        """Health check: ``SELECT 1`` against the pool."""
        if self._pool is None:
            return False
        try:
            async with self.connection() as conn:
                result = await conn.fetchval("SELECT 1")
                return result == 1
        except Exception as e:
            logger.error("BookAPI DB health check failed: %s", e)
            return False

    async def apply_migrations(self, migrations_dir: Path = MIGRATIONS_DIR) -> int:
        """
        Applies ``*.sql`` files from ``migrations_dir`` in name order.

        Applied file names are recorded in ``_applied_migrations``; each file
        runs in its own transaction. Returns the number of files applied.
        """
        sql_files = sorted(migrations_dir.glob("*.sql")) if migrations_dir.is_dir() else []
        if not sql_files:
            logger.info("No SQL migration files found, skipping")
            return 0

        applied_now = 0
        async with self.connection() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS _applied_migrations (
                    filename TEXT PRIMARY KEY,
                    applied_at TIMESTAMPTZ DEFAULT NOW()
                )
            """)
            rows = await conn.fetch("SELECT filename FROM _applied_migrations")
            applied = {row["filename"] for row in rows}

            for sql_file in sql_files:
                if sql_file.name in applied:
                    continue
                logger.info("📄 Applying migration: %s", sql_file.name)
                async with conn.transaction():
                    await conn.execute(sql_file.read_text(encoding="utf-8"))
                    await conn.execute(
                        "INSERT INTO _applied_migrations (filename) VALUES ($1)",
                        sql_file.name,
                    )
                applied_now += 1
                logger.info("✅ Migration applied: %s", sql_file.name)

        logger.info("✅ All BookAPI migrations up to date (%d files checked)", len(sql_files))
        return applied_now
