"""
PostgreSQL connection pool shared by the alert engine.

One pool serves the engine's own tables (``alerts``, ``alert_thresholds``)
and the read-only usage tables owned by the CRUD subsystem. Every pooled
connection runs with its session time zone pinned to UTC so that
date-bucketed queries line up with the UTC days the triggers use.
"""

import asyncio
import logging
from types import TracebackType
from typing import Any

import asyncpg

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Errors worth retrying while the database is still coming up
_TRANSIENT_CONNECT_ERRORS = (
    OSError,
    asyncpg.CannotConnectNowError,
    asyncpg.TooManyConnectionsError,
)


async def _init_connection(conn: asyncpg.Connection) -> None:
    await conn.execute("SET TIME ZONE 'UTC'")


class Database:
    """
    Async pool wrapper used by the repositories and Postgres sources.

    Usage:
        async with Database() as db:
            repo = AlertRepository(db)
            await repo.create_table()
    """

    def __init__(
        self,
        database_url: str | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
        command_timeout: float = 30.0,
        connect_attempts: int = 3,
        retry_delay: float = 1.0,
    ):
        settings = get_settings()

        self._database_url = database_url or str(settings.database_url)
        self._min_size = min_size or settings.db_pool_min_size
        self._max_size = max_size or settings.db_pool_max_size
        self._command_timeout = command_timeout
        self._connect_attempts = max(1, connect_attempts)
        self._retry_delay = retry_delay

        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """
        Create the pool, retrying transient failures with linear backoff.

        Raises:
            The last connection error once all attempts are used up.
        """
        if self._pool is not None:
            return

        for attempt in range(1, self._connect_attempts + 1):
            try:
                self._pool = await asyncpg.create_pool(
                    self._database_url,
                    min_size=self._min_size,
                    max_size=self._max_size,
                    command_timeout=self._command_timeout,
                    init=_init_connection,
                )
                break
            except _TRANSIENT_CONNECT_ERRORS as e:
                if attempt == self._connect_attempts:
                    logger.error(f"Database unreachable after {attempt} attempts: {e}")
                    raise
                logger.warning(
                    f"Database connect attempt {attempt} failed ({e}), retrying"
                )
                await asyncio.sleep(self._retry_delay * attempt)

        logger.info(f"Database connected (pool: {self._min_size}-{self._max_size})")

    async def close(self) -> None:
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Database connection closed")

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    async def execute(self, query: str, *args: Any) -> str:
        """Run a statement; returns the status tag (e.g. ``UPDATE 3``)."""
        async with self.pool.acquire() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        async with self.pool.acquire() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        async with self.pool.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        async with self.pool.acquire() as conn:
            return await conn.fetchval(query, *args)

    async def health_check(self) -> bool:
        """True if the pool can run a trivial query."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except (asyncpg.PostgresError, OSError, RuntimeError) as e:
            logger.warning(f"Database health check failed: {e}")
            return False
