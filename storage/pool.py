"""
Owned asyncpg connection pool handle.

Lazily initialized on first use, guarded against concurrent double-init,
bounded in size. Injected into every component that issues queries.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import asyncpg

from storage.types import StorageUnavailableError

logger = logging.getLogger(__name__)


class PostgresPool:
    """
    Resource handle around an asyncpg pool.

    Design:
    - get() creates the pool once; concurrent callers wait on the same lock
    - a failed init leaves the handle empty so the next call retries
    - close() waits for checked-out connections before releasing the pool
    """

    def __init__(
        self,
        dsn: str,
        min_size: int = 1,
        max_size: int = 20,
        idle_timeout_s: float = 30.0,
        connect_timeout_s: float = 10.0,
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.idle_timeout_s = idle_timeout_s
        self.connect_timeout_s = connect_timeout_s
        self._pool: Optional[asyncpg.Pool] = None
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    async def get(self) -> asyncpg.Pool:
        """
        Return the live pool, creating it on first use.

        Raises:
            StorageUnavailableError: the database cannot be reached
        """
        if self._pool is not None:
            return self._pool

        async with self._lock:
            if self._pool is not None:
                return self._pool
            try:
                self._pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=self.min_size,
                    max_size=self.max_size,
                    max_inactive_connection_lifetime=self.idle_timeout_s,
                    timeout=self.connect_timeout_s,
                )
            except (OSError, asyncio.TimeoutError, asyncpg.PostgresError) as e:
                logger.error(f"Failed to initialize database pool: {e}")
                raise StorageUnavailableError(f"Database unavailable: {e}") from e

            logger.info(
                "Database pool established",
                extra={"min_size": self.min_size, "max_size": self.max_size},
            )
            return self._pool

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        """Check out a connection and return it to the pool afterwards."""
        pool = await self.get()
        try:
            conn = await pool.acquire(timeout=self.connect_timeout_s)
        except (OSError, asyncio.TimeoutError) as e:
            raise StorageUnavailableError(f"No database connection available: {e}") from e
        try:
            yield conn
        finally:
            await pool.release(conn)

    async def close(self) -> None:
        """Drain and release the pool. Safe to call when never initialized."""
        async with self._lock:
            if self._pool is None:
                return
            pool, self._pool = self._pool, None
        await pool.close()
        logger.info("Database connection closed")
