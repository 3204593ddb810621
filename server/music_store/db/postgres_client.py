"""Pooled asyncpg client used by the identity persistence context.

All reads and writes go through one pool. Opening the pool is retried so a
process that starts alongside its database survives the first refused
connections.
"""

import asyncio
import logging
from typing import Any, Optional

import asyncpg  # type: ignore[import-untyped]
from asyncpg import Pool, Record
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from music_store.config import settings

logger = logging.getLogger(__name__)

_NOT_INITIALIZED = (
    "Connection pool not initialized. Call initialize() first or use as context manager."
)


def _preview(query: str) -> str:
    return " ".join(query.split())[:60]


class PostgresClient:
    """Connection pool wrapper for the identity database.

    Example:
        ```python
        async with PostgresClient() as client:
            row = await client.query_one(
                "SELECT * FROM asp_net_users WHERE id = $1", user_id
            )
            status = await client.execute(
                "UPDATE asp_net_users SET email_confirmed = TRUE WHERE id = $1", user_id
            )
        ```

    Args:
        config: Connection parameters (host, port, user, password, database).
            Defaults to ``settings.postgres_config``.
        min_size: Minimum pool size. Defaults to the configured value.
        max_size: Maximum pool size. Defaults to the configured value.
    """

    def __init__(
        self,
        config: Optional[dict[str, Any]] = None,
        min_size: Optional[int] = None,
        max_size: Optional[int] = None,
    ):
        self._config = config or settings.postgres_config
        self._min_size = settings.postgres_pool_min_size if min_size is None else min_size
        self._max_size = settings.postgres_pool_max_size if max_size is None else max_size
        self._pool: Optional[Pool] = None

    @property
    def dsn_label(self) -> str:
        """host:port/database, without credentials, for log lines."""
        return f"{self._config['host']}:{self._config['port']}/{self._config['database']}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((OSError, asyncpg.exceptions.CannotConnectNowError)),
        reraise=True,
    )
    async def _create_pool(self) -> Pool:
        return await asyncpg.create_pool(
            host=self._config["host"],
            port=self._config["port"],
            user=self._config["user"],
            password=self._config["password"],
            database=self._config["database"],
            min_size=self._min_size,
            max_size=self._max_size,
        )

    async def initialize(self) -> None:
        """Open the pool.

        Refused or unreachable connections are attempted three times with
        exponential backoff before the last error is raised. Server-side
        errors such as bad credentials are raised immediately.
        """
        if self._pool is not None:
            logger.warning(f"Pool for {self.dsn_label} already open, ignoring initialize()")
            return

        try:
            self._pool = await self._create_pool()
        except Exception as e:
            logger.error(f"Could not open PostgreSQL pool for {self.dsn_label}: {e}")
            raise
        logger.info(f"PostgreSQL pool open: {self.dsn_label}")

    async def close(self) -> None:
        if self._pool is None:
            return
        await self._pool.close()
        self._pool = None
        logger.info(f"PostgreSQL pool closed: {self.dsn_label}")

    async def __aenter__(self) -> "PostgresClient":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def pool(self) -> Pool:
        """The open pool.

        Raises:
            RuntimeError: If the pool has not been opened.
        """
        if self._pool is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._pool

    def is_connected(self) -> bool:
        return self._pool is not None

    async def _run(
        self, method: str, query: str, args: tuple, timeout: Optional[float]
    ) -> Any:
        """Acquire a connection and call one of its fetch/execute methods."""
        pool = self.pool
        try:
            async with pool.acquire() as connection:
                result = await getattr(connection, method)(query, *args, timeout=timeout)
        except Exception as e:
            logger.error(f"{method} failed: {_preview(query)} Error: {e}")
            raise
        logger.debug(f"{method} ok: {_preview(query)}")
        return result

    async def query(self, query: str, *args: Any, timeout: Optional[float] = None) -> list[Record]:
        """Run a SELECT and return every row.

        Args:
            query: SQL with ``$1``, ``$2``... placeholders.
            *args: Values bound to the placeholders.
            timeout: Optional statement timeout in seconds.

        Raises:
            RuntimeError: If the pool has not been opened.
            asyncpg.exceptions.PostgresError: If the statement fails.
        """
        return list(await self._run("fetch", query, args, timeout))

    async def query_one(
        self, query: str, *args: Any, timeout: Optional[float] = None
    ) -> Optional[Record]:
        """Run a SELECT and return the first row, or None."""
        return await self._run("fetchrow", query, args, timeout)

    async def query_value(self, query: str, *args: Any, timeout: Optional[float] = None) -> Any:
        """Run a SELECT and return the first column of the first row.

        Used for EXISTS checks and ``RETURNING id`` inserts.
        """
        return await self._run("fetchval", query, args, timeout)

    async def execute(self, query: str, *args: Any, timeout: Optional[float] = None) -> str:
        """Run a write or DDL statement and return its status, e.g. ``"UPDATE 1"``."""
        return await self._run("execute", query, args, timeout)


_default_client: Optional[PostgresClient] = None
_client_lock = asyncio.Lock()


async def get_client() -> PostgresClient:
    """Return the process-wide client, opening its pool on first use."""
    global _default_client
    async with _client_lock:
        if _default_client is None:
            _default_client = PostgresClient()
        if not _default_client.is_connected():
            await _default_client.initialize()
        return _default_client


async def close_default_client() -> None:
    """Close and forget the process-wide client."""
    global _default_client
    async with _client_lock:
        if _default_client is not None:
            await _default_client.close()
            _default_client = None
