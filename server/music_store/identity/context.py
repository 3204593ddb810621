"""Persistence context bound to the identity schema.

The context owns (or borrows) a PostgresClient and knows how to bring the
identity tables into existence. Stores issue their SQL through it.
"""

import logging
import os
from typing import Optional

from music_store.config import parse_connection_string, settings
from music_store.db import PostgresClient
from music_store.identity import schema
from music_store.identity.exceptions import IdentitySchemaError

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION_NAME = "aspnetdbConnectionString"


class ApplicationDbContext:
    """Identity database context.

    Example:
        ```python
        async with ApplicationDbContext.create() as context:
            await context.ensure_schema()
        ```

    Args:
        client: Optional PostgresClient. When omitted the context creates one
            from configuration and closes it in ``close()``.
        connection_name: Name of the connection string. The default name is
            read through ``settings`` (environment or ``.env``). Any other
            name is read from the process environment and overlaid on the
            settings; when it is unset the settings are used as they are.
        throw_if_v1_schema: Raise IdentitySchemaError instead of warning when
            the database holds the v1 identity schema.
    """

    def __init__(
        self,
        client: Optional[PostgresClient] = None,
        connection_name: str = DEFAULT_CONNECTION_NAME,
        throw_if_v1_schema: bool = False,
    ):
        self._client = client
        self._owns_client = client is None
        self.connection_name = connection_name
        self.throw_if_v1_schema = throw_if_v1_schema

    @classmethod
    def create(cls) -> "ApplicationDbContext":
        """Create a context configured from settings."""
        return cls(throw_if_v1_schema=settings.identity_throw_if_v1_schema)

    def _resolve_config(self) -> dict:
        # The default name is the Settings alias, so .env values apply too
        config = dict(settings.postgres_config)
        if self.connection_name == DEFAULT_CONNECTION_NAME:
            return config
        connection_string = os.getenv(self.connection_name)
        if connection_string:
            config.update(parse_connection_string(connection_string))
        return config

    async def initialize(self) -> None:
        """Open the underlying connection pool if it is not open yet."""
        if self._client is None:
            self._client = PostgresClient(config=self._resolve_config())
        if not self._client.is_connected():
            await self._client.initialize()

    async def close(self) -> None:
        """Close the connection pool when this context created it."""
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None

    async def __aenter__(self) -> "ApplicationDbContext":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def client(self) -> PostgresClient:
        """Get the database client.

        Raises:
            RuntimeError: If the context is not initialized.
        """
        if self._client is None:
            raise RuntimeError(
                "ApplicationDbContext not initialized. Call initialize() first."
            )
        return self._client

    async def table_exists(self, table_name: str) -> bool:
        return bool(await self.client.query_value(schema.TABLE_EXISTS_QUERY, table_name))

    async def is_v1_schema(self) -> bool:
        """Check whether the users table predates the email/lockout columns."""
        if not await self.table_exists(schema.USERS_TABLE):
            return False
        has_email = await self.client.query_value(
            schema.COLUMN_EXISTS_QUERY, schema.USERS_TABLE, "email"
        )
        return not has_email

    async def ensure_schema(self) -> None:
        """Create any missing identity tables.

        Raises:
            IdentitySchemaError: If the database holds the v1 schema and
                ``throw_if_v1_schema`` is set.
        """
        if await self.is_v1_schema():
            message = (
                f"Table {schema.USERS_TABLE} uses the v1 identity schema; "
                f"columns added in later versions are missing"
            )
            if self.throw_if_v1_schema:
                raise IdentitySchemaError(message)
            logger.warning(message)

        for statement in schema.CREATE_STATEMENTS:
            await self.client.execute(statement)
        logger.info(f"Identity schema ensured ({len(schema.CREATE_STATEMENTS)} statements)")
