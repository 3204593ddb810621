"""Create the identity tables.

This script can be run during deployment to bring an empty database up to
the identity schema. Existing tables are left untouched.

Usage:
    python -m music_store.identity.initialize_schema
    # Or as a module:
    from music_store.identity.initialize_schema import initialize_schema
    await initialize_schema()
"""

import asyncio
import logging
from typing import Optional

from music_store.config import settings
from music_store.identity.context import ApplicationDbContext

logger = logging.getLogger(__name__)


async def initialize_schema(context: Optional[ApplicationDbContext] = None) -> None:
    """Ensure the identity schema exists.

    Args:
        context: Optional context; a settings-configured one is created and
            closed when omitted.

    Raises:
        IdentitySchemaError: If the database holds the v1 schema and the
            context is configured to reject it.
    """
    context = context or ApplicationDbContext.create()
    async with context:
        await context.ensure_schema()


async def main() -> None:
    """Main entrypoint for running as a script."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        await initialize_schema()
    except Exception as e:
        logger.error(f"Identity schema initialization failed: {e}", exc_info=True)
        raise


if __name__ == "__main__":
    asyncio.run(main())
