"""Database client modules."""

from .postgres_client import PostgresClient
from .postgres_client import close_default_client as close_postgres_client
from .postgres_client import get_client as get_postgres_client

__all__ = [
    "PostgresClient",
    "get_postgres_client",
    "close_postgres_client",
]
