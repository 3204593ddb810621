"""Configuration management for the identity layer.

This module provides a centralized configuration system that loads settings
from environment variables (via .env file) with sensible defaults. A full
``aspnetdbConnectionString`` takes precedence over the discrete PostgreSQL
fields, so the container can be configured with the same connection string
the hosting stack composes.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_HOST_KEYS = {"server", "data source", "host", "address", "addr"}
_DATABASE_KEYS = {"database", "initial catalog"}
_USER_KEYS = {"user id", "uid", "user", "username"}
_PASSWORD_KEYS = {"password", "pwd"}


def parse_connection_string(value: str) -> dict:
    """Parse a ``key=value;`` connection string into an asyncpg config dict.

    Keys are matched case-insensitively. The server part may carry a port as
    ``host,port`` (SQL Server style) or ``host:port``.

    Args:
        value: Connection string such as
            ``"Server=db.local; Database=Identity; User Id=sa; Password=secret"``.

    Returns:
        Dict with any of the keys host, port, user, password, database.

    Raises:
        ValueError: If a segment is not of the form ``key=value``.
    """
    config: dict = {}
    for segment in value.split(";"):
        segment = segment.strip()
        if not segment:
            continue
        key, sep, item = segment.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Malformed connection string segment: {segment!r}")
        key = key.strip().lower()
        item = item.strip()

        if key in _HOST_KEYS:
            # SQL Server style protocol prefix, e.g. "tcp:db.local,1433"
            if item.lower().startswith("tcp:"):
                item = item[4:]
            host, port = item, None
            for delimiter in (",", ":"):
                if delimiter in item:
                    host, _, port = item.partition(delimiter)
                    break
            config["host"] = host.strip()
            if port:
                config["port"] = int(port)
        elif key == "port":
            config["port"] = int(item)
        elif key in _DATABASE_KEYS:
            config["database"] = item
        elif key in _USER_KEYS:
            config["user"] = item
        elif key in _PASSWORD_KEYS:
            config["password"] = item
    return config


class Settings(BaseSettings):
    """Application settings loaded from environment variables with defaults."""

    model_config = SettingsConfigDict(
        # Look for .env file in the server directory (parent of music_store)
        env_file=str(Path(__file__).parent.parent / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Identity connection string (same format the hosting stack injects)
    identity_connection_string: Optional[str] = Field(
        default=None,
        description="Identity database connection string",
        alias="aspnetdbConnectionString",
    )

    # PostgreSQL Configuration
    postgres_db_name: str = Field(
        default="identity",
        description="PostgreSQL database name",
    )
    postgres_user: str = Field(
        default="postgres",
        description="PostgreSQL username",
    )
    postgres_password: str = Field(
        default="postgres",
        description="PostgreSQL password",
    )
    postgres_host: str = Field(
        default="localhost",
        description="PostgreSQL host address",
    )
    postgres_port: int = Field(
        default=5432,
        description="PostgreSQL port number",
    )
    postgres_pool_min_size: int = Field(
        default=2,
        description="Minimum number of connections in pool",
    )
    postgres_pool_max_size: int = Field(
        default=10,
        description="Maximum number of connections in pool",
    )

    # Identity Configuration
    identity_throw_if_v1_schema: bool = Field(
        default=False,
        description="Fail instead of warn when the database has the v1 identity schema",
    )
    password_hasher: Literal["sql", "bcrypt"] = Field(
        default="sql",
        description="Password hashing strategy used by the user manager",
    )
    bcrypt_rounds: int = Field(
        default=12,
        description="bcrypt cost factor for new password hashes",
    )

    log_level: str = Field(default="INFO", description="Root log level")

    @field_validator("postgres_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is within valid range."""
        if not (1 <= v <= 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("bcrypt_rounds")
    @classmethod
    def validate_bcrypt_rounds(cls, v: int) -> int:
        if not (4 <= v <= 31):
            raise ValueError("bcrypt rounds must be between 4 and 31")
        return v

    @field_validator("identity_connection_string")
    @classmethod
    def validate_connection_string(cls, v: Optional[str]) -> Optional[str]:
        """Reject connection strings that cannot be parsed."""
        if v:
            parse_connection_string(v)
        return v or None

    @model_validator(mode="after")
    def validate_pool_sizes(self) -> "Settings":
        if self.postgres_pool_min_size < 1:
            raise ValueError("Pool min size must be at least 1")
        if self.postgres_pool_max_size < self.postgres_pool_min_size:
            raise ValueError("Pool max size must be >= pool min size")
        return self

    @property
    def postgres_config(self) -> dict:
        """Generate PostgreSQL config object for asyncpg."""
        config = {
            "host": self.postgres_host,
            "port": self.postgres_port,
            "user": self.postgres_user,
            "password": self.postgres_password,
            "database": self.postgres_db_name,
        }
        if self.identity_connection_string:
            config.update(parse_connection_string(self.identity_connection_string))
        return config


# Singleton instance - import this in other modules
settings = Settings()
