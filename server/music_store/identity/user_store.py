"""User store over the identity schema.

This module maps User, Role, UserClaim and UserLogin rows to and from the
identity tables through an ApplicationDbContext.
"""

import logging
import uuid
from typing import Optional

from music_store.identity import schema
from music_store.identity.context import ApplicationDbContext
from music_store.identity.models import User, UserClaim, UserLogin

logger = logging.getLogger(__name__)

_COLUMN_LIST = ", ".join(schema.USER_COLUMNS)
_SELECT_USER = f"SELECT {_COLUMN_LIST} FROM {schema.USERS_TABLE}"


def _affected_rows(status: str) -> int:
    """Parse the row count from a command status such as ``"UPDATE 1"``."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except ValueError:
        return 0


class UserStore:
    """Store for users and their roles, claims and external logins.

    Example:
        ```python
        async with ApplicationDbContext.create() as context:
            store = UserStore(context)
            user = await store.find_by_name("alice")
        ```
    """

    def __init__(self, context: ApplicationDbContext):
        self.context = context

    async def initialize(self) -> None:
        await self.context.initialize()

    async def close(self) -> None:
        await self.context.close()

    @staticmethod
    def _to_user(record) -> Optional[User]:
        if record is None:
            return None
        return User.model_validate(dict(record))

    @staticmethod
    def _user_values(user: User) -> list:
        data = user.model_dump()
        return [data[column] for column in schema.USER_COLUMNS]

    async def create(self, user: User) -> User:
        """Insert a new user row."""
        placeholders = ", ".join(f"${i}" for i in range(1, len(schema.USER_COLUMNS) + 1))
        await self.context.client.execute(
            f"INSERT INTO {schema.USERS_TABLE} ({_COLUMN_LIST}) VALUES ({placeholders})",
            *self._user_values(user),
        )
        logger.info(f"Created user {user.user_name} ({user.id})")
        return user

    async def update(self, user: User) -> bool:
        """Update every column of an existing user row.

        Returns:
            True if the user existed and was updated.
        """
        assignments = ", ".join(
            f"{column} = ${index}"
            for index, column in enumerate(schema.USER_COLUMNS[1:], start=2)
        )
        status = await self.context.client.execute(
            f"UPDATE {schema.USERS_TABLE} SET {assignments} WHERE id = $1",
            *self._user_values(user),
        )
        return _affected_rows(status) > 0

    async def delete(self, user_id: str) -> bool:
        """Delete a user; roles, claims and logins cascade."""
        status = await self.context.client.execute(
            f"DELETE FROM {schema.USERS_TABLE} WHERE id = $1", user_id
        )
        deleted = _affected_rows(status) > 0
        if deleted:
            logger.info(f"Deleted user {user_id}")
        return deleted

    async def find_by_id(self, user_id: str) -> Optional[User]:
        record = await self.context.client.query_one(f"{_SELECT_USER} WHERE id = $1", user_id)
        return self._to_user(record)

    async def find_by_name(self, user_name: str) -> Optional[User]:
        """Find a user by name, ignoring case."""
        record = await self.context.client.query_one(
            f"{_SELECT_USER} WHERE LOWER(user_name) = LOWER($1)", user_name
        )
        return self._to_user(record)

    async def find_by_email(self, email: str) -> Optional[User]:
        """Find a user by email, ignoring case."""
        record = await self.context.client.query_one(
            f"{_SELECT_USER} WHERE LOWER(email) = LOWER($1)", email
        )
        return self._to_user(record)

    async def get_password_hash(self, user_id: str) -> Optional[str]:
        return await self.context.client.query_value(
            f"SELECT password_hash FROM {schema.USERS_TABLE} WHERE id = $1", user_id
        )

    async def set_password_hash(
        self, user_id: str, password_hash: Optional[str], security_stamp: str
    ) -> bool:
        status = await self.context.client.execute(
            f"UPDATE {schema.USERS_TABLE} SET password_hash = $2, security_stamp = $3 WHERE id = $1",
            user_id,
            password_hash,
            security_stamp,
        )
        return _affected_rows(status) > 0

    async def add_to_role(self, user_id: str, role_name: str) -> None:
        """Add the user to a role, creating the role if it does not exist."""
        await self.context.client.execute(
            f"INSERT INTO {schema.ROLES_TABLE} (id, name) VALUES ($1, $2) "
            f"ON CONFLICT (name) DO NOTHING",
            str(uuid.uuid4()),
            role_name,
        )
        await self.context.client.execute(
            f"INSERT INTO {schema.USER_ROLES_TABLE} (user_id, role_id) "
            f"SELECT $1, id FROM {schema.ROLES_TABLE} WHERE name = $2 "
            f"ON CONFLICT DO NOTHING",
            user_id,
            role_name,
        )

    async def remove_from_role(self, user_id: str, role_name: str) -> bool:
        status = await self.context.client.execute(
            f"DELETE FROM {schema.USER_ROLES_TABLE} WHERE user_id = $1 AND role_id IN "
            f"(SELECT id FROM {schema.ROLES_TABLE} WHERE name = $2)",
            user_id,
            role_name,
        )
        return _affected_rows(status) > 0

    async def get_roles(self, user_id: str) -> list[str]:
        records = await self.context.client.query(
            f"SELECT r.name FROM {schema.ROLES_TABLE} r "
            f"JOIN {schema.USER_ROLES_TABLE} ur ON ur.role_id = r.id "
            f"WHERE ur.user_id = $1 ORDER BY r.name",
            user_id,
        )
        return [record["name"] for record in records]

    async def add_claim(self, claim: UserClaim) -> UserClaim:
        claim_id = await self.context.client.query_value(
            f"INSERT INTO {schema.USER_CLAIMS_TABLE} (user_id, claim_type, claim_value) "
            f"VALUES ($1, $2, $3) RETURNING id",
            claim.user_id,
            claim.claim_type,
            claim.claim_value,
        )
        return claim.model_copy(update={"id": claim_id})

    async def get_claims(self, user_id: str) -> list[UserClaim]:
        records = await self.context.client.query(
            f"SELECT id, user_id, claim_type, claim_value FROM {schema.USER_CLAIMS_TABLE} "
            f"WHERE user_id = $1 ORDER BY id",
            user_id,
        )
        return [UserClaim.model_validate(dict(record)) for record in records]

    async def add_login(self, login: UserLogin) -> None:
        await self.context.client.execute(
            f"INSERT INTO {schema.USER_LOGINS_TABLE} (login_provider, provider_key, user_id) "
            f"VALUES ($1, $2, $3) ON CONFLICT DO NOTHING",
            login.login_provider,
            login.provider_key,
            login.user_id,
        )

    async def find_by_login(self, login_provider: str, provider_key: str) -> Optional[User]:
        columns = ", ".join(f"u.{column}" for column in schema.USER_COLUMNS)
        record = await self.context.client.query_one(
            f"SELECT {columns} FROM {schema.USERS_TABLE} u "
            f"JOIN {schema.USER_LOGINS_TABLE} l ON l.user_id = u.id "
            f"WHERE l.login_provider = $1 AND l.provider_key = $2",
            login_provider,
            provider_key,
        )
        return self._to_user(record)
