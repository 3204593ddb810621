"""User management facade.

The UserManager validates input, selects the password hashing strategy and
delegates persistence to a UserStore. By default it runs over a fresh
ApplicationDbContext with the SqlPasswordHasher, so accounts migrated from
the SQL Membership provider can still sign in and are upgraded to bcrypt on
their first successful password check.
"""

import logging
import re
import uuid
from typing import Optional

from music_store.config import settings
from music_store.identity.context import ApplicationDbContext
from music_store.identity.models import (
    IdentityResult,
    PasswordVerificationResult,
    User,
    UserClaim,
)
from music_store.identity.password_hasher import PasswordHasher, get_password_hasher
from music_store.identity.user_store import UserStore

logger = logging.getLogger(__name__)

USER_NAME_PATTERN = re.compile(r"^[A-Za-z0-9@_.\-]+$")
MIN_PASSWORD_LENGTH = 6
# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


def _new_security_stamp() -> str:
    return str(uuid.uuid4())


class UserManager:
    """Facade for creating users and checking their credentials.

    Example:
        ```python
        async with UserManager() as manager:
            result = await manager.create(User(user_name="alice"), "s3cret!")
            user = await manager.find("alice", "s3cret!")
        ```
    """

    def __init__(
        self,
        store: Optional[UserStore] = None,
        password_hasher: Optional[PasswordHasher] = None,
    ):
        self.store = store or UserStore(ApplicationDbContext.create())
        self.password_hasher = password_hasher or get_password_hasher(
            settings.password_hasher, rounds=settings.bcrypt_rounds
        )

    async def initialize(self) -> None:
        await self.store.initialize()

    async def close(self) -> None:
        await self.store.close()

    async def __aenter__(self) -> "UserManager":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _validate_password(self, password: str) -> list[str]:
        errors = []
        if len(password) < MIN_PASSWORD_LENGTH:
            errors.append(f"Passwords must be at least {MIN_PASSWORD_LENGTH} characters.")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            errors.append(f"Passwords must be at most {MAX_PASSWORD_BYTES} bytes.")
        return errors

    async def _validate_user(self, user: User) -> list[str]:
        if not user.user_name:
            return ["Name cannot be null or empty."]
        if not USER_NAME_PATTERN.match(user.user_name):
            return [f"User name {user.user_name} is invalid, can only contain letters or digits."]
        existing = await self.store.find_by_name(user.user_name)
        if existing is not None and existing.id != user.id:
            return [f"Name {user.user_name} is already taken."]
        return []

    async def create(self, user: User, password: Optional[str] = None) -> IdentityResult:
        """Create a user, optionally with a password."""
        errors = await self._validate_user(user)
        if password is not None:
            errors.extend(self._validate_password(password))
        if errors:
            logger.info(f"Rejected user {user.user_name!r}: {errors}")
            return IdentityResult.failed(*errors)

        user = user.model_copy(
            update={
                "password_hash": (
                    self.password_hasher.hash_password(password)
                    if password is not None
                    else user.password_hash
                ),
                "security_stamp": _new_security_stamp(),
            }
        )
        await self.store.create(user)
        return IdentityResult.success()

    async def update(self, user: User) -> IdentityResult:
        errors = await self._validate_user(user)
        if errors:
            return IdentityResult.failed(*errors)
        if not await self.store.update(user):
            return IdentityResult.failed(f"User {user.id} not found.")
        return IdentityResult.success()

    async def delete(self, user: User) -> IdentityResult:
        if not await self.store.delete(user.id):
            return IdentityResult.failed(f"User {user.id} not found.")
        return IdentityResult.success()

    async def find_by_id(self, user_id: str) -> Optional[User]:
        return await self.store.find_by_id(user_id)

    async def find_by_name(self, user_name: str) -> Optional[User]:
        return await self.store.find_by_name(user_name)

    async def find_by_email(self, email: str) -> Optional[User]:
        return await self.store.find_by_email(email)

    async def find_by_login(self, login_provider: str, provider_key: str) -> Optional[User]:
        return await self.store.find_by_login(login_provider, provider_key)

    async def check_password(self, user: User, password: str) -> bool:
        """Verify a password, upgrading legacy hashes on success."""
        password_hash = await self.store.get_password_hash(user.id)
        if not password_hash:
            return False

        result = self.password_hasher.verify_hashed_password(password_hash, password)
        if result == PasswordVerificationResult.SUCCESS_REHASH_NEEDED:
            try:
                new_hash = self.password_hasher.hash_password(password)
            except ValueError as e:
                # Membership allowed passwords bcrypt cannot take (> 72 bytes)
                logger.warning(f"Keeping legacy password hash for user {user.id}: {e}")
            else:
                logger.info(f"Rehashing legacy password for user {user.id}")
                await self.store.set_password_hash(user.id, new_hash, _new_security_stamp())
        return result != PasswordVerificationResult.FAILED

    async def find(self, user_name: str, password: str) -> Optional[User]:
        """Find a user by name and password; None when either does not match."""
        user = await self.store.find_by_name(user_name)
        if user is None:
            return None
        if await self.check_password(user, password):
            return user
        return None

    async def has_password(self, user_id: str) -> bool:
        return bool(await self.store.get_password_hash(user_id))

    async def change_password(
        self, user_id: str, current_password: str, new_password: str
    ) -> IdentityResult:
        user = await self.store.find_by_id(user_id)
        if user is None:
            return IdentityResult.failed(f"User {user_id} not found.")
        if not await self.check_password(user, current_password):
            return IdentityResult.failed("Incorrect password.")
        return await self._set_password(user_id, new_password)

    async def add_password(self, user_id: str, password: str) -> IdentityResult:
        if await self.has_password(user_id):
            return IdentityResult.failed("User already has a password set.")
        return await self._set_password(user_id, password)

    async def remove_password(self, user_id: str) -> IdentityResult:
        if not await self.store.set_password_hash(user_id, None, _new_security_stamp()):
            return IdentityResult.failed(f"User {user_id} not found.")
        return IdentityResult.success()

    async def _set_password(self, user_id: str, password: str) -> IdentityResult:
        errors = self._validate_password(password)
        if errors:
            return IdentityResult.failed(*errors)
        updated = await self.store.set_password_hash(
            user_id, self.password_hasher.hash_password(password), _new_security_stamp()
        )
        if not updated:
            return IdentityResult.failed(f"User {user_id} not found.")
        return IdentityResult.success()

    async def add_to_role(self, user_id: str, role_name: str) -> IdentityResult:
        await self.store.add_to_role(user_id, role_name)
        return IdentityResult.success()

    async def remove_from_role(self, user_id: str, role_name: str) -> IdentityResult:
        if not await self.store.remove_from_role(user_id, role_name):
            return IdentityResult.failed(f"User is not in role {role_name}.")
        return IdentityResult.success()

    async def get_roles(self, user_id: str) -> list[str]:
        return await self.store.get_roles(user_id)

    async def is_in_role(self, user_id: str, role_name: str) -> bool:
        return role_name in await self.store.get_roles(user_id)

    async def add_claim(
        self, user_id: str, claim_type: str, claim_value: Optional[str] = None
    ) -> IdentityResult:
        await self.store.add_claim(
            UserClaim(user_id=user_id, claim_type=claim_type, claim_value=claim_value)
        )
        return IdentityResult.success()

    async def get_claims(self, user_id: str) -> list[UserClaim]:
        return await self.store.get_claims(user_id)
