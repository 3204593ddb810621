"""Password hashing strategies for the user manager.

New hashes are always bcrypt. ``SqlPasswordHasher`` additionally accepts
hashes migrated from the SQL Membership provider, stored as
``hash|format|salt``, and reports them as needing a rehash.
"""

import base64
import hashlib
import hmac
import logging
from typing import Optional

import bcrypt

from music_store.identity.models import PasswordVerificationResult

logger = logging.getLogger(__name__)

# SQL Membership password formats
FORMAT_CLEAR = "0"
FORMAT_HASHED = "1"


class PasswordHasher:
    """Default bcrypt password hasher."""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def hash_password(self, password: str) -> str:
        hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds))
        return hashed.decode("utf-8")

    def verify_hashed_password(
        self, hashed_password: str, provided_password: str
    ) -> PasswordVerificationResult:
        try:
            matched = bcrypt.checkpw(
                provided_password.encode("utf-8"), hashed_password.encode("utf-8")
            )
        except ValueError as e:
            # Not a bcrypt hash, or a password bcrypt cannot take
            logger.debug(f"bcrypt verification rejected input: {e}")
            return PasswordVerificationResult.FAILED
        if matched:
            return PasswordVerificationResult.SUCCESS
        return PasswordVerificationResult.FAILED


class SqlPasswordHasher(PasswordHasher):
    """Password hasher that also verifies legacy SQL Membership hashes.

    Legacy values have the shape ``hash|format|salt``. Format ``1`` stores
    base64(SHA1(salt bytes + UTF-16LE password)), compared without regard to
    case; format ``0`` stores the password itself. A legacy match returns
    ``SUCCESS_REHASH_NEEDED`` so the manager can replace it with a bcrypt
    hash. Anything else goes to the bcrypt verifier.
    """

    def verify_hashed_password(
        self, hashed_password: str, provided_password: str
    ) -> PasswordVerificationResult:
        parts = hashed_password.split("|")
        if len(parts) != 3:
            return super().verify_hashed_password(hashed_password, provided_password)

        stored_hash, password_format, salt = parts
        encoded = self._encode_legacy(provided_password, password_format, salt)
        if encoded is None:
            return PasswordVerificationResult.FAILED

        if password_format == FORMAT_HASHED:
            stored_hash, encoded = stored_hash.lower(), encoded.lower()
        if hmac.compare_digest(stored_hash.encode("utf-8"), encoded.encode("utf-8")):
            return PasswordVerificationResult.SUCCESS_REHASH_NEEDED
        return PasswordVerificationResult.FAILED

    @staticmethod
    def _encode_legacy(password: str, password_format: str, salt: str) -> Optional[str]:
        if password_format == FORMAT_CLEAR:
            return password
        if password_format != FORMAT_HASHED:
            logger.warning(f"Unsupported legacy password format: {password_format!r}")
            return None
        try:
            salt_bytes = base64.b64decode(salt, validate=True)
        except ValueError:
            logger.warning("Legacy password salt is not valid base64")
            return None
        digest = hashlib.sha1(salt_bytes + password.encode("utf-16-le")).digest()
        return base64.b64encode(digest).decode("ascii")


_HASHERS = {
    "bcrypt": PasswordHasher,
    "sql": SqlPasswordHasher,
}


def get_password_hasher(name: str = "sql", rounds: int = 12) -> PasswordHasher:
    """Get the password hasher registered under ``name``.

    Raises:
        ValueError: If no hasher has that name.
    """
    try:
        hasher_class = _HASHERS[name]
    except KeyError:
        raise ValueError(
            f"Unknown password hasher {name!r}; expected one of {sorted(_HASHERS)}"
        ) from None
    return hasher_class(rounds=rounds)
