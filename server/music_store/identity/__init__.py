"""Identity persistence and user management."""

from .context import ApplicationDbContext
from .exceptions import IdentitySchemaError
from .models import (
    IdentityResult,
    PasswordVerificationResult,
    Role,
    User,
    UserClaim,
    UserLogin,
)
from .password_hasher import PasswordHasher, SqlPasswordHasher, get_password_hasher
from .user_manager import UserManager
from .user_store import UserStore

__all__ = [
    "ApplicationDbContext",
    "IdentityResult",
    "IdentitySchemaError",
    "PasswordHasher",
    "PasswordVerificationResult",
    "Role",
    "SqlPasswordHasher",
    "User",
    "UserClaim",
    "UserLogin",
    "UserManager",
    "UserStore",
    "get_password_hasher",
]
