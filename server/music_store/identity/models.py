"""Identity models.

This module provides the Pydantic models for rows of the identity schema
and the result types returned by the user manager and password hashers.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return str(uuid.uuid4())


class PasswordVerificationResult(str, Enum):
    """Outcome of verifying a password against a stored hash."""

    FAILED = "failed"
    SUCCESS = "success"
    SUCCESS_REHASH_NEEDED = "success_rehash_needed"


class User(BaseModel):
    """Pydantic model for a row of the asp_net_users table."""

    id: str = Field(default_factory=_new_id, description="Primary key")
    user_name: str = Field(..., description="Unique user name")
    email: Optional[str] = Field(None, description="Email address")
    email_confirmed: bool = Field(False, description="Whether the email was confirmed")
    password_hash: Optional[str] = Field(None, description="Stored password hash")
    security_stamp: Optional[str] = Field(
        None, description="Random value that changes whenever credentials change"
    )
    phone_number: Optional[str] = Field(None, description="Phone number")
    phone_number_confirmed: bool = Field(False, description="Whether the phone was confirmed")
    two_factor_enabled: bool = Field(False, description="Whether two-factor auth is on")
    lockout_end_date_utc: Optional[datetime] = Field(
        None, description="End of the current lockout, if any"
    )
    lockout_enabled: bool = Field(False, description="Whether the user can be locked out")
    access_failed_count: int = Field(0, ge=0, description="Consecutive failed sign-ins")

    model_config = ConfigDict(from_attributes=True)


class Role(BaseModel):
    """Pydantic model for a row of the asp_net_roles table."""

    id: str = Field(default_factory=_new_id, description="Primary key")
    name: str = Field(..., description="Unique role name")

    model_config = ConfigDict(from_attributes=True)


class UserClaim(BaseModel):
    """Pydantic model for a row of the asp_net_user_claims table."""

    id: Optional[int] = Field(None, description="Serial primary key")
    user_id: str = Field(..., description="Owning user")
    claim_type: str = Field(..., description="Claim type URI or name")
    claim_value: Optional[str] = Field(None, description="Claim value")

    model_config = ConfigDict(from_attributes=True)


class UserLogin(BaseModel):
    """Pydantic model for a row of the asp_net_user_logins table."""

    login_provider: str = Field(..., description="External login provider name")
    provider_key: str = Field(..., description="User key at the provider")
    user_id: str = Field(..., description="Owning user")

    model_config = ConfigDict(from_attributes=True)


class IdentityResult(BaseModel):
    """Result of an identity operation."""

    succeeded: bool = Field(..., description="Whether the operation succeeded")
    errors: list[str] = Field(default_factory=list, description="Validation errors")

    @classmethod
    def success(cls) -> "IdentityResult":
        return cls(succeeded=True)

    @classmethod
    def failed(cls, *errors: str) -> "IdentityResult":
        return cls(succeeded=False, errors=list(errors))
