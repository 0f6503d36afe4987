"""
bookapi/models/account.py: Account schemas.

Input schemas carry the registration constraints (username ≥ 3 characters,
valid email, password ≥ 6 characters). Output schemas never include the
password hash or OTP fields.

Emails are kept exactly as submitted (only surrounding whitespace is
removed), so the stored address is the one Login looks up. Passwords are
opaque: never stripped, and limited to the 72 bytes bcrypt can hash.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from pydantic import AfterValidator, Field, StringConstraints, model_validator
from pydantic.networks import validate_email

from bookapi.models.common import BookApiBase
from bookapi.models.enums import AccountRole, AccountStatus, LifecycleState, lifecycle_state

USERNAME_MIN_LENGTH = 3
PASSWORD_MIN_LENGTH = 6
BCRYPT_MAX_BYTES = 72


def _check_email(value: str) -> str:
    value = value.strip()
    _, normalized = validate_email(value)
    # display-name forms ("Alice <a@x.com>") normalize to a different address
    if normalized.casefold() != value.casefold():
        raise ValueError("value is not a valid email address")
    return value


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes in UTF-8")
    return value


Username = Annotated[
    str, StringConstraints(strip_whitespace=True, min_length=USERNAME_MIN_LENGTH, max_length=64),
]
Email = Annotated[str, AfterValidator(_check_email)]
Password = Annotated[
    str, StringConstraints(min_length=PASSWORD_MIN_LENGTH), AfterValidator(_check_password_bytes),
]

_KEEP_WHITESPACE = {"str_strip_whitespace": False}


class AccountRegister(BookApiBase):
    """Self-service registration request."""
    model_config = _KEEP_WHITESPACE

    username: Username = Field(..., examples=["alice"])
    email: Email = Field(..., examples=["alice@books.io"])
    password: Password
    role: str | None = Field(
        default=None,
        description="Requested role. Ignored unless 'manager' is requested by an admin.",
    )


class ManagerCreate(BookApiBase):
    """Admin-only manager creation request."""
    model_config = _KEEP_WHITESPACE

    username: Username
    email: Email
    password: Password


class ProfileUpdate(BookApiBase):
    """Partial profile update: only supplied fields are changed."""
    model_config = _KEEP_WHITESPACE

    username: Username | None = None
    email: Email | None = None
    password: Password | None = None

    @model_validator(mode="after")
    def _at_least_one(self) -> "ProfileUpdate":
        if self.username is None and self.email is None and self.password is None:
            raise ValueError("At least one of username, email, password is required")
        return self


class OtpVerify(BookApiBase):
    email: Email
    otp: str = Field(..., pattern=r"^\d{6}$", examples=["123456"])


class OtpResend(BookApiBase):
    email: Email


class LoginRequest(BookApiBase):
    model_config = _KEEP_WHITESPACE

    email: Annotated[str, StringConstraints(strip_whitespace=True)]
    password: str


class RejectRequest(BookApiBase):
    reason: str | None = Field(default=None, max_length=500)


class AccountRead(BookApiBase):
    """Public projection of an account (no password, no OTP)."""
    id: UUID
    username: str
    email: str
    role: AccountRole
    status: AccountStatus
    state: LifecycleState
    email_verified: bool = False
    verified_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict) -> "AccountRead":
        return cls(
            id=row["account_id"],
            username=row["username"],
            email=row["email"],
            role=row["role"],
            status=row["status"],
            state=lifecycle_state(row),
            email_verified=row.get("email_verified", False),
            verified_at=row.get("verified_at"),
            created_at=row.get("created_at"),
        )


class AccountPage(BookApiBase):
    items: list[AccountRead]
    total: int
    limit: int
    offset: int


class RegistrationResult(BookApiBase):
    id: UUID
    email: str
    message: str = "Registration successful. Check your email for the verification code."


class SessionProfile(BookApiBase):
    """Minimal profile returned on login."""
    id: UUID
    username: str
    role: AccountRole


class LoginResponse(BookApiBase):
    token: str
    token_type: str = "bearer"
    expires_in: int
    user: SessionProfile


class MessageResponse(BookApiBase):
    message: str
