from sqlmodel import SQLModel, Field
from sqlalchemy import DateTime
from uuid import UUID, uuid4
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to values read back from backends that drop the offset (SQLite)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class User(SQLModel, table=True):
    """User account identified by a wallet address, an email, or both."""

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    address: Optional[str] = Field(default=None, unique=True, index=True, max_length=128)
    email: Optional[str] = Field(default=None, unique=True, index=True, max_length=255)
    username: Optional[str] = Field(default=None, unique=True, index=True, max_length=30)

    # How the account was last authenticated (metamask, email, google, ...)
    login_method: str = Field(max_length=64)

    # Email verification
    is_email_verified: bool = Field(default=False)
    email_verify_token: Optional[str] = Field(default=None, index=True, max_length=6)
    email_verification_expires: Optional[datetime] = Field(
        default=None, sa_type=DateTime(timezone=True)
    )

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
