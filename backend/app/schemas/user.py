from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from .auth import USERNAME_FIELD


class UserResponse(BaseModel):
    """User response model. The pending verification code is never exposed."""

    id: UUID
    address: str | None = None
    email: str | None = None
    username: str | None = None
    login_method: str = Field(serialization_alias="loginMethod")
    is_email_verified: bool = Field(serialization_alias="isEmailVerified")
    created_at: datetime = Field(serialization_alias="createdAt")
    updated_at: datetime = Field(serialization_alias="updatedAt")

    class Config:
        from_attributes = True


class UpdateUsernameRequest(BaseModel):
    username: str = Field(**USERNAME_FIELD)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        return value.strip() if isinstance(value, str) else value


class UsernameAvailability(BaseModel):
    username: str
    isAvailable: bool
