from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

USERNAME_FIELD = dict(min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$")
ADDRESS_FIELD = dict(min_length=1, max_length=128, pattern=r"^(0x)?[0-9A-Za-z]+$")


class LoginMethod(str, Enum):
    EMAIL = "email"
    GOOGLE = "google"
    FACEBOOK = "facebook"
    TWITTER = "twitter"
    METAMASK = "metamask"
    WALLET_CONNECT = "wallet_connect"


class WalletLoginMethod(str, Enum):
    METAMASK = "metamask"
    WALLET_CONNECT = "wallet_connect"


class SigninRequest(BaseModel):
    """Sign-in request: an address or email, or a Web3Auth idToken."""

    login_method: LoginMethod = Field(alias="loginMethod")
    address: str | None = Field(default=None, **ADDRESS_FIELD)
    email: EmailStr | None = None
    id_token: str | None = Field(default=None, alias="idToken", min_length=1)
    username: str | None = Field(default=None, **USERNAME_FIELD)

    class Config:
        populate_by_name = True

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        return value.strip() if isinstance(value, str) else value


class TokenResponse(BaseModel):
    """JWT token pair."""

    access_token: str
    refresh_token: str
    expires_in: int
    username: str | None = None


class EmailVerificationRequired(BaseModel):
    """Returned by sign-in when a code was mailed instead of issuing tokens."""

    needsEmailVerification: bool = True
    email: EmailStr


class RefreshTokenRequest(BaseModel):
    """Refresh token request."""

    refresh_token: str = Field(min_length=1)


class ConnectWalletRequest(BaseModel):
    """Attach a wallet address to the signed-in account."""

    address: str = Field(**ADDRESS_FIELD)
    login_method: WalletLoginMethod = Field(alias="loginMethod")

    class Config:
        populate_by_name = True


class VerifyEmailRequest(BaseModel):
    token: str = Field(pattern=r"^[0-9]{6}$")


class VerifyEmailResponse(BaseModel):
    id: UUID
    email: EmailStr | None
    isEmailVerified: bool
    message: str = "Email verified successfully"


class UsernameSuggestion(BaseModel):
    username: str
