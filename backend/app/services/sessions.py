import logging
from dataclasses import dataclass
from typing import Optional, Union
from uuid import UUID

import jwt

from ..core.config import Settings
from ..core.errors import UnauthorizedError
from ..core.security import (
    create_access_token,
    create_refresh_token,
    decode_jwt_token,
    verify_token,
)
from ..models.user import User
from .users import UserStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    username: Optional[str] = None


class SessionIssuer:
    """Mints access/refresh token pairs and resolves bearer tokens to users.

    Tokens are HS256-signed with one process-wide secret; nothing is stored
    server side, so a pair is a pure function of user id, time and secret.
    """

    def __init__(
        self,
        store: UserStore,
        secret: str,
        access_expires_in: int = 3600,
        refresh_expires_in: int = 604800,
        algorithm: str = "HS256",
    ):
        self.store = store
        self.secret = secret
        self.access_expires_in = access_expires_in
        self.refresh_expires_in = refresh_expires_in
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings, store: UserStore) -> "SessionIssuer":
        return cls(
            store,
            secret=settings.SECRET_KEY,
            access_expires_in=settings.ACCESS_TOKEN_EXPIRE_SECONDS,
            refresh_expires_in=settings.REFRESH_TOKEN_EXPIRE_SECONDS,
            algorithm=settings.JWT_ALGORITHM,
        )

    def issue(self, user_id: Union[str, UUID], username: Optional[str] = None) -> TokenPair:
        subject = str(user_id)
        return TokenPair(
            access_token=create_access_token(
                subject, self.secret, self.access_expires_in, self.algorithm
            ),
            refresh_token=create_refresh_token(
                subject, self.secret, self.refresh_expires_in, self.algorithm
            ),
            expires_in=self.access_expires_in,
            username=username,
        )

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a valid refresh token for a fresh pair."""
        try:
            payload = decode_jwt_token(refresh_token, self.secret, self.algorithm)
        except jwt.PyJWTError as exc:
            logger.debug(f"Refresh token rejected: {exc}")
            raise UnauthorizedError("Invalid refresh token") from exc

        if payload.get("refresh") is not True:
            raise UnauthorizedError("Invalid refresh token")

        user = self.store.get(payload.get("sub"))
        if user is None:
            raise UnauthorizedError("User not found")

        return self.issue(user.id, user.username)

    def resolve(self, access_token: Optional[str]) -> Optional[User]:
        """Return the user behind an access token, or None for any invalid token."""
        if not access_token:
            return None
        user_id = verify_token(access_token, self.secret, self.algorithm)
        if user_id is None:
            return None
        return self.store.get(user_id)
