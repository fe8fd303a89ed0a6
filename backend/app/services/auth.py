"""
Login flow: find-or-create users, email verification codes, wallet linking.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Protocol, Union
from uuid import UUID

from ..core.config import Settings
from ..core.errors import ConflictError, NotFoundError, UnauthorizedError
from ..models.user import User, as_utc, utcnow
from .credentials import CredentialVerifier, Identity, normalize_address
from .users import UserStore

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 10


class VerificationSender(Protocol):
    async def send_verification_code(self, email: str, code: str) -> None: ...


def generate_verification_code() -> str:
    """Six random digits, 100000-999999."""
    return str(100000 + secrets.randbelow(900000))


@dataclass
class AuthResult:
    user: User
    identity: Identity

    @property
    def needs_email_verification(self) -> bool:
        return self.identity.is_email


class AuthService:
    def __init__(
        self,
        store: UserStore,
        verifier: CredentialVerifier,
        mailer: VerificationSender,
        settings: Settings,
    ):
        self.store = store
        self.verifier = verifier
        self.mailer = mailer
        self.settings = settings

    async def authenticate(
        self,
        login_method: str,
        address: Optional[str] = None,
        email: Optional[str] = None,
        id_token: Optional[str] = None,
        username: Optional[str] = None,
    ) -> AuthResult:
        """Verify the credential and return the matching, possibly new, user."""
        identity = await self.verifier.verify(
            login_method,
            address=address,
            email=email,
            id_token=id_token,
            username=username,
        )
        if identity.is_email:
            user = await self._authenticate_email(identity)
        else:
            user = self._authenticate_wallet(identity)
        return AuthResult(user=user, identity=identity)

    def _authenticate_wallet(self, identity: Identity) -> User:
        user = self.store.get_by_address(identity.address)
        if user is not None:
            return user
        return self.store.create(
            address=identity.address,
            login_method=identity.login_method,
            username=identity.username,
        )

    async def _authenticate_email(self, identity: Identity) -> User:
        # a fresh code on every attempt; email is never trusted from an earlier session
        code = self._new_verification_code()
        expires = self._code_expiry()

        user = self.store.get_by_email(identity.email)
        if user is None:
            user = self.store.create(
                email=identity.email,
                login_method=identity.login_method,
                username=identity.username,
                is_email_verified=False,
                email_verify_token=code,
                email_verification_expires=expires,
            )
        else:
            user = self.store.update(
                user,
                email_verify_token=code,
                email_verification_expires=expires,
                is_email_verified=False,
            )

        await self.mailer.send_verification_code(identity.email, code)
        return user

    def _new_verification_code(self) -> str:
        # pending codes are looked up globally, so they must not collide
        for _ in range(MAX_CODE_ATTEMPTS):
            code = generate_verification_code()
            if self.store.get_by_verification_code(code) is None:
                return code
        raise ConflictError("Could not allocate a free verification code")

    def _code_expiry(self):
        minutes = self.settings.EMAIL_VERIFICATION_EXPIRE_MINUTES
        if minutes <= 0:
            return None
        return utcnow() + timedelta(minutes=minutes)

    def verify_email(self, code: str) -> User:
        """Mark the owner of a pending code as verified and clear the code."""
        user = self.store.get_by_verification_code(code)
        if user is None:
            raise NotFoundError("Verification code not found or expired")

        expires = user.email_verification_expires
        if expires is not None and as_utc(expires) < utcnow():
            logger.info(f"Expired verification code used for user {user.id}")
            raise NotFoundError("Verification code not found or expired")

        return self.store.update(
            user,
            is_email_verified=True,
            email_verify_token=None,
            email_verification_expires=None,
        )

    def connect_wallet(
        self, user_id: Union[str, UUID], address: str, login_method: str
    ) -> User:
        """Attach a wallet address to an existing account."""
        address = normalize_address(address)
        owner = self.store.get_by_address(address)
        if owner is not None and str(owner.id) != str(user_id):
            raise UnauthorizedError(
                "This wallet address is already connected to another account"
            )

        user = self.store.get(user_id)
        if user is None:
            raise NotFoundError("User not found")

        return self.store.update(user, address=address, login_method=login_method)

    def suggest_username(self, base: Optional[str] = None) -> str:
        return self.store.generate_unique_username(base or "user")
