"""
Persistence for :class:`~app.models.user.User` records.

The store is the only place that talks to the database about users. It works
on a caller-owned SQLModel session, one per request.
"""

import logging
import re
import secrets
from typing import Any, Optional, Union
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ..core.errors import ConflictError, UsernameTakenError
from ..models.user import User, utcnow

logger = logging.getLogger(__name__)

USERNAME_MAX_LENGTH = 30
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,30}$")
MAX_USERNAME_ATTEMPTS = 50

_SUFFIX_LENGTH = 5  # "_" + 4 digits
_UNSAFE_USERNAME_CHARS = re.compile(r"[^a-z0-9_]")


def sanitize_username_base(base: Optional[str]) -> str:
    """Lowercase ``base`` and strip it to ``[a-z0-9_]``, falling back to ``user``."""
    sanitized = _UNSAFE_USERNAME_CHARS.sub("", (base or "").lower())
    sanitized = sanitized[: USERNAME_MAX_LENGTH - _SUFFIX_LENGTH]
    return sanitized or "user"


class UserStore:
    """User lookups, creation and partial updates."""

    def __init__(self, db: Session):
        self.db = db

    # --- Lookups ---

    def get(self, user_id: Union[str, UUID, None]) -> Optional[User]:
        if not user_id:
            return None
        if not isinstance(user_id, UUID):
            try:
                user_id = UUID(str(user_id))
            except ValueError:
                return None
        return self.db.get(User, user_id)

    def get_by_address(self, address: Optional[str]) -> Optional[User]:
        if not address:
            return None
        return self.db.exec(select(User).where(User.address == address)).first()

    def get_by_email(self, email: Optional[str]) -> Optional[User]:
        if not email:
            return None
        return self.db.exec(select(User).where(User.email == email)).first()

    def get_by_username(self, username: Optional[str]) -> Optional[User]:
        if not username:
            return None
        return self.db.exec(select(User).where(User.username == username)).first()

    def get_by_verification_code(self, code: Optional[str]) -> Optional[User]:
        if not code:
            return None
        return self.db.exec(select(User).where(User.email_verify_token == code)).first()

    def is_username_available(
        self, username: str, exclude_user_id: Optional[UUID] = None
    ) -> bool:
        existing = self.get_by_username(username)
        return existing is None or existing.id == exclude_user_id

    # --- Writes ---

    def create(
        self,
        *,
        login_method: str,
        address: Optional[str] = None,
        email: Optional[str] = None,
        username: Optional[str] = None,
        **fields: Any,
    ) -> User:
        """Create a user; an absent username is generated from the email local part."""
        if not address and not email:
            raise ValueError("A user needs an address or an email")

        if username:
            if self.get_by_username(username):
                raise UsernameTakenError()
        else:
            base = email.split("@")[0] if email else "user"
            username = self.generate_unique_username(base)

        user = User(
            address=address,
            email=email,
            username=username,
            login_method=login_method,
            **fields,
        )
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning(f"User creation hit a unique constraint: {exc.orig}")
            raise ConflictError("User with these credentials already exists") from exc
        self.db.refresh(user)
        logger.info(f"Created user {user.id} via {login_method}")
        return user

    def update(self, user: User, **fields: Any) -> User:
        """Apply a partial update to ``user`` and commit it."""
        for name, value in fields.items():
            setattr(user, name, value)
        user.updated_at = utcnow()
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning(f"Update of user {user.id} hit a unique constraint: {exc.orig}")
            raise ConflictError("Update conflicts with another account") from exc
        self.db.refresh(user)
        return user

    # --- Usernames ---

    def generate_unique_username(self, base: Optional[str] = "user") -> str:
        """Return ``<base>_NNNN`` that no user currently holds."""
        sanitized = sanitize_username_base(base)
        for _ in range(MAX_USERNAME_ATTEMPTS):
            candidate = f"{sanitized}_{1000 + secrets.randbelow(9000)}"
            if self.get_by_username(candidate) is None:
                return candidate
        logger.error(
            f"Username namespace for '{sanitized}' exhausted after {MAX_USERNAME_ATTEMPTS} attempts"
        )
        raise ConflictError(f"Could not generate a unique username for '{sanitized}'")
