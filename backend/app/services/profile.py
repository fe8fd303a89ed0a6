from typing import Optional, Union
from uuid import UUID

from ..core.errors import BadRequestError, ConflictError, NotFoundError
from ..models.user import User
from .users import UserStore


class ProfileService:
    """Profile reads and username management for signed-in users."""

    def __init__(self, store: UserStore):
        self.store = store

    def get_profile(self, user_id: Union[str, UUID]) -> User:
        user = self.store.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    def check_username(self, username: Optional[str]) -> dict:
        username = (username or "").strip()
        if not username:
            raise BadRequestError("Username is required")
        return {
            "username": username,
            "isAvailable": self.store.get_by_username(username) is None,
        }

    def change_username(self, user_id: Union[str, UUID], username: str) -> User:
        user = self.get_profile(user_id)
        if not self.store.is_username_available(username, exclude_user_id=user.id):
            raise ConflictError("Username already taken")
        if user.username == username:
            return user
        return self.store.update(user, username=username)
