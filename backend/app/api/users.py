from typing import Optional

from fastapi import APIRouter, Depends

from ..core.deps import get_current_user, get_profile_service
from ..models.user import User
from ..schemas.user import UpdateUsernameRequest, UserResponse, UsernameAvailability
from ..services.profile import ProfileService

router = APIRouter()


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user),
    profile_service: ProfileService = Depends(get_profile_service),
):
    """Get current user information."""
    return profile_service.get_profile(current_user.id)


@router.get("/username/check", response_model=UsernameAvailability)
async def check_username(
    username: Optional[str] = None,
    profile_service: ProfileService = Depends(get_profile_service),
):
    """Check whether a username is still free."""
    return profile_service.check_username(username)


@router.put("/username", response_model=UserResponse)
async def update_username(
    username_data: UpdateUsernameRequest,
    current_user: User = Depends(get_current_user),
    profile_service: ProfileService = Depends(get_profile_service),
):
    """Change the signed-in user's username."""
    return profile_service.change_username(current_user.id, username_data.username)
