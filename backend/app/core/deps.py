from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from .config import Settings
from .database import get_db
from .errors import UnauthorizedError
from ..models.user import User
from ..services.auth import AuthService
from ..services.profile import ProfileService
from ..services.sessions import SessionIssuer
from ..services.users import UserStore

# missing headers are reported through UnauthorizedError, not FastAPI's 403
security = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_user_store(db: Session = Depends(get_db)) -> UserStore:
    return UserStore(db)


def get_session_issuer(
    settings: Settings = Depends(get_settings),
    store: UserStore = Depends(get_user_store),
) -> SessionIssuer:
    return SessionIssuer.from_settings(settings, store)


def get_auth_service(
    request: Request,
    settings: Settings = Depends(get_settings),
    store: UserStore = Depends(get_user_store),
) -> AuthService:
    return AuthService(
        store,
        verifier=request.app.state.verifier,
        mailer=request.app.state.mailer,
        settings=settings,
    )


def get_profile_service(store: UserStore = Depends(get_user_store)) -> ProfileService:
    return ProfileService(store)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    issuer: SessionIssuer = Depends(get_session_issuer),
) -> User:
    """Get the current authenticated user."""
    if credentials is None:
        raise UnauthorizedError("Missing bearer token")

    user = issuer.resolve(credentials.credentials)
    if user is None:
        raise UnauthorizedError("Could not validate credentials")
    return user
