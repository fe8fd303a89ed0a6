from typing import Optional, Union

from fastapi import APIRouter, Depends, status

from ..core.deps import get_auth_service, get_current_user, get_session_issuer
from ..core.errors import (
    ConflictError,
    NotFoundError,
    ServiceError,
    UnauthorizedError,
)
from ..models.user import User
from ..schemas.auth import (
    ConnectWalletRequest,
    EmailVerificationRequired,
    RefreshTokenRequest,
    SigninRequest,
    TokenResponse,
    UsernameSuggestion,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from ..schemas.user import UserResponse
from ..services.auth import AuthService
from ..services.sessions import SessionIssuer, TokenPair

router = APIRouter()


def token_response(pair: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
        username=pair.username,
    )


@router.post(
    "/signin",
    status_code=status.HTTP_201_CREATED,
    response_model=Union[TokenResponse, EmailVerificationRequired],
)
async def signin(
    signin_data: SigninRequest,
    auth_service: AuthService = Depends(get_auth_service),
    issuer: SessionIssuer = Depends(get_session_issuer),
):
    """Sign in with a wallet address, an email or a Web3Auth idToken."""
    try:
        result = await auth_service.authenticate(
            signin_data.login_method.value,
            address=signin_data.address,
            email=signin_data.email,
            id_token=signin_data.id_token,
            username=signin_data.username,
        )
    except ConflictError:
        raise
    except ServiceError as e:
        raise UnauthorizedError(e.message) from e

    if result.needs_email_verification:
        return EmailVerificationRequired(email=result.user.email)

    return token_response(issuer.issue(result.user.id, result.user.username))


@router.post(
    "/refresh", status_code=status.HTTP_201_CREATED, response_model=TokenResponse
)
async def refresh_access_token(
    request_data: RefreshTokenRequest,
    issuer: SessionIssuer = Depends(get_session_issuer),
):
    """Refresh access token using refresh token."""
    return token_response(issuer.refresh(request_data.refresh_token))


@router.post(
    "/connect-wallet", status_code=status.HTTP_201_CREATED, response_model=UserResponse
)
async def connect_wallet(
    wallet_data: ConnectWalletRequest,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
):
    """Attach a wallet address to the signed-in account."""
    try:
        return auth_service.connect_wallet(
            current_user.id, wallet_data.address, wallet_data.login_method.value
        )
    except ServiceError as e:
        raise UnauthorizedError(e.message or "Failed to connect wallet") from e


@router.post("/verify-email", response_model=VerifyEmailResponse)
async def verify_email(
    verify_data: VerifyEmailRequest,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Verify user email with the emailed 6-digit code."""
    try:
        user = auth_service.verify_email(verify_data.token)
    except NotFoundError:
        raise
    except ServiceError as e:
        raise UnauthorizedError(e.message or "Email verification failed") from e

    return VerifyEmailResponse(
        id=user.id,
        email=user.email,
        isEmailVerified=user.is_email_verified,
    )


@router.get("/username-suggest", response_model=UsernameSuggestion)
async def username_suggest(
    base: Optional[str] = None,
    auth_service: AuthService = Depends(get_auth_service),
):
    """Suggest a username nobody holds yet."""
    return UsernameSuggestion(username=auth_service.suggest_username(base))
