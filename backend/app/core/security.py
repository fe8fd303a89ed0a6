import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt


def _create_token(
    subject: str,
    secret: str,
    expires_in: int,
    algorithm: str,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": subject,
        "iat": now,
        "exp": now + timedelta(seconds=expires_in),
        "jti": uuid.uuid4().hex,
    }
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, secret, algorithm=algorithm)


def create_access_token(
    subject: str, secret: str, expires_in: int, algorithm: str = "HS256"
) -> str:
    """Create a short-lived access token for ``subject``."""
    return _create_token(subject, secret, expires_in, algorithm)


def create_refresh_token(
    subject: str, secret: str, expires_in: int, algorithm: str = "HS256"
) -> str:
    """Create a refresh token; it carries ``refresh: true`` and is only good for /auth/refresh."""
    return _create_token(subject, secret, expires_in, algorithm, {"refresh": True})


def decode_jwt_token(token: str, secret: str, algorithm: str = "HS256") -> Dict[str, Any]:
    """Decode a token, checking signature and expiry.

    Raises ``jwt.PyJWTError`` on any failure.
    """
    return jwt.decode(
        token,
        secret,
        algorithms=[algorithm],
        options={"require": ["sub", "exp"]},
    )


def verify_token(token: str, secret: str, algorithm: str = "HS256") -> Optional[str]:
    """Return the subject of a valid access token, or None."""
    try:
        payload = decode_jwt_token(token, secret, algorithm)
    except jwt.PyJWTError:
        return None
    if payload.get("refresh"):
        return None
    subject = payload.get("sub")
    return subject if isinstance(subject, str) else None
