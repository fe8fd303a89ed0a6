"""
Shared fixtures: in-memory database, settings, a recording mailer and an
application wired to all three.
"""

import os
import sys
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient
from jwt.algorithms import ECAlgorithm
from sqlmodel import Session, SQLModel

# Add backend to path for imports
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "backend"))

from app.core.config import Settings
from app.core.database import create_database_engine
from app.core.jwks import RemoteKeySet
from app.factory import create_app
from app.services.sessions import SessionIssuer
from app.services.users import UserStore

JWKS_URL = "https://auth.example.test/.well-known/jwks.json"
TEST_KID = "test-key-1"


class FakeMailer:
    """Records verification codes instead of sending them."""

    def __init__(self):
        self.sent = []

    async def send_verification_code(self, email, code):
        self.sent.append((email, code))

    @property
    def last_code(self):
        return self.sent[-1][1] if self.sent else None


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite://",
        SECRET_KEY="test-secret-key-that-is-long-enough-for-hs256",
        ACCESS_TOKEN_EXPIRE_SECONDS=3600,
        REFRESH_TOKEN_EXPIRE_SECONDS=604800,
        EMAIL_VERIFICATION_EXPIRE_MINUTES=15,
        WEB3AUTH_JWKS_URL=JWKS_URL,
        WEB3AUTH_CLIENT_ID=None,
        MAIL_FROM="noreply@example.com",
    )


@pytest.fixture
def engine(settings):
    """Create an in-memory SQLite engine for testing."""
    engine = create_database_engine(settings)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def store(db_session):
    return UserStore(db_session)


@pytest.fixture
def issuer(settings, store):
    return SessionIssuer.from_settings(settings, store)


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def signing_key():
    """ES256 key pair standing in for the identity provider."""
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def jwks(signing_key):
    jwk = ECAlgorithm.to_jwk(signing_key.public_key(), as_dict=True)
    jwk.update({"kid": TEST_KID, "use": "sig", "alg": "ES256"})
    return {"keys": [jwk]}


@pytest.fixture
def make_id_token(signing_key):
    def _make(claims, kid=TEST_KID, key=None, algorithm="ES256"):
        now = datetime.now(timezone.utc)
        payload = {"iat": now, "exp": now + timedelta(minutes=5), **claims}
        return jwt.encode(
            payload, key or signing_key, algorithm=algorithm, headers={"kid": kid}
        )

    return _make


@pytest.fixture
def app(settings, engine, mailer):
    key_set = RemoteKeySet(settings.WEB3AUTH_JWKS_URL)
    return create_app(settings, engine=engine, mailer=mailer, key_set=key_set)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
