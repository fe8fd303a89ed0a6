"""
Application factory.

Everything the request handlers share (settings, database engine, mailer,
remote key set, credential verifier, WebSocket registry) is built here and
hung on ``app.state``; nothing is created at import time.
"""

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel

from .api import api_router, websocket_router
from .core.config import Settings
from .core.database import create_database_engine
from .core.email import VerificationMailer
from .core.errors import register_exception_handlers
from .core.jwks import RemoteKeySet
from .services.auth import VerificationSender
from .services.credentials import CredentialVerifier, Web3AuthVerifier
from .services.realtime import RealtimeNotifier
from .services.sessions import SessionIssuer
from .services.users import UserStore

logger = logging.getLogger(__name__)


def build_user_resolver(engine: Engine, settings: Settings):
    """Token -> user id lookup for WebSocket connections, one session per call."""

    def resolve(token: str) -> Optional[str]:
        with Session(engine) as db:
            user = SessionIssuer.from_settings(settings, UserStore(db)).resolve(token)
            return str(user.id) if user else None

    return resolve


def create_app(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[Engine] = None,
    mailer: Optional[VerificationSender] = None,
    key_set: Optional[RemoteKeySet] = None,
) -> FastAPI:
    settings = settings or Settings()
    engine = engine or create_database_engine(settings)
    mailer = mailer or VerificationMailer(settings)
    key_set = key_set or RemoteKeySet(
        settings.WEB3AUTH_JWKS_URL,
        cache_seconds=settings.WEB3AUTH_JWKS_CACHE_SECONDS,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )

    app = FastAPI(
        title="Web3 Auth API",
        description="Wallet, email and Web3Auth sign-in with JWT sessions",
        version="1.0.0",
        debug=settings.DEBUG,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.mailer = mailer
    app.state.key_set = key_set
    app.state.verifier = CredentialVerifier(
        Web3AuthVerifier(key_set, audience=settings.WEB3AUTH_CLIENT_ID)
    )
    app.state.notifier = RealtimeNotifier(build_user_resolver(engine, settings))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(api_router)
    app.include_router(websocket_router)

    # --- Event Handlers ---
    @app.on_event("startup")
    async def startup_event():
        logger.info("Starting up Web3 Auth API...")
        if settings.AUTO_CREATE_TABLES:
            logger.info("Auto-creating database tables...")
            SQLModel.metadata.create_all(engine)
            logger.info("Database tables created successfully!")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down Web3 Auth API...")
        await key_set.aclose()

    @app.get("/health")
    async def health_check():
        """Health check endpoint with database status."""
        status = {"status": "healthy", "database": "unknown"}
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            status["database"] = "connected"
        except Exception as e:
            status["database"] = f"error: {str(e)}"
            status["status"] = "degraded"
        return status

    return app
