import logging
from typing import Generator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from .config import Settings

logger = logging.getLogger(__name__)


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        options = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every session sees an empty database
            options["poolclass"] = StaticPool
        return options
    return {
        "pool_pre_ping": True,
        "pool_recycle": 300,  # Recycle connections every 5 minutes
        "pool_size": 10,
        "max_overflow": 20,
    }


@retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_exception_type((Exception,)),
    reraise=True,
)
def create_database_engine(settings: Settings) -> Engine:
    """Create database engine with retry logic."""
    url = settings.DATABASE_URL
    logger.info(
        f"Attempting to connect to database: {url.split('@')[1] if '@' in url else 'hidden'}"
    )

    engine = create_engine(url, echo=settings.DEBUG, **_engine_options(url))

    # Test the connection
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
        logger.info("Database connection successful!")

    return engine


def get_db(request: Request) -> Generator[Session, None, None]:
    """Get database session bound to the application's engine."""
    with Session(request.app.state.engine) as session:
        yield session
