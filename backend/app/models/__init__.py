"""
SQLModel models for the Web3 Auth service.

Exported here for Alembic migrations and the rest of the application.
"""

from .user import User, as_utc, utcnow

__all__ = ["User", "as_utc", "utcnow"]
