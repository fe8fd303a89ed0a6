"""
Unit tests for SQLModel database models.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from app.models import User, as_utc, utcnow


def test_user_creation(db_session):
    """Test creating a user."""
    user = User(address="0xABC", login_method="metamask", username="testuser")

    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)

    assert user.id is not None
    assert user.address == "0xABC"
    assert user.email is None
    assert user.is_email_verified is False
    assert user.email_verify_token is None
    assert user.email_verification_expires is None
    assert user.created_at is not None
    assert user.updated_at is not None


def test_timestamps_are_aware_utc():
    now = utcnow()
    assert now.utcoffset() == timedelta(0)
    assert abs(datetime.now(timezone.utc) - now) < timedelta(seconds=5)


def test_as_utc_attaches_missing_offset():
    naive = datetime(2024, 1, 1, 12, 0)
    aware = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    assert as_utc(naive) == aware
    assert as_utc(aware) is aware


def test_timestamps_survive_a_round_trip(db_session):
    expires = utcnow() + timedelta(minutes=15)
    user = User(
        email="a@b.com", login_method="email", email_verification_expires=expires
    )

    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)

    assert as_utc(user.email_verification_expires) == expires
    assert as_utc(user.created_at) <= utcnow()


@pytest.mark.parametrize("field", ["address", "email", "username"])
def test_unique_fields(db_session, field):
    values = {
        "address": "0xABC",
        "email": "a@b.com",
        "username": "duplicate",
    }
    db_session.add(User(login_method="metamask", **{field: values[field]}))
    db_session.commit()

    db_session.add(User(login_method="metamask", **{field: values[field]}))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_many_users_without_optional_fields(db_session):
    """NULL does not collide with NULL in unique columns."""
    db_session.add_all(
        [
            User(address="0x1", login_method="metamask"),
            User(address="0x2", login_method="metamask"),
            User(email="x@y.com", login_method="email"),
        ]
    )
    db_session.commit()
