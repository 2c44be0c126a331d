# Overview: User accounts and password authentication.

"""
Authentication Service

- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, default 12).
- Minimum 8 characters with at least one letter and one digit.
- Users belong to exactly one location; usernames are unique per location.
- Session tokens are handled by session_service.
"""

from __future__ import annotations

import logging
import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import Location, User
from ..permissions import ROLES, ROLE_VIEWER
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError
from .session_service import revoke_all_user_sessions

logger = logging.getLogger(__name__)

DEFAULT_BCRYPT_ROUNDS = 12


def validate_password_strength(password) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise ValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise ValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise ValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", DEFAULT_BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw compares in constant time. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(
    location_id: int,
    username,
    password,
    role: str = ROLE_VIEWER,
    email: str | None = None,
) -> User:
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("username is required")
    username = username.strip()
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")

    location = db.session.query(Location).filter_by(id=location_id).first()
    if location is None:
        raise NotFoundError("Location not found")

    existing = db.session.query(User).filter_by(location_id=location_id, username=username).first()
    if existing is not None:
        raise ValidationError(f"Username '{username}' already exists at this location")

    user = User(
        location_id=location_id,
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()

    logger.info("User created: location=%s user=%s role=%s", location_id, user.id, role)
    return user


def authenticate(username: str, password: str, location_ubi: str | None = None) -> User | None:
    """
    Check credentials; returns the User or None.

    With location_ubi the lookup is scoped to that location (usernames are
    only unique per location). Without it, an ambiguous username fails.
    """
    if not username or not password:
        return None

    query = db.session.query(User).filter(User.username == username, User.is_active.is_(True))
    if location_ubi is not None:
        query = query.join(Location, User.location_id == Location.id).filter(Location.ubi == location_ubi)

    candidates = query.all()
    if len(candidates) != 1:
        return None
    user = candidates[0]

    location = db.session.query(Location).filter_by(id=user.location_id).first()
    if location is None or not location.is_active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def deactivate_user(location_id: int, user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id, location_id=location_id).first()
    if user is None:
        raise NotFoundError("User not found")
    user.is_active = False
    db.session.commit()
    revoked = revoke_all_user_sessions(user.id)
    logger.info("User %s deactivated, %s session(s) revoked", user.id, revoked)
    return user
