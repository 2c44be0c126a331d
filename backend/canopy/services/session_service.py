# Overview: Bearer session tokens: issue, validate, revoke.

"""
Session Token Management

- Tokens are 32 random bytes (hex) from `secrets`; only their SHA-256 hash
  is stored.
- Absolute lifetime SESSION_TTL_HOURS, idle timeout SESSION_IDLE_MINUTES
  (both from app config).
- The session captures the user's location at login; that location is the
  tenant context for every request made with the token.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Location, SessionToken, User
from ..time_utils import utcnow
from ..validation import ValidationError

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    user: User
    session: SessionToken
    location_id: int


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 is enough here: tokens are high-entropy, unlike passwords."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 12))


def _idle_timeout() -> timedelta:
    return timedelta(minutes=current_app.config.get("SESSION_IDLE_MINUTES", 120))


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """
    Issue a session for the user. Returns (session_record, plaintext_token);
    the plaintext goes to the client and is never stored.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if user is None or not user.is_active:
        raise ValidationError("User not found or inactive")

    location = db.session.query(Location).filter_by(id=user.location_id).first()
    if location is None or not location.is_active:
        raise ValidationError("Location is not active")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        location_id=user.location_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.revoked_at = utcnow()
    db.session.commit()
    logger.info("Session %s revoked: %s", session.id, reason)


def validate_session(token: str) -> SessionContext | None:
    """
    Return the SessionContext for a live token, or None.

    Idle sessions and sessions of deactivated users or locations are
    revoked on the spot. A valid call refreshes last_used_at.
    """
    session = (
        db.session.query(SessionToken)
        .filter(SessionToken.token_hash == hash_token(token), SessionToken.revoked_at.is_(None))
        .first()
    )
    if session is None:
        return None

    now = utcnow()
    if session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if user is None or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    location = db.session.query(Location).filter_by(id=session.location_id).first()
    if location is None or not location.is_active:
        _revoke(session, "Location deactivated")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, location_id=session.location_id)


def revoke_session(token: str) -> bool:
    """Returns True if a live session was revoked, False if none matched."""
    session = (
        db.session.query(SessionToken)
        .filter(SessionToken.token_hash == hash_token(token), SessionToken.revoked_at.is_(None))
        .first()
    )
    if session is None:
        return False
    _revoke(session, "User logout")
    return True


def revoke_all_user_sessions(user_id: int) -> int:
    now = utcnow()
    sessions = (
        db.session.query(SessionToken)
        .filter(SessionToken.user_id == user_id, SessionToken.revoked_at.is_(None))
        .all()
    )
    for session in sessions:
        session.revoked_at = now
    db.session.commit()
    return len(sessions)
