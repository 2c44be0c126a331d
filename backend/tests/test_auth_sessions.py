# Overview: Pytest coverage for passwords, login and session tokens.

from datetime import timedelta

import pytest

from canopy.models import SessionToken
from canopy.services import auth_service, session_service
from canopy.time_utils import utcnow
from canopy.validation import ValidationError


class TestPasswords:

    @pytest.mark.parametrize("password", ["short1", "allletters", "12345678", None])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(ValidationError):
            auth_service.validate_password_strength(password)

    def test_hash_and_verify(self, app):
        hashed = auth_service.hash_password("Password123")
        assert hashed != "Password123"
        assert auth_service.verify_password("Password123", hashed)
        assert not auth_service.verify_password("Password124", hashed)
        assert not auth_service.verify_password("Password123", "not-a-bcrypt-hash")

    def test_unknown_role_rejected(self, db_session, location_a):
        with pytest.raises(ValidationError):
            auth_service.create_user(location_a.id, "someone", "Password123", role="superuser")

    def test_duplicate_username_rejected(self, db_session, admin_a, location_a):
        with pytest.raises(ValidationError):
            auth_service.create_user(location_a.id, "admin_a", "Password123")


class TestSessions:

    def test_token_is_stored_hashed(self, db_session, admin_a):
        session, token = session_service.create_session(admin_a.id)
        assert session.token_hash == session_service.hash_token(token)
        assert token not in session.token_hash
        assert session.location_id == admin_a.location_id

    def test_validate_and_revoke(self, db_session, admin_a):
        _, token = session_service.create_session(admin_a.id)

        context = session_service.validate_session(token)
        assert context.user.id == admin_a.id
        assert context.location_id == admin_a.location_id

        assert session_service.revoke_session(token) is True
        assert session_service.validate_session(token) is None
        assert session_service.revoke_session(token) is False

    def test_idle_session_revoked(self, db_session, admin_a):
        session, token = session_service.create_session(admin_a.id)
        session.last_used_at = utcnow() - timedelta(hours=5)
        db_session.commit()

        assert session_service.validate_session(token) is None
        assert db_session.get(SessionToken, session.id).revoked_at is not None

    def test_deactivated_user_loses_session(self, db_session, admin_a):
        _, token = session_service.create_session(admin_a.id)
        auth_service.deactivate_user(admin_a.location_id, admin_a.id)

        assert session_service.validate_session(token) is None

    def test_revoke_all(self, db_session, admin_a):
        session_service.create_session(admin_a.id)
        session_service.create_session(admin_a.id)
        assert session_service.revoke_all_user_sessions(admin_a.id) == 2


def test_login_me_logout(client, admin_a, location_a):
    resp = client.post("/api/auth/login", json={"username": "admin_a", "password": "Password123"})
    assert resp.status_code == 200
    token = resp.json["token"]
    assert resp.json["modules"]["cultivation"] == "write"

    headers = {"Authorization": f"Bearer {token}"}
    resp = client.get("/api/auth/me", headers=headers)
    assert resp.status_code == 200
    assert resp.json["location_id"] == location_a.id

    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/auth/me", headers=headers).status_code == 401


def test_wrong_password(client, admin_a):
    resp = client.post("/api/auth/login", json={"username": "admin_a", "password": "Wrong12345"})
    assert resp.status_code == 401


def test_health(client, db_session):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json["checks"]["database"]["details"]["inventory_types"] > 0
