# Overview: Flask API routes for login, logout and session introspection.

# backend/canopy/routes/auth.py
"""
Authentication API routes.

- Users are created by administrators (CLI: flask users create); there is
  no self-registration.
- Login returns a bearer token; the session it creates pins the user's
  location as the tenant context.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..permissions import modules_for_role
from ..services import auth_service, session_service
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Body: username, password, location_ubi (needed when the same username
    exists at several locations).
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not all([username, password]):
        return jsonify({"error": "username and password required"}), 400

    user = auth_service.authenticate(username, password, location_ubi=data.get("location_ubi"))
    if not user:
        current_app.logger.info("Failed login for username=%s", username)
        return jsonify({"error": "Invalid credentials"}), 401

    session, token = session_service.create_session(user.id)

    return jsonify({
        "user": user.to_dict(),
        "modules": modules_for_role(user.role),
        "token": token,
        "location_id": session.location_id,
        "expires_at": to_utc_z(session.expires_at),
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return jsonify({"error": "Authorization header required"}), 401

    token = auth_header.split(" ", 1)[1]
    if not session_service.revoke_session(token):
        return jsonify({"error": "Invalid or expired token"}), 401

    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "modules": modules_for_role(user.role),
        "location_id": g.location_id,
    }), 200
