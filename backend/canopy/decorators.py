# Overview: Request decorators for API routes (authentication, module access).

from functools import wraps

from flask import g, jsonify, request

from .permissions import READ, WRITE, has_module_access
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, "current_user") and hasattr(g, "location_id")


def require_auth(f):
    """
    Require a bearer token and establish the tenant context.

    Sets:
    - g.current_user: the authenticated User
    - g.location_id: the location captured by the session
    - g.session_context: the full SessionContext

    Returns 401 for a missing, invalid, expired or revoked token.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)
        if context is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.location_id = context.location_id
        g.session_context = context
        g.auth_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_module(module: str):
    """
    Require the current user's role to grant access to `module`.

    GET/HEAD need read access; every other method needs write access.
    Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            level = READ if request.method in ("GET", "HEAD") else WRITE
            if not has_module_access(g.current_user.role, module, level):
                return jsonify({
                    "error": "Permission denied",
                    "required_module": module,
                    "required_access": level,
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
