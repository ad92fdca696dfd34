# Overview: Request decorators for authentication, admin checks, and JSON bodies.

from functools import wraps

from flask import g, jsonify, request

from .services import session_service
from .validation import ValidationError


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_auth(f):
    """
    Require a valid bearer token.

    Sets on flask.g:
    - g.current_user: the authenticated User
    - g.context: the SessionContext passed into every service call

    Returns 401 for a missing, invalid, expired or revoked token.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"success": False, "message": "Authentication required"}), 401

        context = session_service.validate_session(
            token,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        if not context:
            return jsonify({"success": False, "message": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.context = context
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require an authenticated admin. Use after @require_auth."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not getattr(g, "current_user", None) or not g.current_user.is_admin:
            return jsonify({"success": False, "message": "Admin role required"}), 403
        return f(*args, **kwargs)

    return decorated_function


def json_body() -> dict:
    """Request JSON as a dict; anything else is a 422."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data
