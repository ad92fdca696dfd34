# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication routes.

POST /api/auth/login   -> {"token": ..., "user": ...}
POST /api/auth/refresh -> rotates the bearer token
POST /api/auth/logout  -> revokes the bearer token
GET  /api/auth/me      -> current user and accessible shops
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import bearer_token, json_body, require_auth
from ..services import access_service, audit_service, auth_service, session_service
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _token_response(session, token: str, user, status: int = 200):
    return jsonify({
        "success": True,
        "data": {
            "token": token,
            "token_type": "Bearer",
            "expires_at": to_utc_z(session.expires_at),
            "user": user.to_dict(),
        },
    }), status


@auth_bp.post("/login")
def login():
    data = json_body()
    identifier = data.get("username") or data.get("email")
    password = data.get("password")

    if not identifier or not password:
        return jsonify({
            "success": False,
            "message": "username (or email) and password are required",
            "errors": {"username": "required", "password": "required"},
        }), 422

    user = auth_service.authenticate(identifier, password)
    if user is None:
        audit_service.log_security_event(
            user_id=None,
            event_type=audit_service.LOGIN_FAILED,
            success=False,
            resource="auth",
            action="login",
            reason=f"Invalid credentials for '{identifier}'",
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({"success": False, "message": "Invalid credentials"}), 401

    session, token = session_service.create_session(
        user,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    audit_service.log_security_event(
        user_id=user.id,
        event_type=audit_service.LOGIN_SUCCESS,
        success=True,
        resource="auth",
        action="login",
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
        shop_id=user.shop_id,
    )
    return _token_response(session, token, user)


@auth_bp.post("/refresh")
@require_auth
def refresh():
    session, token = session_service.refresh_session(g.context)
    return _token_response(session, token, g.current_user)


@auth_bp.post("/logout")
@require_auth
def logout():
    session_service.revoke_session(bearer_token())
    audit_service.log_context_event(
        g.context,
        audit_service.LOGOUT,
        True,
        resource="auth",
        action="logout",
        shop_id=g.context.shop_id,
    )
    return jsonify({"success": True, "message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me():
    shop_ids = access_service.accessible_shop_ids(g.current_user)
    return jsonify({
        "success": True,
        "data": {
            "user": g.current_user.to_dict(),
            "shop_ids": sorted(shop_ids) if shop_ids is not None else None,
        },
    }), 200
