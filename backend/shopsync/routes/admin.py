# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

"""
Admin routes for user management and the security audit trail.

All endpoints require an authenticated admin.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import json_body, require_admin, require_auth
from ..extensions import db
from ..models import User
from ..services import audit_service, auth_service
from ..validation import ValidationError, parse_int


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_admin
def list_users():
    """
    Query params:
    - include_inactive: bool (default false)
    - shop_id: int - filter by primary shop
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    shop_id = request.args.get("shop_id", type=int)

    query = db.session.query(User)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    if shop_id:
        query = query.filter_by(shop_id=shop_id)

    users = query.order_by(User.username).all()
    return jsonify({"success": True, "data": [user.to_dict() for user in users]}), 200


@admin_bp.post("/users")
@require_auth
@require_admin
def create_user():
    """
    Request body:
    {
        "username": "jane",
        "email": "jane@example.com",
        "password": "...",
        "role": "salesperson",    (optional)
        "shop_id": 1              (optional)
    }
    """
    data = json_body()
    user = auth_service.create_user(
        data.get("username"),
        data.get("email"),
        data.get("password"),
        role=data.get("role") or "salesperson",
        shop_id=parse_int(data.get("shop_id"), "shop_id", required=False, minimum=1),
    )

    audit_service.log_context_event(
        g.context,
        audit_service.USER_CREATED,
        True,
        resource=f"user:{user.id}",
        action="create",
        shop_id=user.shop_id,
    )
    return jsonify({"success": True, "data": user.to_dict()}), 201


@admin_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_admin
def deactivate_user(user_id: int):
    """Disable the account; its sessions stop working immediately."""
    if user_id == g.current_user.id:
        raise ValidationError("Cannot deactivate your own account", {"user_id": "self"})

    user, revoked = auth_service.deactivate_user(user_id)

    audit_service.log_context_event(
        g.context,
        audit_service.USER_DEACTIVATED,
        True,
        resource=f"user:{user.id}",
        action="deactivate",
        reason=f"Revoked {revoked} sessions",
        shop_id=user.shop_id,
    )
    return jsonify({"success": True, "data": user.to_dict(), "revoked_sessions": revoked}), 200


# =============================================================================
# AUDIT TRAIL
# =============================================================================

@admin_bp.get("/security-events")
@require_auth
@require_admin
def list_security_events():
    """Newest first. Query params: shop_id, event_type, limit (max 500)."""
    limit = min(request.args.get("limit", 100, type=int) or 100, 500)
    events = audit_service.list_security_events(
        shop_id=request.args.get("shop_id", type=int),
        event_type=request.args.get("event_type"),
        limit=limit,
    )
    return jsonify({"success": True, "data": [event.to_dict() for event in events]}), 200
