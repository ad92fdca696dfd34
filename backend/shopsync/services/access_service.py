# Overview: Service-layer operations for shop access; encapsulates business logic and database work.

"""
Shop-level access control.

Admins may act on every shop. Managers and salespeople may act on their
primary shop and on shops explicitly granted through UserShopAccess.
Every denial is written to the security audit trail.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Shop, User, UserShopAccess
from ..validation import AuthorizationError, NotFoundError
from . import audit_service


def accessible_shop_ids(user: User) -> set[int] | None:
    """Shop ids the user may act on; None means every shop (admin)."""
    if user.is_admin:
        return None
    rows = db.session.query(UserShopAccess.shop_id).filter_by(user_id=user.id).all()
    shop_ids = {row[0] for row in rows}
    if user.shop_id is not None:
        shop_ids.add(user.shop_id)
    return shop_ids


def can_access_shop(user: User, shop_id: int | None) -> bool:
    if user is None or shop_id is None or not user.is_active:
        return False
    if user.is_admin:
        return db.session.get(Shop, shop_id) is not None
    if user.shop_id == shop_id:
        return True
    return db.session.query(UserShopAccess.id).filter_by(
        user_id=user.id, shop_id=shop_id
    ).first() is not None


def record_denial(context, shop_id: int | None, *, resource: str, action: str) -> None:
    """Log a shop-access denial to the app log and the audit trail."""
    current_app.logger.warning(
        "Shop access denied: user=%s shop=%s resource=%s action=%s",
        context.user.id, shop_id, resource, action,
    )
    audit_service.log_context_event(
        context,
        audit_service.SHOP_ACCESS_DENIED,
        False,
        resource=resource,
        action=action,
        reason=f"User {context.user.id} has no access to shop {shop_id}",
        shop_id=shop_id,
    )


def require_shop_access(context, shop_id: int | None, *, resource: str, action: str) -> None:
    """Raise AuthorizationError (after auditing) unless the caller may act on shop_id."""
    if not can_access_shop(context.user, shop_id):
        record_denial(context, shop_id, resource=resource, action=action)
        raise AuthorizationError("Unauthorized")


def get_shop_or_404(shop_id: int) -> Shop:
    shop = db.session.get(Shop, shop_id)
    if not shop:
        raise NotFoundError(f"Shop {shop_id} not found")
    return shop


def grant_shop_access(*, user_id: int, shop_id: int, granted_by_user_id: int | None = None) -> UserShopAccess:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    get_shop_or_404(shop_id)

    existing = db.session.query(UserShopAccess).filter_by(user_id=user_id, shop_id=shop_id).first()
    if existing:
        return existing

    access = UserShopAccess(
        user_id=user_id,
        shop_id=shop_id,
        granted_by_user_id=granted_by_user_id,
    )
    db.session.add(access)
    audit_service.log_security_event(
        user_id=granted_by_user_id,
        event_type=audit_service.SHOP_ACCESS_GRANTED,
        success=True,
        resource=f"user:{user_id}",
        shop_id=shop_id,
        commit=False,
    )
    db.session.commit()
    return access


def revoke_shop_access(*, user_id: int, shop_id: int, revoked_by_user_id: int | None = None) -> bool:
    access = db.session.query(UserShopAccess).filter_by(user_id=user_id, shop_id=shop_id).first()
    if not access:
        return False

    db.session.delete(access)
    audit_service.log_security_event(
        user_id=revoked_by_user_id,
        event_type=audit_service.SHOP_ACCESS_REVOKED,
        success=True,
        resource=f"user:{user_id}",
        shop_id=shop_id,
        commit=False,
    )
    db.session.commit()
    return True
