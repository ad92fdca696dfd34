# Overview: Service-layer operations for the security audit trail; encapsulates business logic and database work.

from __future__ import annotations

from ..extensions import db
from ..models import SecurityEvent
from ..time_utils import utcnow


# Event types
LOGIN_SUCCESS = "LOGIN_SUCCESS"
LOGIN_FAILED = "LOGIN_FAILED"
LOGOUT = "LOGOUT"
SHOP_ACCESS_DENIED = "SHOP_ACCESS_DENIED"
SHOP_ACCESS_GRANTED = "SHOP_ACCESS_GRANTED"
SHOP_ACCESS_REVOKED = "SHOP_ACCESS_REVOKED"
PAYMENT_REVERSED = "PAYMENT_REVERSED"
USER_CREATED = "USER_CREATED"
USER_DEACTIVATED = "USER_DEACTIVATED"


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    shop_id: int | None = None,
    *,
    commit: bool = True,
) -> SecurityEvent:
    """
    Append an event to the security audit trail.

    With commit=False the event joins the caller's unit of work and is only
    persisted if that unit commits.
    """
    event = SecurityEvent(
        user_id=user_id,
        shop_id=shop_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    if commit:
        db.session.commit()
    return event


def log_context_event(context, event_type: str, success: bool, **kwargs) -> SecurityEvent:
    """log_security_event with user/ip/user-agent taken from a SessionContext."""
    return log_security_event(
        user_id=context.user.id if context and context.user else None,
        event_type=event_type,
        success=success,
        ip_address=context.ip_address if context else None,
        user_agent=context.user_agent if context else None,
        **kwargs,
    )


def list_security_events(
    *,
    shop_id: int | None = None,
    event_type: str | None = None,
    limit: int = 100,
) -> list[SecurityEvent]:
    query = db.session.query(SecurityEvent)
    if shop_id is not None:
        query = query.filter(SecurityEvent.shop_id == shop_id)
    if event_type:
        query = query.filter(SecurityEvent.event_type == event_type)
    return query.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc()).limit(limit).all()

