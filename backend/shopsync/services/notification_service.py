from __future__ import annotations

import json

from ..extensions import db
from ..models import Notification
from ..time_utils import utcnow


INVOICE_OVERDUE = "invoice.overdue"
SALE_OVERDUE = "sale.overdue"


def emit_once(
    *,
    shop_id: int,
    customer_id: int | None,
    event_type: str,
    entity_type: str,
    entity_id: int,
    payload: dict | None = None,
) -> Notification | None:
    """
    Queue a notification unless one with the same (event_type, entity) exists.

    Returns the new row, or None when it was already emitted. Joins the
    caller's unit of work.
    """
    existing = db.session.query(Notification.id).filter_by(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
    ).first()
    if existing is not None:
        return None

    notification = Notification(
        shop_id=shop_id,
        customer_id=customer_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        payload=json.dumps(payload or {}, sort_keys=True),
    )
    db.session.add(notification)
    db.session.flush()
    return notification


def list_pending(limit: int = 100) -> list[Notification]:
    return (
        db.session.query(Notification)
        .filter(Notification.delivered_at.is_(None))
        .order_by(Notification.id.asc())
        .limit(limit)
        .all()
    )


def mark_delivered(notification_ids) -> int:
    ids = list(notification_ids)
    if not ids:
        return 0
    count = db.session.query(Notification).filter(
        Notification.id.in_(ids),
        Notification.delivered_at.is_(None),
    ).update({"delivered_at": utcnow()}, synchronize_session=False)
    db.session.commit()
    return count
