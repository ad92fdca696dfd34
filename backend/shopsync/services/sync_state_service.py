# Overview: Service-layer operations for sync state; encapsulates business logic and database work.

"""
Sync state tracker.

Two pieces of per-record state drive synchronization:
- updated_at, the server-side watermark column. Deltas are "updated_at >
  since" (strictly greater). Pulls hand back a server_time that lags the
  clock by SYNC_WATERMARK_OVERLAP_SECONDS, so rows committed while a pull
  was in flight are sent again on the next one.
- synced, set when a client pushed the record or acknowledged pulling it.
  It only ever goes from False to True on the server.

SyncReceipt rows map a client's (entity_type, shop_id, client_id) to the
server record it produced, which is what makes pushes idempotent.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime

from ..extensions import db
from ..models import Customer, Invoice, Payment, Product, Sale, Shop, Stock, SyncReceipt
from ..validation import ValidationError


# Pullable entity types -> model
ENTITY_MODELS = {
    "shops": Shop,
    "products": Product,
    "customers": Customer,
    "stock": Stock,
    "sales": Sale,
    "invoices": Invoice,
    "payments": Payment,
}

# Entity types carrying a synced flag
SYNCED_ENTITIES = ("customers", "sales", "invoices", "payments")


def entity_model(entity_type: str):
    model = ENTITY_MODELS.get(entity_type)
    if model is None:
        raise ValidationError(f"Unknown entity type: {entity_type}", {"entity_type": "invalid"})
    return model


def _shop_scope(model, query, shop_id: int):
    if model is Shop:
        return query.filter(Shop.id == shop_id)
    if model is Product:
        return query
    return query.filter(model.shop_id == shop_id)


def watermark_since(entity_type: str, shop_id: int, since: datetime | None):
    """
    Query for the rows of entity_type visible to shop_id.

    since=None is a full snapshot and leaves out soft-deleted rows; with a
    watermark every row with updated_at > since is returned, tombstones
    included. Order is by id only for stable output; clients merge by id.
    """
    model = entity_model(entity_type)
    query = _shop_scope(model, db.session.query(model), shop_id)

    if since is None:
        if hasattr(model, "deleted_at"):
            query = query.filter(model.deleted_at.is_(None))
    else:
        query = query.filter(model.updated_at > since)

    return query.order_by(model.id.asc())


def serialize(record) -> dict:
    if hasattr(record, "to_sync_dict"):
        return record.to_sync_dict()
    return record.to_dict()


def mark_synced(entity_type: str, shop_id: int, ids) -> int:
    """
    Flag server records as synced after a client applied them.

    updated_at is left untouched so the acknowledgement itself does not show
    up in the next delta. Returns the number of rows flagged.
    """
    if entity_type not in SYNCED_ENTITIES:
        raise ValidationError(f"{entity_type} has no sync flag", {"entity_type": "invalid"})
    ids = {int(i) for i in ids}
    if not ids:
        return 0

    model = entity_model(entity_type)
    count = (
        db.session.query(model)
        .filter(model.shop_id == shop_id, model.id.in_(ids), model.synced.is_(False))
        .update(
            {model.synced: True, model.updated_at: model.updated_at},
            synchronize_session=False,
        )
    )
    db.session.commit()
    return count


def pending(entity_type: str, shop_id: int) -> list:
    """Server records of a shop not yet acknowledged by any client."""
    if entity_type not in SYNCED_ENTITIES:
        raise ValidationError(f"{entity_type} has no sync flag", {"entity_type": "invalid"})
    model = entity_model(entity_type)
    return (
        db.session.query(model)
        .filter(model.shop_id == shop_id, model.synced.is_(False))
        .order_by(model.id.asc())
        .all()
    )


# =============================================================================
# IDEMPOTENCY RECEIPTS
# =============================================================================

def payload_hash(payload) -> str:
    """Stable SHA-256 of a JSON payload (key order and whitespace ignored)."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def find_receipt(entity_type: str, shop_id: int, client_id: str) -> SyncReceipt | None:
    return db.session.query(SyncReceipt).filter_by(
        entity_type=entity_type,
        shop_id=shop_id,
        client_id=client_id,
    ).first()


def record_receipt(
    entity_type: str,
    shop_id: int,
    client_id: str,
    server_id: int,
    payload_digest: str,
    *,
    pushed_by_user_id: int | None = None,
) -> SyncReceipt:
    """Add a receipt to the caller's unit of work."""
    receipt = SyncReceipt(
        entity_type=entity_type,
        shop_id=shop_id,
        client_id=client_id,
        server_id=server_id,
        payload_hash=payload_digest,
        pushed_by_user_id=pushed_by_user_id,
    )
    db.session.add(receipt)
    db.session.flush()
    return receipt


def resolve_client_id(entity_type: str, shop_id: int, client_id: str) -> int | None:
    """Server id previously produced for a client id, if any."""
    receipt = find_receipt(entity_type, shop_id, client_id)
    return receipt.server_id if receipt is not None else None
