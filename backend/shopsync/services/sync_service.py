# Overview: Service-layer operations for sync; encapsulates business logic and database work.

"""
Sync protocol handler: pull deltas and push batches for shop clients.

Pull returns, per entity type, the rows changed since a client watermark
(or a full snapshot when the watermark is omitted).

Push applies a batch record by record. Each record is its own unit of work:
validated, access-checked, applied through the ledger/stock engines and
committed together with its SyncReceipt, or rolled back entirely. A bad
record lands in `skipped` with a reason and the rest of the batch goes on.
Records keep their submitted order. Because every record is keyed on its
client id, a batch cut short by the deadline can be retried as a whole.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Customer, Invoice, Sale, Shop
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from ..validation import (
    ApiError,
    AuthorizationError,
    ConflictError,
    PayloadTooLargeError,
    ValidationError,
    parse_client_id,
    parse_int,
    require_list,
)
from . import access_service, catalog_service, ledger_service, sync_state_service
from .concurrency import run_with_retry


# Returned by /sync/updates even when the client sends no watermark for them
DEFAULT_PULL_TYPES = ("products", "customers", "stock")


@dataclass
class PushResult:
    processed: list = field(default_factory=list)
    skipped: list = field(default_factory=list)
    records: list = field(default_factory=list)

    def accept(self, client_ref, server_id: int) -> None:
        self.processed.append(client_ref)
        self.records.append({"client_id": client_ref, "id": server_id})

    def skip(self, client_ref, reason: str, errors: dict | None = None) -> None:
        entry = {"client_id": client_ref, "reason": reason}
        if errors:
            entry["errors"] = errors
        self.skipped.append(entry)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "processed": self.processed,
            "skipped": self.skipped,
            "records": self.records,
        }


# =============================================================================
# PULL
# =============================================================================

def parse_watermark(value, field_name: str):
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == "null":
        return None
    try:
        return parse_iso_datetime(text)
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO-8601 timestamp", {field_name: "invalid timestamp"})


def pull(entity_type: str, shop_id: int, since=None) -> list[dict]:
    """Rows of entity_type for shop_id with updated_at > since (snapshot if None)."""
    rows = sync_state_service.watermark_since(entity_type, shop_id, since).all()
    return [sync_state_service.serialize(row) for row in rows]


def get_updates(context, shop_id: int, params: dict) -> dict:
    """
    Delta-or-snapshot for a shop.

    products, customers and stock are always returned; the other entity types
    only when their parameter is present. server_time is the clock reading
    taken before any query runs, moved back by SYNC_WATERMARK_OVERLAP_SECONDS:
    updated_at is stamped at flush time, so a write in flight during this pull
    commits with an older updated_at than the clock reading. Rows inside the
    overlap are sent again on the next pull and clients merge them by id.
    """
    access_service.get_shop_or_404(shop_id)
    access_service.require_shop_access(context, shop_id, resource="sync", action="pull")

    overlap = timedelta(seconds=float(current_app.config["SYNC_WATERMARK_OVERLAP_SECONDS"]))
    server_time = utcnow() - overlap
    types = list(DEFAULT_PULL_TYPES) + [
        name for name in sync_state_service.ENTITY_MODELS
        if name not in DEFAULT_PULL_TYPES and name in params
    ]

    data = {}
    for entity_type in types:
        since = parse_watermark(params.get(entity_type), entity_type)
        data[entity_type] = pull(entity_type, shop_id, since)
    data["server_time"] = to_utc_z(server_time)
    return data


def snapshot_counts(shop_id: int) -> dict:
    """Row counts of a full snapshot per entity type."""
    return {
        entity_type: sync_state_service.watermark_since(entity_type, shop_id, None).count()
        for entity_type in sync_state_service.ENTITY_MODELS
    }


def acknowledge(context, shop_id: int, data: dict) -> dict:
    """Client confirms it applied pulled records: {"sales": [ids], ...}."""
    access_service.get_shop_or_404(shop_id)
    access_service.require_shop_access(context, shop_id, resource="sync", action="ack")

    counts = {}
    for entity_type in sync_state_service.SYNCED_ENTITIES:
        if entity_type not in data:
            continue
        ids = require_list(data.get(entity_type), entity_type)
        ids = [parse_int(value, f"{entity_type}[{idx}]", minimum=1) for idx, value in enumerate(ids)]
        counts[entity_type] = sync_state_service.mark_synced(entity_type, shop_id, ids)
    return counts


# =============================================================================
# PUSH HANDLERS
# =============================================================================

def _record_shop(raw: dict, url_shop_id: int | None) -> int:
    shop_id = parse_int(raw.get("shop_id"), "shop_id", required=url_shop_id is None, minimum=1)
    if url_shop_id is not None:
        if shop_id is not None and shop_id != url_shop_id:
            raise ValidationError("shop_id does not match the shop in the URL", {"shop_id": "mismatch"})
        shop_id = url_shop_id
    if db.session.get(Shop, shop_id) is None:
        raise ValidationError(f"Shop {shop_id} not found", {"shop_id": "not found"})
    return shop_id


def _existing_server_record(model, raw: dict, shop_id: int):
    """The record named by raw["server_id"], required to live in shop_id."""
    server_id = parse_int(raw.get("server_id"), "server_id", minimum=1)
    record = db.session.get(model, server_id)
    if record is None or record.shop_id != shop_id:
        raise ValidationError(f"server_id {server_id} not found in shop {shop_id}", {"server_id": "not found"})
    return record


class CustomerPush:
    entity_type = "customers"

    def resolve_shop(self, raw, url_shop_id):
        return _record_shop(raw, url_shop_id)

    def _apply_fields(self, customer: Customer, raw: dict) -> None:
        for key, value in catalog_service.parse_customer_fields(raw).items():
            setattr(customer, key, value)
        customer.synced = True

    def create(self, context, shop_id, client_id, raw):
        if raw.get("server_id") is not None:
            customer = _existing_server_record(Customer, raw, shop_id)
            self._apply_fields(customer, raw)
            return customer.id

        customer = Customer(shop_id=shop_id, client_id=client_id)
        self._apply_fields(customer, raw)
        try:
            created_at = parse_iso_datetime(raw.get("created_at"))
        except ValueError:
            raise ValidationError("created_at must be an ISO-8601 datetime", {"created_at": "invalid datetime"})
        if created_at is not None:
            customer.created_at = created_at
        db.session.add(customer)
        db.session.flush()
        return customer.id

    def on_changed(self, context, shop_id, receipt, raw):
        customer = db.session.get(Customer, receipt.server_id)
        if customer is None or customer.deleted_at is not None:
            raise ConflictError(f"Customer {receipt.server_id} was deleted on the server")
        self._apply_fields(customer, raw)
        return customer.id


class SalePush:
    entity_type = "sales"

    def resolve_shop(self, raw, url_shop_id):
        return _record_shop(raw, url_shop_id)

    def create(self, context, shop_id, client_id, raw):
        if raw.get("server_id") is not None:
            return _existing_server_record(Sale, raw, shop_id).id
        sale = ledger_service.create_sale_in_uow(context, shop_id, raw, client_id=client_id)
        sale.synced = True
        return sale.id

    def on_changed(self, context, shop_id, receipt, raw):
        raise ConflictError(f"Sale {receipt.client_id} was already pushed with different content")


class InvoicePush:
    entity_type = "invoices"

    def resolve_shop(self, raw, url_shop_id):
        return _record_shop(raw, url_shop_id)

    def create(self, context, shop_id, client_id, raw):
        if raw.get("server_id") is not None:
            return _existing_server_record(Invoice, raw, shop_id).id
        invoice = ledger_service.create_invoice_in_uow(context, shop_id, raw, client_id=client_id)
        invoice.synced = True
        return invoice.id

    def on_changed(self, context, shop_id, receipt, raw):
        raise ConflictError(f"Invoice {receipt.client_id} was already pushed with different content")


class PaymentPush:
    """
    Payments reference their target by server id (sale_id / invoice_id) or,
    for targets created offline, by the client id they were pushed with
    (sale_client_id / invoice_client_id, resolved in the record's shop).
    """
    entity_type = "payments"

    def _target(self, raw: dict, url_shop_id: int | None, *, lock: bool) -> ledger_service.LedgerTarget:
        for kind, entity_type in (("invoice", "invoices"), ("sale", "sales")):
            server_id = parse_int(raw.get(f"{kind}_id"), f"{kind}_id", required=False, minimum=1)
            client_ref = raw.get(f"{kind}_client_id")
            if server_id is None and client_ref is not None:
                shop_id = _record_shop(raw, url_shop_id)
                ref = parse_client_id(client_ref, f"{kind}_client_id")
                server_id = sync_state_service.resolve_client_id(entity_type, shop_id, ref)
                if server_id is None:
                    raise ValidationError(
                        f"{kind} with client id {ref} has not been pushed",
                        {f"{kind}_client_id": "unknown"},
                    )
            if server_id is not None:
                return ledger_service.load_target(kind, server_id, lock=lock)
        raise ValidationError("sale_id or invoice_id is required", {"sale_id": "required"})

    def resolve_shop(self, raw, url_shop_id):
        target = self._target(raw, url_shop_id, lock=False)
        if url_shop_id is not None and target.shop_id != url_shop_id:
            raise ValidationError(f"{target.label} does not belong to shop {url_shop_id}", {"shop_id": "mismatch"})
        return target.shop_id

    def create(self, context, shop_id, client_id, raw):
        target = self._target(raw, shop_id, lock=True)
        if raw.get("server_id") is not None:
            payment_id = parse_int(raw.get("server_id"), "server_id", minimum=1)
            if payment_id not in {p.id for p in target.payments()}:
                raise ValidationError(f"server_id {payment_id} is not a payment of {target.label}", {"server_id": "not found"})
            return payment_id
        payment = ledger_service.record_payment_in_uow(
            context,
            target,
            client_id=client_id,
            **ledger_service.parse_payment_fields(raw),
        )
        payment.synced = True
        db.session.flush()
        return payment.id

    def on_changed(self, context, shop_id, receipt, raw):
        raise ConflictError(f"Payment {receipt.client_id} was already pushed with different content")


PUSH_HANDLERS = {
    handler.entity_type: handler
    for handler in (CustomerPush(), SalePush(), InvoicePush(), PaymentPush())
}


# =============================================================================
# PUSH
# =============================================================================

def _push_one(context, handler, raw, url_shop_id: int | None) -> int:
    if not isinstance(raw, dict):
        raise ValidationError("record must be an object")
    client_id = parse_client_id(raw.get("id"))
    digest = sync_state_service.payload_hash(raw)

    def _op():
        shop_id = handler.resolve_shop(raw, url_shop_id)
        if not access_service.can_access_shop(context.user, shop_id):
            access_service.record_denial(context, shop_id, resource=f"sync:{handler.entity_type}", action="push")
            raise AuthorizationError("shop access denied")

        receipt = sync_state_service.find_receipt(handler.entity_type, shop_id, client_id)
        if receipt is not None:
            if receipt.payload_hash == digest:
                return receipt.server_id
            server_id = handler.on_changed(context, shop_id, receipt, raw)
            receipt.payload_hash = digest
            db.session.commit()
            return server_id

        server_id = handler.create(context, shop_id, client_id, raw)
        sync_state_service.record_receipt(
            handler.entity_type, shop_id, client_id, server_id, digest,
            pushed_by_user_id=context.user.id,
        )
        db.session.commit()
        return server_id

    try:
        return run_with_retry(_op)
    except IntegrityError:
        # A concurrent push of the same client id committed first; its
        # receipt is visible now, so a second pass resolves to its server id.
        current_app.logger.info(
            "Concurrent push of %s record %r, resolving against the committed receipt",
            handler.entity_type, client_id,
        )
        return run_with_retry(_op)


def push(context, entity_type: str, records, *, shop_id: int | None = None) -> PushResult:
    """
    Apply a batch of client records of one entity type.

    shop_id is set for the shop-scoped endpoints: the caller needs access to
    that shop (AuthorizationError otherwise) and every record must belong to
    it. Batches above SYNC_MAX_BATCH_RECORDS are refused whole.
    """
    handler = PUSH_HANDLERS.get(entity_type)
    if handler is None:
        raise ValidationError(f"Cannot push {entity_type}", {"entity_type": "invalid"})

    records = require_list(records, entity_type)
    config = current_app.config
    limit = config["SYNC_MAX_BATCH_RECORDS"]
    if len(records) > limit:
        raise PayloadTooLargeError(
            f"Batch of {len(records)} {entity_type} exceeds the limit of {limit}",
            {entity_type: f"at most {limit} records"},
        )

    if shop_id is not None:
        access_service.get_shop_or_404(shop_id)
        access_service.require_shop_access(context, shop_id, resource=f"sync:{entity_type}", action="push")

    deadline = time.monotonic() + float(config["SYNC_PUSH_DEADLINE_SECONDS"])
    result = PushResult()

    for raw in records:
        client_ref = raw.get("id") if isinstance(raw, dict) else None
        if time.monotonic() > deadline:
            result.skip(client_ref, "timeout")
            continue
        try:
            server_id = _push_one(context, handler, raw, shop_id)
        except ApiError as exc:
            current_app.logger.warning(
                "Skipped %s record %r from user %s: %s",
                entity_type, client_ref, context.user.id, exc.message,
            )
            result.skip(client_ref, exc.message, exc.errors)
        except SQLAlchemyError:
            current_app.logger.exception("Failed to apply %s record %r", entity_type, client_ref)
            result.skip(client_ref, "internal error")
        else:
            result.accept(client_ref, server_id)

    current_app.logger.info(
        "Push %s by user %s: %d processed, %d skipped",
        entity_type, context.user.id, len(result.processed), len(result.skipped),
    )
    return result
