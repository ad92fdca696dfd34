# Overview: Flask API routes for shop-scoped stock, customers and sync; parses input and returns JSON responses.

"""
Shop-scoped API.

Every route resolves the shop (404) and checks the caller's access to it
(403, audited) before doing anything else.

Push routes take the same body as the bulk /api/sync variants, e.g.
{"customers": [...]}; records may omit shop_id and default to the URL shop.
"""

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from ..decorators import json_body, require_auth
from ..extensions import db
from ..services import access_service, catalog_service, ledger_service, stock_service, sync_service, sync_state_service
from ..validation import ValidationError, parse_client_id, parse_int


shops_bp = Blueprint("shops", __name__, url_prefix="/api/shops")


def _authorize(shop_id: int, resource: str, action: str):
    access_service.get_shop_or_404(shop_id)
    access_service.require_shop_access(g.context, shop_id, resource=resource, action=action)


def _push(shop_id: int, entity_type: str):
    data = json_body()
    try:
        result = sync_service.push(g.context, entity_type, data.get(entity_type), shop_id=shop_id)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to push %s for shop %s", entity_type, shop_id)
        return jsonify({"success": False, "message": "Internal server error"}), 500
    return jsonify(result.to_dict()), 201


# =============================================================================
# STOCK
# =============================================================================

@shops_bp.get("/<int:shop_id>/stock")
@require_auth
def get_stock(shop_id: int):
    _authorize(shop_id, "stock", "read")
    low_only = request.args.get("low_only", "false").lower() == "true"
    rows = stock_service.list_stock(shop_id, low_only=low_only)
    return jsonify({"success": True, "data": [row.to_dict() for row in rows]}), 200


@shops_bp.get("/<int:shop_id>/stock/alerts")
@require_auth
def get_stock_alerts(shop_id: int):
    _authorize(shop_id, "stock", "read")
    return jsonify({"success": True, "data": stock_service.stock_alerts(shop_id)}), 200


@shops_bp.post("/<int:shop_id>/stock")
@require_auth
def add_stock_product(shop_id: int):
    """Start selling a product in this shop: {"product_id", "alert_quantity"?}."""
    _authorize(shop_id, "stock", "create")
    data = json_body()
    stock = catalog_service.stock_product_in_shop(
        shop_id,
        parse_int(data.get("product_id"), "product_id", minimum=1),
        alert_quantity=parse_int(data.get("alert_quantity"), "alert_quantity", required=False),
    )
    return jsonify({"success": True, "data": stock.to_dict()}), 201


@shops_bp.post("/<int:shop_id>/stock/adjust")
@require_auth
def adjust_stock(shop_id: int):
    """Manual correction: {"product_id", "delta", "reference"} (reference makes it idempotent)."""
    _authorize(shop_id, "stock", "adjust")
    data = json_body()
    reference = parse_client_id(data.get("reference"), "reference")
    result = stock_service.adjust_stock(
        shop_id,
        parse_int(data.get("product_id"), "product_id", minimum=1),
        parse_int(data.get("delta"), "delta"),
        f"adjust:{shop_id}:{reference}",
    )
    return jsonify({
        "success": True,
        "data": {
            "stock": result.stock.to_dict(),
            "movement": result.movement.to_dict(),
            "applied": result.applied,
        },
    }), 201 if result.applied else 200


@shops_bp.get("/<int:shop_id>/stock/movements")
@require_auth
def get_stock_movements(shop_id: int):
    """Stock ledger, newest first. Query params: product_id, limit (max 500)."""
    _authorize(shop_id, "stock", "read")
    limit = min(request.args.get("limit", 100, type=int) or 100, 500)
    rows = stock_service.list_movements(shop_id, product_id=request.args.get("product_id", type=int), limit=limit)
    return jsonify({"success": True, "data": [row.to_dict() for row in rows]}), 200


# =============================================================================
# CUSTOMERS
# =============================================================================

@shops_bp.get("/<int:shop_id>/customers")
@require_auth
def get_customers(shop_id: int):
    _authorize(shop_id, "customers", "read")
    result = catalog_service.list_customers(
        shop_id,
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify({"success": True, "data": result["items"], "pagination": result["pagination"]}), 200


@shops_bp.post("/<int:shop_id>/customers")
@require_auth
def push_customers(shop_id: int):
    return _push(shop_id, "customers")


@shops_bp.get("/<int:shop_id>/customers/<int:customer_id>/balance")
@require_auth
def get_customer_balance(shop_id: int, customer_id: int):
    _authorize(shop_id, "customers", "read")
    customer = catalog_service.get_customer(customer_id)
    if customer.shop_id != shop_id:
        return jsonify({"success": False, "message": "Customer not found"}), 404
    return jsonify({"success": True, "data": catalog_service.customer_balance(customer_id)}), 200


@shops_bp.delete("/<int:shop_id>/customers/<int:customer_id>")
@require_auth
def delete_customer(shop_id: int, customer_id: int):
    """Tombstone the customer; clients see the deletion in their next delta pull."""
    _authorize(shop_id, "customers", "delete")
    customer = catalog_service.get_customer(customer_id)
    if customer.shop_id != shop_id:
        return jsonify({"success": False, "message": "Customer not found"}), 404
    customer = catalog_service.delete_customer(customer_id)
    return jsonify({"success": True, "data": customer.to_dict()}), 200


# =============================================================================
# LEDGER PUSH
# =============================================================================

@shops_bp.post("/<int:shop_id>/payments")
@require_auth
def push_payments(shop_id: int):
    return _push(shop_id, "payments")


@shops_bp.post("/<int:shop_id>/sales")
@require_auth
def push_sales(shop_id: int):
    return _push(shop_id, "sales")


@shops_bp.post("/<int:shop_id>/invoices")
@require_auth
def push_invoices(shop_id: int):
    return _push(shop_id, "invoices")


@shops_bp.get("/<int:shop_id>/invoices")
@require_auth
def list_invoices(shop_id: int):
    _authorize(shop_id, "invoices", "read")
    invoices = ledger_service.list_invoices(
        shop_id,
        status=request.args.get("status"),
        customer_id=request.args.get("customer_id", type=int),
    )
    return jsonify({"success": True, "data": [inv.to_dict() for inv in invoices]}), 200


# =============================================================================
# SYNC
# =============================================================================

@shops_bp.get("/<int:shop_id>/sync/updates")
@require_auth
def get_updates(shop_id: int):
    """
    Delta-or-snapshot pull.

    Query params (ISO-8601 watermarks; omitted or empty means full snapshot):
    products, customers, stock (always returned) and shops, sales, invoices,
    payments (returned when present).
    """
    data = sync_service.get_updates(g.context, shop_id, request.args.to_dict())
    return jsonify({"success": True, "data": data}), 200


@shops_bp.post("/<int:shop_id>/sync/ack")
@require_auth
def acknowledge(shop_id: int):
    """Mark pulled records as synced: {"sales": [ids], "invoices": [...], ...}."""
    counts = sync_service.acknowledge(g.context, shop_id, json_body())
    return jsonify({"success": True, "data": counts}), 200


@shops_bp.get("/<int:shop_id>/sync/pending")
@require_auth
def get_pending(shop_id: int):
    _authorize(shop_id, "sync", "read")
    entity_type = request.args.get("type", "sales")
    if entity_type not in sync_state_service.SYNCED_ENTITIES:
        raise ValidationError(f"type must be one of {', '.join(sync_state_service.SYNCED_ENTITIES)}", {"type": "invalid"})
    rows = sync_state_service.pending(entity_type, shop_id)
    return jsonify({"success": True, "data": [row.to_dict() for row in rows]}), 200
