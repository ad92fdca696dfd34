# Overview: Flask API routes for invoices operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ..decorators import json_body, require_auth
from ..extensions import db
from ..services import ledger_service
from ..validation import parse_int


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.post("")
@require_auth
def create_invoice():
    """
    Create an invoice for a shop customer.

    {"shop_id", "customer_id", "items": [{"product_id", "quantity",
    "unit_price"?, "tax_rate"?, "discount_amount"?}], "invoice_number"?,
    "issue_date"?, "due_date"? (issue_date + 15 days), "status"? (draft|unpaid),
    "sale_id"? (bill an existing sale; stock is not moved again)}
    """
    data = json_body()
    shop_id = parse_int(data.get("shop_id"), "shop_id", minimum=1)
    try:
        invoice = ledger_service.create_invoice(g.context, shop_id, data)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"success": False, "message": "Internal server error"}), 500
    return jsonify({"success": True, "data": invoice.to_dict(include_items=True)}), 201


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice(invoice_id: int):
    invoice = ledger_service.get_invoice(g.context, invoice_id)
    return jsonify({"success": True, "data": invoice.to_dict(include_items=True)}), 200


@invoices_bp.post("/<int:invoice_id>/issue")
@require_auth
def issue_invoice(invoice_id: int):
    invoice = ledger_service.issue_invoice(g.context, invoice_id)
    return jsonify({"success": True, "data": invoice.to_dict()}), 200


@invoices_bp.post("/<int:invoice_id>/cancel")
@require_auth
def cancel_invoice(invoice_id: int):
    invoice = ledger_service.cancel_invoice(g.context, invoice_id, json_body().get("reason"))
    return jsonify({"success": True, "data": invoice.to_dict()}), 200


@invoices_bp.get("/<int:invoice_id>/payments")
@require_auth
def get_invoice_payments(invoice_id: int):
    summary = ledger_service.get_payment_summary(g.context, "invoice", invoice_id)
    return jsonify({"success": True, "data": summary}), 200


@invoices_bp.post("/<int:invoice_id>/payments")
@require_auth
def add_invoice_payment(invoice_id: int):
    data = json_body()
    try:
        payment, target = ledger_service.record_payment(g.context, "invoice", invoice_id, data)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to record payment on invoice %s", invoice_id)
        return jsonify({"success": False, "message": "Internal server error"}), 500
    return jsonify({
        "success": True,
        "data": {
            "payment_id": payment.id,
            "invoice_status": target.status,
            "payment": payment.to_dict(),
            "summary": target.summary(),
        },
    }), 201
