# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

"""
Payment API.

POST /api/payments records a payment against a sale (sale_id) or an
invoice (invoice_id) and returns the recomputed status:
{
    "sale_id": 12,               (or "invoice_id")
    "amount": "400.00",
    "method": "cash",            cash | credit_card | bank_transfer | check
                                 (legacy: card, transfer)
    "reference": "TX-991"        (optional; "transaction_id" also accepted)
}
"""

from flask import Blueprint, current_app, g, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ..decorators import json_body, require_auth
from ..extensions import db
from ..services import ledger_service
from ..validation import ValidationError, parse_int


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("")
@require_auth
def add_payment():
    data = json_body()
    if data.get("invoice_id") is not None:
        kind, target_id = "invoice", parse_int(data.get("invoice_id"), "invoice_id", minimum=1)
    elif data.get("sale_id") is not None:
        kind, target_id = "sale", parse_int(data.get("sale_id"), "sale_id", minimum=1)
    else:
        raise ValidationError("sale_id or invoice_id is required", {"sale_id": "required"})

    try:
        payment, target = ledger_service.record_payment(g.context, kind, target_id, data)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to record payment")
        return jsonify({"success": False, "message": "Internal server error"}), 500

    return jsonify({
        "success": True,
        "data": {
            "payment_id": payment.id,
            f"{kind}_status": target.status,
            "payment": payment.to_dict(),
            "summary": target.summary(),
        },
    }), 201


@payments_bp.post("/<int:payment_id>/reverse")
@require_auth
def reverse_payment(payment_id: int):
    data = json_body()
    try:
        payment, target = ledger_service.reverse_payment(g.context, payment_id, data.get("reason"))
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to reverse payment %s", payment_id)
        return jsonify({"success": False, "message": "Internal server error"}), 500

    return jsonify({
        "success": True,
        "data": {
            "payment": payment.to_dict(),
            "summary": target.summary(),
        },
    }), 200
