# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales API.

POST /api/sales stores the client's total_price, tax_amount and
discount_amount as sent; line items are not re-priced server-side.
"""

import os
import uuid

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.utils import secure_filename

from ..decorators import json_body, require_auth
from ..extensions import db
from ..services import ledger_service
from ..validation import PayloadTooLargeError, ValidationError


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")

RECEIPT_EXTENSIONS = {"pdf", "jpg", "jpeg", "png"}


@sales_bp.post("")
@require_auth
def create_sale():
    """
    Request body:
    {
        "shop_id": 1,
        "customer_id": 4,              (optional)
        "items": [{"product_id": 7, "quantity": 2, "unit_price": "5.00",
                   "tax_rate": "16", "discount_rate": "0"}],
        "total_price": "11.60",
        "tax_amount": "1.60",          (optional)
        "discount_amount": "0.00",     (optional)
        "payment_method": "cash",      (optional)
        "due_date": "2026-01-31"       (optional)
    }
    """
    data = json_body()
    try:
        sale = ledger_service.create_sale(g.context, data)
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to create sale")
        return jsonify({"success": False, "message": "Internal server error"}), 500

    return jsonify({
        "success": True,
        "data": {
            "sale_id": sale.id,
            "sale": sale.to_dict(include_items=True),
        },
    }), 201


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale(sale_id: int):
    sale = ledger_service.get_sale(g.context, sale_id)
    return jsonify({"success": True, "data": sale.to_dict(include_items=True)}), 200


@sales_bp.get("/<int:sale_id>/payments")
@require_auth
def get_sale_payments(sale_id: int):
    summary = ledger_service.get_payment_summary(g.context, "sale", sale_id)
    return jsonify({"success": True, "data": summary}), 200


@sales_bp.post("/<int:sale_id>/receipt")
@require_auth
def upload_receipt(sale_id: int):
    """Multipart upload, field "receipt": pdf/jpg/png, at most RECEIPT_MAX_BYTES (2MB)."""
    limit = current_app.config["RECEIPT_MAX_BYTES"]
    if request.content_length is not None and request.content_length > limit:
        raise PayloadTooLargeError(f"Receipt upload exceeds {limit} bytes", {"receipt": "too large"})

    sale = ledger_service.get_sale(g.context, sale_id)

    upload = request.files.get("receipt")
    if upload is None or not upload.filename:
        raise ValidationError("receipt file is required", {"receipt": "required"})

    filename = secure_filename(upload.filename)
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if extension not in RECEIPT_EXTENSIONS:
        raise ValidationError("receipt must be a pdf, jpg or png file", {"receipt": "invalid file type"})

    receipts_dir = current_app.config["RECEIPTS_DIR"]
    if not os.path.isabs(receipts_dir):
        receipts_dir = os.path.join(os.path.dirname(current_app.instance_path), receipts_dir)
    os.makedirs(receipts_dir, exist_ok=True)

    stored_name = f"sale-{sale.id}-{uuid.uuid4().hex}.{extension}"
    upload.save(os.path.join(receipts_dir, stored_name))

    ledger_service.attach_receipt(g.context, sale.id, f"receipts/{stored_name}")
    return jsonify({"success": True, "message": "Receipt uploaded successfully"}), 200
