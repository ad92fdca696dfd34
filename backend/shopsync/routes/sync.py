# Overview: Flask API routes for bulk sync pushes; parses input and returns JSON responses.

"""
Bulk push endpoints for offline clients.

POST /api/sync/<entity_type> with {"<entity_type>": [records]}; each record
carries its client id as "id" and its shop as "shop_id" (payments take their
shop from the sale/invoice they pay).

Response (201):
{"success": true, "processed": [client ids], "skipped": [{client_id, reason}],
 "records": [{client_id, id}]}
"""

from flask import Blueprint, current_app, g, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ..decorators import json_body, require_auth
from ..extensions import db
from ..services import sync_service


sync_bp = Blueprint("sync", __name__, url_prefix="/api/sync")


@sync_bp.post("/<any(sales, customers, payments, invoices):entity_type>")
@require_auth
def push(entity_type: str):
    data = json_body()
    try:
        result = sync_service.push(g.context, entity_type, data.get(entity_type))
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to push %s", entity_type)
        return jsonify({"success": False, "message": "Internal server error"}), 500
    return jsonify(result.to_dict()), 201
