# Overview: Flask API routes for supplies operations; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify

from ..decorators import json_body, require_admin, require_auth
from ..services import supply_service


supplies_bp = Blueprint("supplies", __name__, url_prefix="/api")


@supplies_bp.post("/suppliers")
@require_auth
@require_admin
def create_supplier():
    supplier = supply_service.create_supplier(json_body())
    return jsonify({"success": True, "data": supplier.to_dict()}), 201


@supplies_bp.post("/supplies")
@require_auth
def receive_supply():
    """
    Receive goods into a shop and increase its stock.

    {"shop_id", "supplier_id", "product_id", "quantity", "cost_price",
    "supply_date"?, "expiry_date"?, "batch_number"?, "reference"?}

    Re-sending a reference already received returns the original supply (200).
    """
    supply, created = supply_service.receive_supply(g.context, json_body())
    return jsonify({"success": True, "data": supply.to_dict()}), 201 if created else 200


@supplies_bp.patch("/supplies/<int:supply_id>")
@require_auth
def update_supply(supply_id: int):
    supply = supply_service.update_supply(g.context, supply_id, json_body())
    return jsonify({"success": True, "data": supply.to_dict()}), 200
