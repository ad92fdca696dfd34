# Overview: Flask API routes for products operations; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import json_body, require_admin, require_auth
from ..services import catalog_service


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """Paginated product catalog, PAGE_SIZE (50) per page."""
    page = request.args.get("page", 1, type=int)
    per_page = request.args.get("per_page", type=int)
    result = catalog_service.list_products(page=page, per_page=per_page, search=request.args.get("search"))
    return jsonify({"success": True, "data": result["items"], "pagination": result["pagination"]}), 200


@products_bp.post("")
@require_auth
@require_admin
def create_product():
    product = catalog_service.create_product(json_body())
    return jsonify({"success": True, "data": product.to_dict()}), 201


@products_bp.delete("/<int:product_id>")
@require_auth
@require_admin
def delete_product(product_id: int):
    product = catalog_service.delete_product(product_id)
    return jsonify({"success": True, "data": product.to_dict()}), 200
