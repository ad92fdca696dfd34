# Overview: Service-layer operations for catalog; encapsulates business logic and database work.

"""
Catalog reads and the administrative writes sync depends on.

Products are global; customers belong to one shop. Deleting either is a
soft delete (deleted_at), so the deletion reaches clients as a tombstone in
the next delta pull.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Customer, Invoice, Product, Stock
from ..models.ledger import STATUS_CANCELLED, STATUS_PAID
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    format_money,
    parse_int,
    parse_money,
    parse_str,
    to_money,
)
from .concurrency import run_with_retry


def paginate(query, page: int | None, per_page: int | None = None) -> dict:
    """Offset pagination; PAGE_SIZE per page unless per_page is given (max 200)."""
    per_page = min(per_page or current_app.config["PAGE_SIZE"], 200)
    page = max(page or 1, 1)

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": rows,
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


# =============================================================================
# PRODUCTS
# =============================================================================

def list_products(page: int | None = None, per_page: int | None = None, search: str | None = None) -> dict:
    query = db.session.query(Product).filter(Product.deleted_at.is_(None))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter((Product.name.ilike(like)) | (Product.barcode.ilike(like)))
    result = paginate(query.order_by(Product.name.asc(), Product.id.asc()), page, per_page)
    result["items"] = [p.to_dict() for p in result["items"]]
    return result


def create_product(data: dict) -> Product:
    barcode = parse_str(data.get("barcode"), "barcode", required=True, max_length=64)
    if db.session.query(Product.id).filter_by(barcode=barcode).first() is not None:
        raise ConflictError(f"Barcode {barcode} already exists")

    product = Product(
        name=parse_str(data.get("name"), "name", required=True),
        barcode=barcode,
        description=parse_str(data.get("description"), "description", max_length=5000),
        price=parse_money(data.get("price"), "price"),
        cost_price=parse_money(data.get("cost_price"), "cost_price", required=False),
        image_path=parse_str(data.get("image_path"), "image_path"),
    )
    db.session.add(product)
    db.session.commit()
    return product


def delete_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or product.deleted_at is not None:
        raise NotFoundError(f"Product {product_id} not found")
    now = utcnow()
    product.deleted_at = now
    product.updated_at = now
    db.session.commit()
    return product


def stock_product_in_shop(shop_id: int, product_id: int, *, alert_quantity: int | None = None) -> Stock:
    """Start selling a product in a shop (creates the Stock pivot at quantity 0)."""
    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")

    def _op():
        stock = db.session.query(Stock).filter_by(shop_id=shop_id, product_id=product_id).first()
        if stock is None:
            stock = Stock(shop_id=shop_id, product_id=product_id, quantity=0)
            db.session.add(stock)
        if alert_quantity is not None:
            if alert_quantity < 0:
                raise ValidationError("alert_quantity must be >= 0", {"alert_quantity": "must be >= 0"})
            stock.alert_quantity = alert_quantity
        db.session.commit()
        return stock

    return run_with_retry(_op)


# =============================================================================
# CUSTOMERS
# =============================================================================

def list_customers(shop_id: int, page: int | None = None, per_page: int | None = None) -> dict:
    query = (
        db.session.query(Customer)
        .filter(Customer.shop_id == shop_id, Customer.deleted_at.is_(None))
        .order_by(Customer.name.asc(), Customer.id.asc())
    )
    result = paginate(query, page, per_page)
    result["items"] = [c.to_dict() for c in result["items"]]
    return result


def parse_customer_fields(data: dict, *, partial: bool = False) -> dict:
    """Validated customer columns from a client payload."""
    fields = {}
    if not partial or "name" in data:
        fields["name"] = parse_str(data.get("name"), "name", required=True)
    for key, max_length in (("phone", 32), ("email", 255), ("address", 2000)):
        if not partial or key in data:
            fields[key] = parse_str(data.get(key), key, max_length=max_length)
    if not partial or "credit_limit" in data:
        fields["credit_limit"] = parse_money(data.get("credit_limit"), "credit_limit", required=False) or 0
    if "payment_terms" in data:
        fields["payment_terms"] = parse_str(data.get("payment_terms"), "payment_terms", max_length=32) or "net 15"
    return fields


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None or customer.deleted_at is not None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def delete_customer(customer_id: int) -> Customer:
    customer = get_customer(customer_id)
    now = utcnow()
    customer.deleted_at = now
    customer.updated_at = now
    db.session.commit()
    return customer


def customer_balance(customer_id: int) -> dict:
    """Open invoice balance against the customer's credit limit."""
    customer = get_customer(parse_int(customer_id, "customer_id"))
    open_invoices = (
        db.session.query(Invoice)
        .filter(
            Invoice.customer_id == customer.id,
            Invoice.status.notin_((STATUS_PAID, STATUS_CANCELLED)),
        )
        .all()
    )
    balance = sum(
        (to_money(inv.total_amount) - to_money(inv.amount_paid) for inv in open_invoices),
        to_money(0),
    )
    limit = to_money(customer.credit_limit)
    return {
        "customer_id": customer.id,
        "open_invoices": len(open_invoices),
        "balance": format_money(balance),
        "credit_limit": format_money(limit),
        "available_credit": format_money(max(limit - balance, to_money(0))),
    }
