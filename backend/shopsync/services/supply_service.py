# Overview: Service-layer operations for supply; encapsulates business logic and database work.

"""
Supply intake: goods received from a supplier into a shop.

total_cost is maintained by the Supply model on every write. Stock is
incremented through the stock adjustment engine with key supply:<id>, so
each supply moves stock once. A client-supplied reference makes the whole
intake idempotent across retries.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Product, Shop, Supplier, Supply
from ..time_utils import parse_iso_date
from ..validation import NotFoundError, ValidationError, parse_int, parse_money, parse_str
from . import access_service, stock_service, sync_state_service
from .concurrency import lock_for_update, run_with_retry


ENTITY_SUPPLIES = "supplies"


def create_supplier(data: dict) -> Supplier:
    supplier = Supplier(
        name=parse_str(data.get("name"), "name", required=True),
        phone=parse_str(data.get("phone"), "phone", max_length=32),
        address=parse_str(data.get("address"), "address", max_length=2000),
    )
    db.session.add(supplier)
    db.session.commit()
    return supplier


def _parse_date(data: dict, field: str):
    try:
        return parse_iso_date(data.get(field))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date", {field: "invalid date"})


def receive_supply(context, data: dict) -> tuple[Supply, bool]:
    """
    Record a supply and add its quantity to the shop's stock.

    Returns (supply, created). With a reference already received for the
    shop, the existing supply is returned and nothing is re-applied.
    """
    shop_id = parse_int(data.get("shop_id"), "shop_id", minimum=1)
    supplier_id = parse_int(data.get("supplier_id"), "supplier_id", minimum=1)
    product_id = parse_int(data.get("product_id"), "product_id", minimum=1)
    quantity = parse_int(data.get("quantity"), "quantity", minimum=1)
    cost_price = parse_money(data.get("cost_price"), "cost_price")
    reference = parse_str(data.get("reference"), "reference", max_length=64)
    supply_date = _parse_date(data, "supply_date")
    expiry_date = _parse_date(data, "expiry_date")

    if db.session.get(Shop, shop_id) is None:
        raise NotFoundError(f"Shop {shop_id} not found")
    if db.session.get(Supplier, supplier_id) is None:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    product = db.session.get(Product, product_id)
    if product is None or product.deleted_at is not None:
        raise NotFoundError(f"Product {product_id} not found")

    access_service.require_shop_access(context, shop_id, resource="supplies", action="create")

    def _op():
        if reference:
            receipt = sync_state_service.find_receipt(ENTITY_SUPPLIES, shop_id, reference)
            if receipt is not None:
                return db.session.get(Supply, receipt.server_id), False

        supply = Supply(
            supplier_id=supplier_id,
            product_id=product_id,
            shop_id=shop_id,
            quantity=quantity,
            cost_price=cost_price,
            supply_date=supply_date,
            expiry_date=expiry_date,
            batch_number=parse_str(data.get("batch_number"), "batch_number", max_length=64),
        )
        db.session.add(supply)
        db.session.flush()

        stock_service.receive_quantity(shop_id, product_id, quantity, f"supply:{supply.id}")

        if reference:
            sync_state_service.record_receipt(
                ENTITY_SUPPLIES, shop_id, reference, supply.id,
                sync_state_service.payload_hash(data),
                pushed_by_user_id=context.user.id,
            )
        db.session.commit()
        return supply, True

    return run_with_retry(_op)


def update_supply(context, supply_id: int, data: dict) -> Supply:
    """
    Correct cost or batch details of a received supply.

    Quantity is fixed once received; corrections to stock go through a
    stock adjustment instead.
    """
    if "quantity" in data:
        raise ValidationError("quantity cannot be changed after receipt", {"quantity": "immutable"})

    def _op():
        supply = lock_for_update(db.session.query(Supply).filter_by(id=supply_id)).first()
        if supply is None:
            raise NotFoundError(f"Supply {supply_id} not found")
        access_service.require_shop_access(context, supply.shop_id, resource="supplies", action="update")

        if "cost_price" in data:
            supply.cost_price = parse_money(data.get("cost_price"), "cost_price")
        if "batch_number" in data:
            supply.batch_number = parse_str(data.get("batch_number"), "batch_number", max_length=64)
        if "supply_date" in data:
            supply.supply_date = _parse_date(data, "supply_date")
        if "expiry_date" in data:
            supply.expiry_date = _parse_date(data, "expiry_date")

        db.session.commit()
        return supply

    return run_with_retry(_op)
