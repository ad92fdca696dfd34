# Overview: Service-layer operations for stock; encapsulates business logic and database work.

"""
Stock adjustment engine.

Every change to a (shop, product) quantity goes through _apply_delta, which
writes a StockMovement keyed by an idempotency key. A key that has already
been applied is a no-op returning the earlier movement, so a retried sale,
invoice or supply never moves stock twice.

Quantities may go negative: an offline client can oversell before its sync
catches up. Oversold rows are reported, never rejected.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Product, Stock, StockMovement
from ..validation import NotFoundError, ValidationError
from .concurrency import lock_for_update, run_with_retry


REASON_SALE = "SALE"
REASON_INVOICE = "INVOICE"
REASON_SUPPLY = "SUPPLY"
REASON_ADJUST = "ADJUST"


@dataclass
class StockResult:
    stock: Stock
    movement: StockMovement
    applied: bool  # False when the idempotency key had already been applied


def _apply_delta(shop_id: int, product_id: int, delta: int, idempotency_key: str, reason: str) -> StockResult:
    """Apply a signed quantity change once per idempotency key. Caller commits."""
    if not idempotency_key:
        raise ValueError("idempotency_key is required")

    prior = db.session.query(StockMovement).filter_by(idempotency_key=idempotency_key).first()
    if prior is not None:
        return StockResult(stock=prior.stock, movement=prior, applied=False)

    stock = lock_for_update(
        db.session.query(Stock).filter_by(shop_id=shop_id, product_id=product_id)
    ).first()
    if stock is None:
        stock = Stock(shop_id=shop_id, product_id=product_id, quantity=0)
        db.session.add(stock)
        db.session.flush()

    stock.quantity = (stock.quantity or 0) + delta

    movement = StockMovement(
        stock_id=stock.id,
        shop_id=shop_id,
        product_id=product_id,
        reason=reason,
        quantity_delta=delta,
        resulting_quantity=stock.quantity,
        idempotency_key=idempotency_key,
    )
    db.session.add(movement)
    db.session.flush()

    return StockResult(stock=stock, movement=movement, applied=True)


def apply_line_item(
    shop_id: int,
    product_id: int,
    quantity: int,
    client_record_id: str,
    *,
    reason: str = REASON_SALE,
) -> StockResult:
    """
    Decrement stock for one accepted sale/invoice line, exactly once.

    client_record_id identifies the line (e.g. "sale:3:abc:0"); re-applying
    the same id returns the prior result. Caller commits.
    """
    if quantity < 1:
        raise ValidationError("quantity must be >= 1", {"quantity": "must be >= 1"})
    return _apply_delta(shop_id, product_id, -quantity, client_record_id, reason)


def receive_quantity(shop_id: int, product_id: int, quantity: int, idempotency_key: str) -> StockResult:
    """Increment stock for received supply. Caller commits."""
    if quantity < 1:
        raise ValidationError("quantity must be >= 1", {"quantity": "must be >= 1"})
    return _apply_delta(shop_id, product_id, quantity, idempotency_key, REASON_SUPPLY)


def adjust_stock(shop_id: int, product_id: int, delta: int, idempotency_key: str) -> StockResult:
    """Manual correction (count, damage). Commits."""
    if delta == 0:
        raise ValidationError("delta must be non-zero", {"delta": "must be non-zero"})
    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")

    def _op():
        result = _apply_delta(shop_id, product_id, delta, idempotency_key, REASON_ADJUST)
        db.session.commit()
        return result

    return run_with_retry(_op)


def products_not_sold_by_shop(shop_id: int, product_ids) -> set[int]:
    """
    Return the ids from product_ids the shop does not sell.

    A shop sells a product when a Stock row links them and the product is
    not soft-deleted.
    """
    wanted = {int(pid) for pid in product_ids}
    if not wanted:
        return set()
    rows = (
        db.session.query(Stock.product_id)
        .join(Product, Product.id == Stock.product_id)
        .filter(
            Stock.shop_id == shop_id,
            Stock.product_id.in_(wanted),
            Product.deleted_at.is_(None),
        )
        .all()
    )
    return wanted - {row[0] for row in rows}


def list_stock(shop_id: int, *, low_only: bool = False) -> list[Stock]:
    query = (
        db.session.query(Stock)
        .join(Product, Product.id == Stock.product_id)
        .filter(Stock.shop_id == shop_id, Product.deleted_at.is_(None))
    )
    if low_only:
        query = query.filter(Stock.quantity <= Stock.alert_quantity)
    return query.order_by(Stock.product_id.asc()).all()


def stock_alerts(shop_id: int) -> dict:
    """Low-stock and oversold rows for a shop."""
    rows = list_stock(shop_id, low_only=True)
    return {
        "low_stock": [row.to_dict() for row in rows if not row.is_oversold],
        "oversold": [row.to_dict() for row in rows if row.is_oversold],
    }


def list_movements(shop_id: int, product_id: int | None = None, limit: int = 100) -> list[StockMovement]:
    query = db.session.query(StockMovement).filter(StockMovement.shop_id == shop_id)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    return query.order_by(StockMovement.id.desc()).limit(limit).all()
