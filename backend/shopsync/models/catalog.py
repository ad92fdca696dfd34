from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z, utcnow
from ..validation import format_money, to_money


class Product(db.Model):
    """
    Global product catalog. A shop carries a product when a Stock row exists
    for the (shop, product) pair.

    Barcodes are globally unique. Deletion is a tombstone (deleted_at) so that
    delta pulls can tell clients to drop the product.
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    barcode = db.Column(db.String(64), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=True)

    price = db.Column(db.Numeric(10, 2), nullable=False)
    cost_price = db.Column(db.Numeric(10, 2), nullable=True)

    image_path = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Product id={self.id} barcode={self.barcode!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "description": self.description,
            "price": format_money(self.price),
            "cost_price": format_money(self.cost_price),
            "image_path": self.image_path,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }

    def to_sync_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "barcode": self.barcode,
            "price": format_money(self.price),
            "cost_price": format_money(self.cost_price),
            "updated_at": to_utc_z(self.updated_at),
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Stock(db.Model):
    """
    Per-shop quantity of a product.

    quantity may go negative: offline clients oversell before a sync catches
    up, and the decrement is still recorded. Negative stock is reported, not
    rejected.
    """
    __tablename__ = "stocks"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "product_id", name="uq_stocks_shop_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    alert_quantity = db.Column(db.Integer, nullable=False, default=5)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, index=True)

    shop = db.relationship("Shop", backref=db.backref("stocks", lazy=True))
    product = db.relationship("Product", backref=db.backref("stocks", lazy=True))

    @property
    def is_low(self) -> bool:
        return self.quantity <= self.alert_quantity

    @property
    def is_oversold(self) -> bool:
        return self.quantity < 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "alert_quantity": self.alert_quantity,
            "is_low": self.is_low,
            "is_oversold": self.is_oversold,
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_sync_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only record of every applied stock change.

    idempotency_key is unique: a line item replayed by a retrying client
    finds its movement and is not applied again.
    """
    __tablename__ = "stock_movements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    stock_id = db.Column(db.Integer, db.ForeignKey("stocks.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    reason = db.Column(db.String(32), nullable=False)  # SALE, INVOICE, SUPPLY, ADJUST
    quantity_delta = db.Column(db.Integer, nullable=False)
    resulting_quantity = db.Column(db.Integer, nullable=False)

    idempotency_key = db.Column(db.String(128), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    stock = db.relationship("Stock", backref=db.backref("movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_id": self.stock_id,
            "shop_id": self.shop_id,
            "product_id": self.product_id,
            "reason": self.reason,
            "quantity_delta": self.quantity_delta,
            "resulting_quantity": self.resulting_quantity,
            "idempotency_key": self.idempotency_key,
            "created_at": to_utc_z(self.created_at),
        }


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "updated_at": to_utc_z(self.updated_at),
        }


class Supply(db.Model):
    """
    Stock intake from a supplier into a shop.

    total_cost is derived (quantity * cost_price) and recomputed on every
    flush; it is never accepted from input.
    """
    __tablename__ = "supplies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    cost_price = db.Column(db.Numeric(10, 2), nullable=False)
    total_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    supply_date = db.Column(db.Date, nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    supplier = db.relationship("Supplier", backref=db.backref("supplies", lazy=True))
    product = db.relationship("Product")
    shop = db.relationship("Shop", backref=db.backref("supplies", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "product_id": self.product_id,
            "shop_id": self.shop_id,
            "quantity": self.quantity,
            "cost_price": format_money(self.cost_price),
            "total_cost": format_money(self.total_cost),
            "supply_date": to_iso_date(self.supply_date),
            "expiry_date": to_iso_date(self.expiry_date),
            "batch_number": self.batch_number,
        }


@event.listens_for(Supply, "before_insert")
@event.listens_for(Supply, "before_update")
def _recompute_supply_total(mapper, connection, target):
    target.total_cost = to_money(to_money(target.cost_price) * int(target.quantity or 0))
