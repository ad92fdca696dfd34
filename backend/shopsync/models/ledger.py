from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z, utcnow
from ..validation import format_money


# Invoice / sale status values
STATUS_DRAFT = "draft"
STATUS_UNPAID = "unpaid"
STATUS_PARTIALLY_PAID = "partially_paid"
STATUS_PAID = "paid"
STATUS_OVERDUE = "overdue"
STATUS_CANCELLED = "cancelled"

VALID_STATUSES = (
    STATUS_DRAFT,
    STATUS_UNPAID,
    STATUS_PARTIALLY_PAID,
    STATUS_PAID,
    STATUS_OVERDUE,
    STATUS_CANCELLED,
)

# Payment row status; only COMPLETED payments count toward amount_paid
PAYMENT_COMPLETED = "completed"
PAYMENT_REVERSED = "reversed"

PAYMENT_METHODS = ("cash", "credit_card", "bank_transfer", "check")


class Sale(db.Model):
    """
    Point-of-sale transaction.

    Totals (total_price, tax_amount, discount_amount) are supplied by the
    client and stored as sent. amount_paid and status are derived from the
    sale's completed payments and are only written by the ledger service.

    product_id/quantity mirror the first line and the summed quantity for
    clients still on the single-product-per-sale format.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_shop_updated", "shop_id", "updated_at"),
        db.Index("ix_sales_status_due", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")

    amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default=STATUS_UNPAID, index=True)
    due_date = db.Column(db.Date, nullable=True)

    receipt_path = db.Column(db.String(255), nullable=True)

    client_id = db.Column(db.String(64), nullable=True, index=True)
    synced = db.Column(db.Boolean, nullable=False, default=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, index=True)

    shop = db.relationship("Shop", backref=db.backref("sales", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "shop_id": self.shop_id,
            "product_id": self.product_id,
            "customer_id": self.customer_id,
            "quantity": self.quantity,
            "total_price": format_money(self.total_price),
            "tax_amount": format_money(self.tax_amount),
            "discount_amount": format_money(self.discount_amount),
            "payment_method": self.payment_method,
            "amount_paid": format_money(self.amount_paid),
            "status": self.status,
            "due_date": to_iso_date(self.due_date),
            "client_id": self.client_id,
            "synced": self.synced,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

    def to_sync_dict(self) -> dict:
        """Pulled rows carry their line items so clients can rebuild the record."""
        return self.to_dict(include_items=True)


class SaleItem(db.Model):
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": format_money(self.unit_price),
            "tax_rate": format_money(self.tax_rate),
            "discount_rate": format_money(self.discount_rate),
        }


class Invoice(db.Model):
    """
    Customer invoice with items and payments.

    Derived state: amount_paid is the sum of COMPLETED payments and status is
    recomputed from (amount_paid, total_amount, due_date, today) whenever a
    payment is recorded or reversed. Neither is accepted from clients.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_shop_updated", "shop_id", "updated_at"),
        db.Index("ix_invoices_status_due", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="SET NULL"), nullable=True)

    invoice_number = db.Column(db.String(64), nullable=False, unique=True, index=True)
    issue_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=False)

    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=STATUS_DRAFT, index=True)
    notes = db.Column(db.Text, nullable=True)

    client_id = db.Column(db.String(64), nullable=True, index=True)
    synced = db.Column(db.Boolean, nullable=False, default=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow, index=True)

    shop = db.relationship("Shop", backref=db.backref("invoices", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("invoices", lazy=True))
    sale = db.relationship("Sale")

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "shop_id": self.shop_id,
            "customer_id": self.customer_id,
            "sale_id": self.sale_id,
            "invoice_number": self.invoice_number,
            "issue_date": to_iso_date(self.issue_date),
            "due_date": to_iso_date(self.due_date),
            "total_amount": format_money(self.total_amount),
            "tax_amount": format_money(self.tax_amount),
            "discount_amount": format_money(self.discount_amount),
            "amount_paid": format_money(self.amount_paid),
            "status": self.status,
            "notes": self.notes,
            "client_id": self.client_id,
            "synced": self.synced,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

    def to_sync_dict(self) -> dict:
        """Pulled rows carry their line items so clients can rebuild the record."""
        return self.to_dict(include_items=True)


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    # quantity * unit_price + tax - discount_amount
    total_price = db.Column(db.Numeric(12, 2), nullable=False)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    invoice = db.relationship("Invoice", backref=db.backref("items", lazy=True, order_by="InvoiceItem.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": format_money(self.unit_price),
            "total_price": format_money(self.total_price),
            "tax_rate": format_money(self.tax_rate),
            "discount_amount": format_money(self.discount_amount),
        }


class Payment(db.Model):
    """
    Money received against exactly one ledger target: an invoice or a sale.

    Payments are never deleted. A mistaken payment is REVERSED, which removes
    it from amount_paid while keeping the row for audit.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint(
            "(invoice_id IS NULL) <> (sale_id IS NULL)",
            name="ck_payments_single_target",
        ),
        db.Index("ix_payments_updated", "updated_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=True, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=True, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=PAYMENT_COMPLETED, index=True)
    reversed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reversed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reversal_reason = db.Column(db.String(255), nullable=True)

    client_id = db.Column(db.String(64), nullable=True, index=True)
    synced = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    invoice = db.relationship("Invoice", backref=db.backref("payments", lazy=True))
    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True))
    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "sale_id": self.sale_id,
            "shop_id": self.shop_id,
            "user_id": self.user_id,
            "amount": format_money(self.amount),
            "payment_date": to_iso_date(self.payment_date),
            "payment_method": self.payment_method,
            "reference": self.reference,
            "notes": self.notes,
            "status": self.status,
            "reversed_at": to_utc_z(self.reversed_at),
            "reversal_reason": self.reversal_reason,
            "client_id": self.client_id,
            "synced": self.synced,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
