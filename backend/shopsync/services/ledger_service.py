# Overview: Service-layer operations for ledger; encapsulates business logic and database work.

"""
Ledger engine: invoices, sales and the payments applied to them.

Derived state rules:
- amount_paid is recomputed from the target's COMPLETED payment rows every
  time a payment is recorded or reversed; it is never incremented.
- status is recomputed by compute_status() from (amount_paid, total,
  due_date, today); cancelled is terminal.
- recomputation happens in the same unit of work as the payment write, with
  the target row locked, so a payment without its status update is never
  committed.

Payments attach to one LedgerTarget: an InvoiceTarget or a SaleTarget.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import Customer, Invoice, InvoiceItem, Notification, Payment, Product, Sale, SaleItem
from ..models.ledger import (
    PAYMENT_COMPLETED,
    PAYMENT_METHODS,
    PAYMENT_REVERSED,
    STATUS_CANCELLED,
    STATUS_DRAFT,
    STATUS_OVERDUE,
    STATUS_PAID,
    STATUS_PARTIALLY_PAID,
    STATUS_UNPAID,
)
from ..time_utils import parse_iso_date, parse_iso_datetime, to_iso_date, today, utcnow
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    format_money,
    parse_int,
    parse_money,
    parse_rate,
    parse_str,
    require_list,
    to_money,
)
from . import access_service, audit_service, notification_service, stock_service
from .concurrency import lock_for_update, run_with_retry


ZERO = Decimal("0.00")

# Legacy client spellings
PAYMENT_METHOD_ALIASES = {
    "card": "credit_card",
    "transfer": "bank_transfer",
}


def normalize_payment_method(value, field: str = "method") -> str:
    method = (str(value).strip().lower() if value is not None else "cash") or "cash"
    method = PAYMENT_METHOD_ALIASES.get(method, method)
    if method not in PAYMENT_METHODS:
        raise ValidationError(
            f"{field} must be one of {', '.join(PAYMENT_METHODS)}",
            {field: "invalid payment method"},
        )
    return method


# =============================================================================
# STATUS FUNCTION
# =============================================================================

def compute_status(
    amount_paid,
    total,
    due_date: date | None,
    current_status: str,
    as_of: date | None = None,
) -> str:
    """
    The single status function for invoices and sales.

    cancelled stays cancelled. Otherwise:
    paid iff amount_paid >= total; partially_paid iff amount_paid > 0;
    overdue iff due_date < as_of; else draft stays draft, anything else unpaid.
    """
    if current_status == STATUS_CANCELLED:
        return STATUS_CANCELLED

    paid = to_money(amount_paid)
    if paid >= to_money(total):
        return STATUS_PAID
    if paid > ZERO:
        return STATUS_PARTIALLY_PAID
    if due_date is not None and due_date < (as_of or today()):
        return STATUS_OVERDUE
    if current_status == STATUS_DRAFT:
        return STATUS_DRAFT
    return STATUS_UNPAID


# =============================================================================
# LEDGER TARGETS
# =============================================================================

class LedgerTarget:
    """A record payments can be applied to."""

    kind: str = ""
    model = None
    overdue_event: str = ""

    def __init__(self, record):
        self.record = record

    @property
    def id(self) -> int:
        return self.record.id

    @property
    def shop_id(self) -> int:
        return self.record.shop_id

    @property
    def status(self) -> str:
        return self.record.status

    @property
    def total(self) -> Decimal:
        raise NotImplementedError

    @property
    def label(self) -> str:
        return f"{self.kind} {self.id}"

    def payment_criteria(self):
        raise NotImplementedError

    def new_payment(self, **fields) -> Payment:
        raise NotImplementedError

    def payments(self, include_reversed: bool = True) -> list[Payment]:
        query = db.session.query(Payment).filter(self.payment_criteria())
        if not include_reversed:
            query = query.filter(Payment.status == PAYMENT_COMPLETED)
        return query.order_by(Payment.id.asc()).all()

    def completed_total(self) -> Decimal:
        """Sum of COMPLETED payment amounts, read fresh from the payment rows."""
        rows = (
            db.session.query(Payment.amount)
            .filter(self.payment_criteria(), Payment.status == PAYMENT_COMPLETED)
            .all()
        )
        return sum((to_money(row[0]) for row in rows), ZERO)

    def recompute(self, as_of: date | None = None) -> str:
        """Refresh amount_paid and status from payment rows. Caller commits."""
        db.session.flush()
        paid = self.completed_total()
        self.record.amount_paid = paid
        new_status = compute_status(paid, self.total, self.record.due_date, self.record.status, as_of)
        set_status(self, new_status)
        return new_status

    def summary(self) -> dict:
        total = to_money(self.total)
        paid = to_money(self.record.amount_paid)
        balance = total - paid
        return {
            "target_type": self.kind,
            "target_id": self.id,
            "total": format_money(total),
            "amount_paid": format_money(paid),
            "balance": format_money(max(balance, ZERO)),
            "overpaid": format_money(max(-balance, ZERO)),
            "status": self.status,
            "payments": [p.to_dict() for p in self.payments()],
        }


class InvoiceTarget(LedgerTarget):
    kind = "invoice"
    model = Invoice
    overdue_event = notification_service.INVOICE_OVERDUE

    @property
    def total(self) -> Decimal:
        return to_money(self.record.total_amount)

    @property
    def label(self) -> str:
        return f"invoice {self.record.invoice_number}"

    def payment_criteria(self):
        return Payment.invoice_id == self.record.id

    def new_payment(self, **fields) -> Payment:
        return Payment(invoice_id=self.record.id, **fields)


class SaleTarget(LedgerTarget):
    kind = "sale"
    model = Sale
    overdue_event = notification_service.SALE_OVERDUE

    @property
    def total(self) -> Decimal:
        return to_money(self.record.total_price)

    def payment_criteria(self):
        return Payment.sale_id == self.record.id

    def new_payment(self, **fields) -> Payment:
        return Payment(sale_id=self.record.id, **fields)


TARGET_TYPES = {
    InvoiceTarget.kind: InvoiceTarget,
    SaleTarget.kind: SaleTarget,
}


def load_target(kind: str, target_id: int, *, lock: bool = True) -> LedgerTarget:
    target_cls = TARGET_TYPES.get(kind)
    if target_cls is None:
        raise ValidationError(f"Unknown ledger target type: {kind}", {"target_type": "invalid"})
    query = db.session.query(target_cls.model).filter_by(id=target_id)
    if lock:
        query = lock_for_update(query)
    record = query.first()
    if record is None:
        raise NotFoundError(f"{kind.capitalize()} {target_id} not found")
    return target_cls(record)


def target_of_payment(payment: Payment, *, lock: bool = True) -> LedgerTarget:
    if payment.invoice_id is not None:
        return load_target(InvoiceTarget.kind, payment.invoice_id, lock=lock)
    return load_target(SaleTarget.kind, payment.sale_id, lock=lock)


def set_status(target: LedgerTarget, new_status: str) -> Notification | None:
    """
    Write a status. A transition into overdue queues the customer
    notification, which is returned.
    """
    old_status = target.record.status
    target.record.status = new_status
    if new_status == STATUS_OVERDUE and old_status != STATUS_OVERDUE:
        return notification_service.emit_once(
            shop_id=target.shop_id,
            customer_id=target.record.customer_id,
            event_type=target.overdue_event,
            entity_type=target.kind,
            entity_id=target.id,
            payload={
                "label": target.label,
                "due_date": to_iso_date(target.record.due_date),
                "total": format_money(target.total),
                "amount_paid": format_money(target.record.amount_paid),
            },
        )
    return None


# =============================================================================
# INPUT PARSING
# =============================================================================

def _check_customer(shop_id: int, customer_id: int | None, field: str = "customer_id") -> Customer | None:
    if customer_id is None:
        return None
    customer = db.session.get(Customer, customer_id)
    if customer is None or customer.shop_id != shop_id or customer.deleted_at is not None:
        raise ValidationError(
            f"Customer {customer_id} does not belong to this shop",
            {field: "not a customer of this shop"},
        )
    return customer


def _check_products_sold(shop_id: int, items: list[dict]) -> None:
    missing = stock_service.products_not_sold_by_shop(shop_id, [item["product_id"] for item in items])
    if missing:
        errors = {
            f"items[{idx}].product_id": "not sold by this shop"
            for idx, item in enumerate(items)
            if item["product_id"] in missing
        }
        raise ValidationError(
            f"Products not sold by shop {shop_id}: {', '.join(str(p) for p in sorted(missing))}",
            errors,
        )


def parse_invoice_items(raw_items, *, max_items: int) -> list[dict]:
    items = []
    for idx, raw in enumerate(require_list(raw_items, "items", min_items=1, max_items=max_items)):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object", {f"items[{idx}]": "must be an object"})
        product_id = parse_int(raw.get("product_id"), f"items[{idx}].product_id", minimum=1)
        unit_price = parse_money(raw.get("unit_price"), f"items[{idx}].unit_price", required=False)
        if unit_price is None:
            product = db.session.get(Product, product_id)
            unit_price = to_money(product.price) if product is not None else ZERO
        items.append({
            "product_id": product_id,
            "quantity": parse_int(raw.get("quantity"), f"items[{idx}].quantity", minimum=1),
            "unit_price": unit_price,
            "tax_rate": parse_rate(raw.get("tax_rate"), f"items[{idx}].tax_rate"),
            "discount_amount": parse_money(
                raw.get("discount_amount"), f"items[{idx}].discount_amount", required=False
            ) or ZERO,
        })
    return items


def price_invoice_line(item: dict) -> tuple[Decimal, Decimal, Decimal]:
    """Return (tax, discount, line_total) for one invoice line."""
    subtotal = to_money(item["unit_price"] * item["quantity"])
    tax = to_money(subtotal * item["tax_rate"] / Decimal("100"))
    discount = to_money(item["discount_amount"])
    line_total = subtotal + tax - discount
    if line_total < ZERO:
        raise ValidationError(
            "discount_amount exceeds the line total",
            {"discount_amount": "exceeds line total"},
        )
    return tax, discount, line_total


def next_invoice_number(shop_id: int) -> str:
    seq = db.session.query(Invoice.id).filter(Invoice.shop_id == shop_id).count() + 1
    while True:
        number = f"INV-{shop_id}-{seq:06d}"
        if db.session.query(Invoice.id).filter_by(invoice_number=number).first() is None:
            return number
        seq += 1


# =============================================================================
# INVOICES
# =============================================================================

def create_invoice_in_uow(context, shop_id: int, data: dict, *, client_id: str | None = None) -> Invoice:
    """
    Validate and persist an invoice with its items; decrement stock per line
    unless the invoice bills an existing sale. Caller commits.
    """
    config = current_app.config
    customer_id = parse_int(data.get("customer_id"), "customer_id", minimum=1)
    _check_customer(shop_id, customer_id)

    sale_id = parse_int(data.get("sale_id"), "sale_id", required=False, minimum=1)
    if sale_id is not None:
        sale = db.session.get(Sale, sale_id)
        if sale is None or sale.shop_id != shop_id:
            raise ValidationError(f"Sale {sale_id} does not belong to this shop", {"sale_id": "invalid"})

    items = parse_invoice_items(data.get("items"), max_items=config["SYNC_MAX_LINE_ITEMS"])
    _check_products_sold(shop_id, items)

    try:
        issue_date = parse_iso_date(data.get("issue_date")) or today()
        due_date = parse_iso_date(data.get("due_date"))
    except ValueError:
        raise ValidationError("issue_date and due_date must be ISO-8601 dates", {"due_date": "invalid date"})
    if due_date is None:
        due_date = issue_date + timedelta(days=config["INVOICE_DEFAULT_TERMS_DAYS"])
    if due_date < issue_date:
        raise ValidationError("due_date must not be before issue_date", {"due_date": "before issue_date"})

    initial_status = str(data.get("status") or STATUS_UNPAID).strip().lower()
    if initial_status not in (STATUS_DRAFT, STATUS_UNPAID):
        raise ValidationError("status must be draft or unpaid", {"status": "invalid"})

    invoice_number = parse_str(data.get("invoice_number"), "invoice_number", max_length=64)
    if invoice_number:
        if db.session.query(Invoice.id).filter_by(invoice_number=invoice_number).first() is not None:
            raise ConflictError(f"Invoice number {invoice_number} already exists")
    else:
        invoice_number = next_invoice_number(shop_id)

    invoice = Invoice(
        shop_id=shop_id,
        customer_id=customer_id,
        sale_id=sale_id,
        invoice_number=invoice_number,
        issue_date=issue_date,
        due_date=due_date,
        total_amount=ZERO,
        amount_paid=ZERO,
        status=initial_status,
        notes=parse_str(data.get("notes"), "notes", max_length=2000),
        client_id=client_id,
        created_by_user_id=context.user.id,
    )
    db.session.add(invoice)
    db.session.flush()

    total = tax_total = discount_total = ZERO
    for item in items:
        tax, discount, line_total = price_invoice_line(item)
        db.session.add(InvoiceItem(
            invoice_id=invoice.id,
            product_id=item["product_id"],
            quantity=item["quantity"],
            unit_price=item["unit_price"],
            total_price=line_total,
            tax_rate=item["tax_rate"],
            discount_amount=discount,
        ))
        total += line_total
        tax_total += tax
        discount_total += discount

    invoice.total_amount = total
    invoice.tax_amount = tax_total
    invoice.discount_amount = discount_total

    if sale_id is None:
        line_key = client_id or f"srv-{invoice.id}"
        for idx, item in enumerate(items):
            stock_service.apply_line_item(
                shop_id,
                item["product_id"],
                item["quantity"],
                f"invoice:{shop_id}:{line_key}:{idx}",
                reason=stock_service.REASON_INVOICE,
            )

    InvoiceTarget(invoice).recompute()
    return invoice


def create_invoice(context, shop_id: int, data: dict) -> Invoice:
    access_service.get_shop_or_404(shop_id)
    access_service.require_shop_access(context, shop_id, resource="invoices", action="create")

    def _op():
        invoice = create_invoice_in_uow(context, shop_id, data)
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def issue_invoice(context, invoice_id: int) -> Invoice:
    """draft -> unpaid (or whatever the status function yields once issued)."""
    def _op():
        target = load_target(InvoiceTarget.kind, invoice_id)
        access_service.require_shop_access(context, target.shop_id, resource="invoices", action="issue")
        if target.status != STATUS_DRAFT:
            raise ConflictError(f"Only draft invoices can be issued (status is {target.status})")
        target.record.status = STATUS_UNPAID
        target.recompute()
        db.session.commit()
        return target.record

    return run_with_retry(_op)


def cancel_invoice(context, invoice_id: int, reason: str | None = None) -> Invoice:
    def _op():
        target = load_target(InvoiceTarget.kind, invoice_id)
        access_service.require_shop_access(context, target.shop_id, resource="invoices", action="cancel")
        if target.status == STATUS_PAID:
            raise ConflictError("Paid invoices cannot be cancelled")
        if target.status != STATUS_CANCELLED:
            target.record.status = STATUS_CANCELLED
            if reason:
                note = f"Cancelled: {reason}"
                target.record.notes = f"{target.record.notes}\n{note}" if target.record.notes else note
            db.session.commit()
        return target.record

    return run_with_retry(_op)


def get_invoice(context, invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_id} not found")
    access_service.require_shop_access(context, invoice.shop_id, resource="invoices", action="read")
    return invoice


def list_invoices(shop_id: int, *, status: str | None = None, customer_id: int | None = None) -> list[Invoice]:
    query = db.session.query(Invoice).filter(Invoice.shop_id == shop_id)
    if status:
        query = query.filter(Invoice.status == status)
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)
    return query.order_by(Invoice.issue_date.desc(), Invoice.id.desc()).all()


# =============================================================================
# SALES
# =============================================================================

def parse_sale_items(raw_items, *, max_items: int) -> list[dict]:
    items = []
    for idx, raw in enumerate(require_list(raw_items, "items", min_items=1, max_items=max_items)):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object", {f"items[{idx}]": "must be an object"})
        items.append({
            "product_id": parse_int(raw.get("product_id"), f"items[{idx}].product_id", minimum=1),
            "quantity": parse_int(raw.get("quantity"), f"items[{idx}].quantity", minimum=1),
            "unit_price": parse_money(raw.get("unit_price"), f"items[{idx}].unit_price"),
            "tax_rate": parse_rate(raw.get("tax_rate"), f"items[{idx}].tax_rate"),
            "discount_rate": parse_rate(raw.get("discount_rate"), f"items[{idx}].discount_rate"),
        })
    return items


def create_sale_in_uow(context, shop_id: int, data: dict, *, client_id: str | None = None) -> Sale:
    """
    Persist a sale and its items and decrement stock once per line.

    total_price, tax_amount and discount_amount are stored exactly as the
    client computed them; line items are not re-priced. Caller commits.
    """
    customer_id = parse_int(data.get("customer_id"), "customer_id", required=False, minimum=1)
    _check_customer(shop_id, customer_id)

    items = parse_sale_items(data.get("items"), max_items=current_app.config["SYNC_MAX_LINE_ITEMS"])
    _check_products_sold(shop_id, items)

    try:
        created_at = parse_iso_datetime(data.get("created_at"))
    except ValueError:
        raise ValidationError("created_at must be an ISO-8601 datetime", {"created_at": "invalid datetime"})
    try:
        due_date = parse_iso_date(data.get("due_date"))
    except ValueError:
        raise ValidationError("due_date must be an ISO-8601 date", {"due_date": "invalid date"})

    sale = Sale(
        shop_id=shop_id,
        customer_id=customer_id,
        product_id=items[0]["product_id"],
        quantity=sum(item["quantity"] for item in items),
        total_price=parse_money(data.get("total_price"), "total_price"),
        tax_amount=parse_money(data.get("tax_amount"), "tax_amount", required=False) or ZERO,
        discount_amount=parse_money(data.get("discount_amount"), "discount_amount", required=False) or ZERO,
        payment_method=normalize_payment_method(data.get("payment_method"), "payment_method"),
        amount_paid=ZERO,
        status=STATUS_UNPAID,
        due_date=due_date,
        client_id=client_id,
        created_by_user_id=context.user.id,
    )
    if created_at is not None:
        sale.created_at = created_at
    db.session.add(sale)
    db.session.flush()

    line_key = client_id or f"srv-{sale.id}"
    for idx, item in enumerate(items):
        db.session.add(SaleItem(sale_id=sale.id, **item))
        stock_service.apply_line_item(
            shop_id,
            item["product_id"],
            item["quantity"],
            f"sale:{shop_id}:{line_key}:{idx}",
            reason=stock_service.REASON_SALE,
        )

    SaleTarget(sale).recompute()
    return sale


def create_sale(context, data: dict) -> Sale:
    shop_id = parse_int(data.get("shop_id"), "shop_id", minimum=1)
    access_service.get_shop_or_404(shop_id)
    access_service.require_shop_access(context, shop_id, resource="sales", action="create")

    def _op():
        sale = create_sale_in_uow(context, shop_id, data)
        db.session.commit()
        return sale

    return run_with_retry(_op)


def get_sale(context, sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    access_service.require_shop_access(context, sale.shop_id, resource="sales", action="read")
    return sale


def attach_receipt(context, sale_id: int, receipt_path: str) -> Sale:
    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found")
        sale.receipt_path = receipt_path
        db.session.commit()
        return sale

    return run_with_retry(_op)


# =============================================================================
# PAYMENTS
# =============================================================================

def record_payment_in_uow(
    context,
    target: LedgerTarget,
    amount: Decimal,
    method: str,
    *,
    reference: str | None = None,
    notes: str | None = None,
    payment_date: date | None = None,
    client_id: str | None = None,
) -> Payment:
    """Persist a payment and recompute the target's ledger state. Caller commits."""
    if target.status == STATUS_CANCELLED:
        raise ConflictError(f"Cannot record a payment on cancelled {target.label}")

    payment = target.new_payment(
        shop_id=target.shop_id,
        user_id=context.user.id,
        amount=amount,
        payment_date=payment_date or today(),
        payment_method=method,
        reference=reference,
        notes=notes,
        status=PAYMENT_COMPLETED,
        client_id=client_id,
    )
    db.session.add(payment)
    target.recompute()
    return payment


def parse_payment_fields(data: dict) -> dict:
    try:
        payment_date = parse_iso_date(data.get("payment_date"))
    except ValueError:
        raise ValidationError("payment_date must be an ISO-8601 date", {"payment_date": "invalid date"})
    return {
        "amount": parse_money(data.get("amount"), "amount", allow_zero=False),
        "method": normalize_payment_method(data.get("method", data.get("payment_method"))),
        "reference": parse_str(
            data.get("reference", data.get("transaction_id")), "reference", max_length=128
        ),
        "notes": parse_str(data.get("notes"), "notes", max_length=2000),
        "payment_date": payment_date,
    }


def record_payment(context, target_kind: str, target_id: int, data: dict) -> tuple[Payment, LedgerTarget]:
    """
    Record a payment against an invoice or sale.

    NotFoundError if the target is missing, AuthorizationError if the caller
    cannot act on its shop. Payment, amount_paid and status commit together.
    """
    fields = parse_payment_fields(data)

    def _op():
        target = load_target(target_kind, target_id)
        access_service.require_shop_access(context, target.shop_id, resource="payments", action="create")
        payment = record_payment_in_uow(context, target, **fields)
        db.session.commit()
        return payment, target

    return run_with_retry(_op)


def reverse_payment(context, payment_id: int, reason: str | None = None) -> tuple[Payment, LedgerTarget]:
    """Mark a payment REVERSED and recompute its target in one unit of work."""
    reason = parse_str(reason, "reason", max_length=255)

    def _op():
        payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).first()
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found")
        target = target_of_payment(payment)
        access_service.require_shop_access(context, target.shop_id, resource="payments", action="reverse")
        if payment.status == PAYMENT_REVERSED:
            raise ConflictError(f"Payment {payment_id} is already reversed")

        payment.status = PAYMENT_REVERSED
        payment.reversed_at = utcnow()
        payment.reversed_by_user_id = context.user.id
        payment.reversal_reason = reason
        target.recompute()

        audit_service.log_context_event(
            context,
            audit_service.PAYMENT_REVERSED,
            True,
            resource=f"payment:{payment.id}",
            action="reverse",
            reason=reason,
            shop_id=target.shop_id,
            commit=False,
        )
        db.session.commit()
        return payment, target

    return run_with_retry(_op)


def get_payment_summary(context, target_kind: str, target_id: int) -> dict:
    target = load_target(target_kind, target_id, lock=False)
    access_service.require_shop_access(context, target.shop_id, resource="payments", action="read")
    return target.summary()


# =============================================================================
# OVERDUE SWEEP
# =============================================================================

def check_overdue(as_of: date | None = None) -> dict:
    """
    Transition past-due invoices and sales to overdue.

    Candidates are records not paid/cancelled/overdue with due_date < as_of;
    each is moved only when the status function yields overdue for it, so
    partially paid records keep partially_paid. Already-overdue records are
    never touched again, which makes repeated runs emit no new
    notifications.
    """
    as_of = as_of or today()

    def _op():
        result = {"as_of": to_iso_date(as_of), "invoices": [], "sales": [], "notifications": 0}
        for target_cls, bucket in ((InvoiceTarget, "invoices"), (SaleTarget, "sales")):
            model = target_cls.model
            candidates = lock_for_update(
                db.session.query(model).filter(
                    model.status.notin_((STATUS_PAID, STATUS_CANCELLED, STATUS_OVERDUE)),
                    model.due_date.isnot(None),
                    model.due_date < as_of,
                ).order_by(model.id.asc())
            ).all()

            for record in candidates:
                target = target_cls(record)
                status = compute_status(record.amount_paid, target.total, record.due_date, record.status, as_of)
                if status != STATUS_OVERDUE:
                    continue
                notification = set_status(target, STATUS_OVERDUE)
                result[bucket].append(record.id)
                if notification is not None:
                    result["notifications"] += 1
                current_app.logger.info("Marked %s as overdue", target.label)

        db.session.commit()
        return result

    result = run_with_retry(_op)
    current_app.logger.info(
        "Overdue sweep as of %s: %d invoice(s), %d sale(s)",
        result["as_of"], len(result["invoices"]), len(result["sales"]),
    )
    return result

