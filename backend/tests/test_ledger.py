# Overview: Pytest coverage for invoice/sale ledger state and payments.

import threading
from datetime import date, timedelta
from decimal import Decimal

import pytest

from shopsync import create_app
from shopsync.extensions import db
from shopsync.models import Customer, Invoice, Notification, Payment, Product, Sale, SecurityEvent, Shop, Stock, StockMovement, User
from shopsync.services import ledger_service
from shopsync.services.ledger_service import compute_status
from shopsync.services.session_service import system_context
from shopsync.time_utils import today
from shopsync.validation import AuthorizationError, ConflictError, ValidationError


AS_OF = date(2026, 3, 10)


@pytest.mark.parametrize(
    "paid,total,due,current,expected",
    [
        ("0", "100", None, "unpaid", "unpaid"),
        ("0", "100", None, "draft", "draft"),
        ("40", "100", None, "unpaid", "partially_paid"),
        ("100", "100", None, "unpaid", "paid"),
        ("150", "100", None, "partially_paid", "paid"),
        ("0", "100", date(2026, 3, 9), "unpaid", "overdue"),
        ("0", "100", date(2026, 3, 10), "unpaid", "unpaid"),
        ("40", "100", date(2026, 3, 1), "overdue", "partially_paid"),
        ("100", "100", date(2026, 3, 1), "overdue", "paid"),
        ("100", "100", None, "cancelled", "cancelled"),
        ("0", "0", None, "draft", "paid"),
    ],
)
def test_compute_status(paid, total, due, current, expected):
    assert compute_status(Decimal(paid), Decimal(total), due, current, AS_OF) == expected


def _invoice(ctx, shop, customer, product, **overrides):
    data = {
        "customer_id": customer.id,
        "items": [{"product_id": product.id, "quantity": 2, "unit_price": "500.00"}],
    }
    data.update(overrides)
    return ledger_service.create_invoice(ctx, shop.id, data)


class TestInvoiceCreation:

    def test_totals_number_and_default_terms(self, db_session, ctx, shop_a, customer_a, product_a):
        invoice = _invoice(
            ctx, shop_a, customer_a, product_a,
            issue_date="2026-05-01",
            items=[
                {"product_id": product_a.id, "quantity": 2, "unit_price": "100.00", "tax_rate": "16"},
                {"product_id": product_a.id, "quantity": 1, "unit_price": "50.00", "discount_amount": "5.00"},
            ],
        )

        assert invoice.invoice_number == f"INV-{shop_a.id}-000001"
        # 200 + 32 tax, then 50 - 5
        assert invoice.total_amount == Decimal("277.00")
        assert invoice.tax_amount == Decimal("32.00")
        assert invoice.discount_amount == Decimal("5.00")
        assert invoice.due_date == date(2026, 5, 16)
        assert len(invoice.items) == 2

    def test_duplicate_invoice_number_conflicts(self, db_session, ctx, shop_a, customer_a, product_a):
        _invoice(ctx, shop_a, customer_a, product_a, invoice_number="A-1")
        with pytest.raises(ConflictError):
            _invoice(ctx, shop_a, customer_a, product_a, invoice_number="A-1")

    def test_discount_above_line_total_rejected(self, db_session, ctx, shop_a, customer_a, product_a):
        with pytest.raises(ValidationError):
            _invoice(
                ctx, shop_a, customer_a, product_a,
                items=[{"product_id": product_a.id, "quantity": 1, "unit_price": "10.00", "discount_amount": "11.00"}],
            )
        assert db_session.query(Invoice).count() == 0

    def test_invoice_decrements_stock_once_per_line(self, db_session, ctx, shop_a, customer_a, product_a):
        _invoice(ctx, shop_a, customer_a, product_a)
        stock = db_session.query(Stock).filter_by(shop_id=shop_a.id, product_id=product_a.id).one()
        assert stock.quantity == 8
        assert db_session.query(StockMovement).count() == 1

    def test_invoice_for_existing_sale_leaves_stock_alone(self, db_session, ctx, shop_a, customer_a, product_a):
        sale = ledger_service.create_sale(ctx, {
            "shop_id": shop_a.id,
            "items": [{"product_id": product_a.id, "quantity": 1, "unit_price": "12.50"}],
            "total_price": "12.50",
        })
        _invoice(ctx, shop_a, customer_a, product_a, sale_id=sale.id)

        stock = db_session.query(Stock).filter_by(shop_id=shop_a.id, product_id=product_a.id).one()
        assert stock.quantity == 9

    def test_product_not_sold_by_shop_rejected(self, db_session, ctx, shop_a, customer_a, product_b):
        with pytest.raises(ValidationError) as exc:
            _invoice(ctx, shop_a, customer_a, product_b)
        assert "items[0].product_id" in exc.value.errors

    def test_customer_of_other_shop_rejected(self, db_session, ctx, shop_a, customer_b, product_a):
        with pytest.raises(ValidationError):
            _invoice(ctx, shop_a, customer_b, product_a)

    def test_past_due_invoice_is_overdue_on_creation(self, db_session, ctx, shop_a, customer_a, product_a):
        invoice = _invoice(
            ctx, shop_a, customer_a, product_a,
            issue_date=(today() - timedelta(days=30)).isoformat(),
            due_date=(today() - timedelta(days=1)).isoformat(),
        )
        assert invoice.status == "overdue"
        assert db_session.query(Notification).filter_by(entity_type="invoice", entity_id=invoice.id).count() == 1

    def test_issue_draft(self, db_session, ctx, shop_a, customer_a, product_a):
        invoice = _invoice(ctx, shop_a, customer_a, product_a, status="draft")
        assert invoice.status == "draft"

        issued = ledger_service.issue_invoice(ctx, invoice.id)
        assert issued.status == "unpaid"

        with pytest.raises(ConflictError):
            ledger_service.issue_invoice(ctx, invoice.id)


class TestPayments:

    def test_partial_full_and_over_payment(self, db_session, ctx, shop_a, customer_a, product_a):
        invoice = _invoice(ctx, shop_a, customer_a, product_a)
        assert invoice.total_amount == Decimal("1000.00")

        _, target = ledger_service.record_payment(ctx, "invoice", invoice.id, {"amount": "400.00", "method": "cash"})
        assert target.status == "partially_paid"
        assert target.record.amount_paid == Decimal("400.00")

        _, target = ledger_service.record_payment(ctx, "invoice", invoice.id, {"amount": "600.00", "method": "card"})
        assert target.status == "paid"
        assert target.record.amount_paid == Decimal("1000.00")

        _, target = ledger_service.record_payment(ctx, "invoice", invoice.id, {"amount": "50.00", "method": "check"})
        assert target.status == "paid"
        assert target.record.amount_paid == Decimal("1050.00")

        summary = target.summary()
        assert summary["balance"] == "0.00"
        assert summary["overpaid"] == "50.00"

    def test_method_aliases_are_normalized(self, db_session, ctx, shop_a, customer_a, product_a):
        invoice = _invoice(ctx, shop_a, customer_a, product_a)
        payment, _ = ledger_service.record_payment(ctx, "invoice", invoice.id, {"amount": "10.00", "method": "transfer"})
        assert payment.payment_method == "bank_transfer"

        with pytest.raises(ValidationError):
            ledger_service.record_payment(ctx, "invoice", invoice.id, {"amount": "10.00", "method": "barter"})

    @pytest.mark.parametrize("amount", ["0", "-5.00", "1.234", "abc"])
    def test_invalid_amount_rejected(self, db_session, ctx, shop_a, customer_a, product_a, amount):
        invoice = _invoice(ctx, shop_a, customer_a, product_a)
        with pytest.raises(ValidationError):
            ledger_service.record_payment(ctx, "invoice", invoice.id, {"amount": amount})
        assert db_session.query(Payment).count() == 0

    def test_reversal_recomputes_from_payment_rows(self, db_session, ctx, shop_a, customer_a, product_a):
        invoice = _invoice(ctx, shop_a, customer_a, product_a)
        first, _ = ledger_service.record_payment(ctx, "invoice", invoice.id, {"amount": "400.00"})
        ledger_service.record_payment(ctx, "invoice", invoice.id, {"amount": "600.00"})

        payment, target = ledger_service.reverse_payment(ctx, first.id, "bounced")
        assert payment.status == "reversed"
        assert target.record.amount_paid == Decimal("600.00")
        assert target.status == "partially_paid"

        event = db_session.query(SecurityEvent).filter_by(event_type="PAYMENT_REVERSED").one()
        assert event.resource == f"payment:{first.id}"

        with pytest.raises(ConflictError):
            ledger_service.reverse_payment(ctx, first.id)

    def test_cancelled_invoice_rejects_payments(self, db_session, ctx, shop_a, customer_a, product_a):
        invoice = _invoice(ctx, shop_a, customer_a, product_a)
        ledger_service.cancel_invoice(ctx, invoice.id, "duplicate")

        with pytest.raises(ConflictError):
            ledger_service.record_payment(ctx, "invoice", invoice.id, {"amount": "10.00"})
        assert db_session.query(Payment).count() == 0

    def test_payment_on_other_shop_denied(self, db_session, shop_b, customer_b, product_b, admin, clerk):
        invoice = _invoice(system_context(admin), shop_b, customer_b, product_b)
        with pytest.raises(AuthorizationError):
            ledger_service.record_payment(system_context(clerk), "invoice", invoice.id, {"amount": "10.00"})
        assert db_session.query(SecurityEvent).filter_by(event_type="SHOP_ACCESS_DENIED").count() == 1

    def test_sale_payments(self, db_session, ctx, shop_a, product_a):
        sale = ledger_service.create_sale(ctx, {
            "shop_id": shop_a.id,
            "items": [{"product_id": product_a.id, "quantity": 2, "unit_price": "12.50"}],
            "total_price": "25.00",
        })
        assert sale.status == "unpaid"

        _, target = ledger_service.record_payment(ctx, "sale", sale.id, {"amount": "25.00"})
        assert target.status == "paid"
        assert ledger_service.get_payment_summary(ctx, "sale", sale.id)["balance"] == "0.00"


class TestOverdueSweep:

    def _unpaid_invoice(self, db_session, shop, customer, due_date, **fields):
        invoice = Invoice(
            shop_id=shop.id,
            customer_id=customer.id,
            invoice_number=fields.pop("invoice_number", "SWEEP-1"),
            issue_date=due_date - timedelta(days=15),
            due_date=due_date,
            total_amount=Decimal("100.00"),
            amount_paid=fields.pop("amount_paid", Decimal("0.00")),
            status=fields.pop("status", "unpaid"),
        )
        db_session.add(invoice)
        db_session.commit()
        return invoice

    def test_sweep_is_idempotent(self, db_session, shop_a, customer_a):
        invoice = self._unpaid_invoice(db_session, shop_a, customer_a, today() - timedelta(days=1))

        first = ledger_service.check_overdue(today())
        assert first["invoices"] == [invoice.id]
        assert first["notifications"] == 1

        second = ledger_service.check_overdue(today())
        assert second["invoices"] == []
        assert second["notifications"] == 0

        db_session.refresh(invoice)
        assert invoice.status == "overdue"
        notifications = db_session.query(Notification).filter_by(entity_type="invoice", entity_id=invoice.id).all()
        assert len(notifications) == 1
        assert notifications[0].event_type == "invoice.overdue"
        assert notifications[0].customer_id == customer_a.id

    def test_sweep_skips_due_today_and_partial(self, db_session, shop_a, customer_a):
        self._unpaid_invoice(db_session, shop_a, customer_a, today(), invoice_number="DUE-TODAY")
        partial = self._unpaid_invoice(
            db_session, shop_a, customer_a, today() - timedelta(days=3),
            invoice_number="PARTIAL", amount_paid=Decimal("40.00"), status="partially_paid",
        )

        result = ledger_service.check_overdue(today())
        assert result["invoices"] == []
        db_session.refresh(partial)
        assert partial.status == "partially_paid"

    def test_sweep_covers_sales_with_due_date(self, db_session, ctx, shop_a, customer_a, product_a):
        sale = ledger_service.create_sale(ctx, {
            "shop_id": shop_a.id,
            "customer_id": customer_a.id,
            "items": [{"product_id": product_a.id, "quantity": 1, "unit_price": "12.50"}],
            "total_price": "12.50",
            "due_date": (today() + timedelta(days=5)).isoformat(),
        })
        assert sale.status == "unpaid"

        result = ledger_service.check_overdue(today() + timedelta(days=6))
        assert result["sales"] == [sale.id]
        assert db_session.query(Notification).filter_by(event_type="sale.overdue").count() == 1


class TestUnitOfWorkHelpers:

    def test_create_sale_in_uow_leaves_commit_to_caller(self, db_session, ctx, shop_a, product_a):
        sale = ledger_service.create_sale_in_uow(ctx, shop_a.id, {
            "items": [{"product_id": product_a.id, "quantity": 1, "unit_price": "12.50"}],
            "total_price": "12.50",
        })
        assert sale.id is not None

        db_session.rollback()
        assert db_session.query(Sale).count() == 0
        assert db_session.query(StockMovement).count() == 0


@pytest.fixture
def file_app(tmp_path):
    """Separate app on a file database so worker threads get their own connections."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'ledger.sqlite3'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
        'BCRYPT_ROUNDS': 4,
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.engine.dispose()


class TestConcurrentPayments:

    WORKERS = 8

    def test_interleaved_payments_keep_amount_paid_equal_to_sum(self, file_app):
        shop = Shop(name="Concurrent")
        db.session.add(shop)
        db.session.flush()
        user = User(
            username="cashier", email="cashier@example.com", password_hash="x",
            role="manager", shop_id=shop.id, is_active=True,
        )
        product = Product(name="Kettle", barcode="500100", price="400.00")
        customer = Customer(shop_id=shop.id, name="Busy Client")
        db.session.add_all([user, product, customer])
        db.session.flush()
        db.session.add(Stock(shop_id=shop.id, product_id=product.id, quantity=5))
        db.session.commit()

        invoice = ledger_service.create_invoice(system_context(user), shop.id, {
            "customer_id": customer.id,
            "items": [{"product_id": product.id, "quantity": 1, "unit_price": "400.00"}],
        })
        user_id, invoice_id = user.id, invoice.id
        db.session.rollback()
        errors = []
        start = threading.Barrier(self.WORKERS)

        def pay():
            with file_app.app_context():
                start.wait(timeout=30)
                try:
                    worker_ctx = system_context(db.session.get(User, user_id))
                    ledger_service.record_payment(worker_ctx, "invoice", invoice_id, {"amount": "50.00"})
                except Exception as exc:  # surfaced through the errors list
                    errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=pay) for _ in range(self.WORKERS)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        db.session.expire_all()
        invoice = db.session.get(Invoice, invoice_id)
        payments = db.session.query(Payment).filter_by(invoice_id=invoice_id).all()
        assert len(payments) == self.WORKERS
        assert invoice.amount_paid == sum((p.amount for p in payments), Decimal("0")) == Decimal("400.00")
        assert invoice.status == "paid"
