# Overview: Pytest coverage for batched client pushes.

"""
Sync push tests.

A batch is applied record by record: accepted records report their server
id, rejected ones land in `skipped` with a reason, and replays of an
already-accepted client id never apply anything twice.
"""

from decimal import Decimal

from shopsync.models import Customer, Invoice, Payment, Sale, SecurityEvent, Stock, StockMovement, SyncReceipt
from shopsync.services import sync_service, sync_state_service


def _sale(client_id, shop, product, quantity=1, **fields):
    record = {
        "id": client_id,
        "shop_id": shop.id,
        "items": [{"product_id": product.id, "quantity": quantity, "unit_price": "12.50"}],
        "total_price": str(Decimal("12.50") * quantity),
        "payment_method": "cash",
        "created_at": "2026-02-01T10:15:00Z",
    }
    record.update(fields)
    return record


def _invoice(client_id, shop, customer, product, quantity=2, **fields):
    record = {
        "id": client_id,
        "shop_id": shop.id,
        "customer_id": customer.id,
        "issue_date": "2026-02-01",
        "items": [{"product_id": product.id, "quantity": quantity, "unit_price": "12.50"}],
    }
    record.update(fields)
    return record


def _stock(db_session, shop, product):
    return db_session.query(Stock).filter_by(shop_id=shop.id, product_id=product.id).one()


class TestSalePush:

    def test_bad_record_is_skipped_and_the_rest_applied(
        self, client, db_session, clerk_headers, shop_a, product_a, product_b
    ):
        response = client.post('/api/sync/sales', headers=clerk_headers, json={"sales": [
            _sale(1, shop_a, product_a),
            _sale(2, shop_a, product_b),
            _sale(3, shop_a, product_a, quantity=2),
        ]})

        assert response.status_code == 201
        body = response.json
        assert body["processed"] == [1, 3]
        assert [s["client_id"] for s in body["skipped"]] == [2]
        assert "not sold by shop" in body["skipped"][0]["reason"]

        db_session.expire_all()
        assert db_session.query(Sale).count() == 2
        assert _stock(db_session, shop_a, product_a).quantity == 7
        assert db_session.query(StockMovement).filter_by(product_id=product_b.id).count() == 0

    def test_pushed_sale_keeps_client_values(self, db_session, ctx, shop_a, product_a):
        result = sync_service.push(ctx, "sales", [_sale("a-1", shop_a, product_a, quantity=3, total_price="30.00")])
        sale = db_session.get(Sale, result.records[0]["id"])

        assert sale.total_price == Decimal("30.00")
        assert sale.quantity == 3
        assert sale.product_id == product_a.id
        assert sale.status == "unpaid"
        assert sale.synced is True
        assert sale.client_id == "a-1"
        assert sale.created_at.isoformat().startswith("2026-02-01T10:15:00")

    def test_replay_returns_original_ids(self, db_session, ctx, shop_a, product_a):
        batch = [_sale(1, shop_a, product_a), _sale(2, shop_a, product_a)]
        first = sync_service.push(ctx, "sales", batch)
        second = sync_service.push(ctx, "sales", batch)

        assert second.processed == [1, 2]
        assert second.records == first.records
        assert db_session.query(Sale).count() == 2
        assert db_session.query(StockMovement).count() == 2
        assert _stock(db_session, shop_a, product_a).quantity == 8

    def test_changed_replay_is_a_conflict(self, db_session, ctx, shop_a, product_a):
        sync_service.push(ctx, "sales", [_sale(1, shop_a, product_a)])
        result = sync_service.push(ctx, "sales", [_sale(1, shop_a, product_a, total_price="99.00")])

        assert result.processed == []
        assert result.skipped[0]["client_id"] == 1
        assert "different content" in result.skipped[0]["reason"]
        assert db_session.query(Sale).one().total_price == Decimal("12.50")

    def test_record_for_foreign_shop_is_skipped_and_audited(
        self, db_session, ctx, shop_a, shop_b, product_a, product_b
    ):
        result = sync_service.push(ctx, "sales", [
            _sale(1, shop_b, product_b),
            _sale(2, shop_a, product_a),
        ])

        assert result.processed == [2]
        assert result.skipped == [{"client_id": 1, "reason": "shop access denied"}]
        event = db_session.query(SecurityEvent).filter_by(event_type="SHOP_ACCESS_DENIED").one()
        assert event.shop_id == shop_b.id
        assert event.user_id == ctx.user.id
        assert _stock(db_session, shop_b, product_b).quantity == 20

    def test_missing_fields_report_errors(self, db_session, ctx, shop_a, product_a):
        result = sync_service.push(ctx, "sales", [{"id": 5, "shop_id": shop_a.id, "items": []}])
        assert result.skipped[0]["client_id"] == 5
        assert "items" in result.skipped[0]["errors"]

    def test_oversell_is_recorded(self, db_session, ctx, shop_a, product_a):
        sync_service.push(ctx, "sales", [_sale(1, shop_a, product_a, quantity=12)])
        stock = _stock(db_session, shop_a, product_a)
        assert stock.quantity == -2
        assert stock.is_oversold

    def test_concurrent_duplicate_resolves_to_the_committed_record(self, db_session, ctx, shop_a, product_a, monkeypatch):
        first = sync_service.push(ctx, "sales", [_sale(1, shop_a, product_a)])

        # The second push reads no receipt, as if the first had not committed yet
        find_receipt = sync_state_service.find_receipt
        calls = []

        def racing_find_receipt(*args):
            calls.append(args)
            return None if len(calls) == 1 else find_receipt(*args)

        monkeypatch.setattr(sync_state_service, "find_receipt", racing_find_receipt)
        second = sync_service.push(ctx, "sales", [_sale(1, shop_a, product_a)])

        assert second.processed == [1]
        assert second.records == first.records
        assert db_session.query(Sale).count() == 1
        assert db_session.query(StockMovement).count() == 1
        assert _stock(db_session, shop_a, product_a).quantity == 9


class TestPushAdmission:

    def test_batch_over_limit_is_refused(self, app, client, clerk_headers, shop_a, product_a, monkeypatch):
        monkeypatch.setitem(app.config, "SYNC_MAX_BATCH_RECORDS", 2)
        response = client.post('/api/sync/sales', headers=clerk_headers, json={"sales": [
            _sale(i, shop_a, product_a) for i in range(3)
        ]})
        assert response.status_code == 413
        assert response.json["success"] is False

    def test_push_body_larger_than_a_receipt_is_accepted(self, client, db_session, clerk_headers, shop_a):
        notes = "x" * 150_000
        records = [{"id": f"c-{i}", "name": f"Walk-in {i}", "notes": notes} for i in range(20)]

        response = client.post(f'/api/shops/{shop_a.id}/customers', headers=clerk_headers, json={"customers": records})

        assert response.status_code == 201
        assert len(response.json["processed"]) == 20

    def test_records_past_deadline_are_skipped(self, app, ctx, shop_a, product_a, monkeypatch):
        monkeypatch.setitem(app.config, "SYNC_PUSH_DEADLINE_SECONDS", -1)
        result = sync_service.push(ctx, "sales", [_sale(1, shop_a, product_a), _sale(2, shop_a, product_a)])
        assert result.processed == []
        assert [s["reason"] for s in result.skipped] == ["timeout", "timeout"]

    def test_shop_scoped_push_requires_access(self, client, db_session, clerk_headers, shop_b, product_b):
        response = client.post(f'/api/shops/{shop_b.id}/sales', headers=clerk_headers, json={"sales": [
            _sale(1, shop_b, product_b),
        ]})
        assert response.status_code == 403
        assert db_session.query(Sale).count() == 0

    def test_shop_scoped_push_rejects_other_shop_records(self, client, clerk_headers, shop_a, shop_b):
        response = client.post(f'/api/shops/{shop_a.id}/customers', headers=clerk_headers, json={"customers": [
            {"id": "c-1", "name": "Walk-in"},
            {"id": "c-2", "name": "Elsewhere", "shop_id": shop_b.id},
        ]})
        assert response.status_code == 201
        assert response.json["processed"] == ["c-1"]
        assert response.json["skipped"][0]["errors"] == {"shop_id": "mismatch"}

    def test_missing_batch_is_422(self, client, clerk_headers):
        response = client.post('/api/sync/customers', headers=clerk_headers, json={})
        assert response.status_code == 422

    def test_push_requires_auth(self, client, db_session):
        response = client.post('/api/sync/sales', json={"sales": []})
        assert response.status_code == 401


class TestCustomerPush:

    def test_changed_replay_updates_customer(self, db_session, ctx, shop_a):
        first = sync_service.push(ctx, "customers", [{"id": 7, "shop_id": shop_a.id, "name": "Ann"}])
        second = sync_service.push(ctx, "customers", [
            {"id": 7, "shop_id": shop_a.id, "name": "Ann Lee", "phone": "555-0199"},
        ])

        assert second.records == first.records
        customer = db_session.query(Customer).one()
        assert customer.name == "Ann Lee"
        assert customer.phone == "555-0199"
        assert customer.synced is True

    def test_server_id_updates_existing_customer(self, db_session, ctx, shop_a, customer_a):
        result = sync_service.push(ctx, "customers", [
            {"id": "c-9", "server_id": customer_a.id, "shop_id": shop_a.id, "name": "Ada Renamed"},
        ])
        assert result.records == [{"client_id": "c-9", "id": customer_a.id}]
        db_session.refresh(customer_a)
        assert customer_a.name == "Ada Renamed"
        assert db_session.query(Customer).count() == 1


class TestPaymentPush:

    def test_payment_resolves_sale_by_client_id(self, db_session, ctx, shop_a, product_a):
        sync_service.push(ctx, "sales", [_sale("s-1", shop_a, product_a, total_price="12.50")])
        result = sync_service.push(ctx, "payments", [
            {"id": "p-1", "shop_id": shop_a.id, "sale_client_id": "s-1", "amount": "12.50", "method": "card"},
        ])

        assert result.processed == ["p-1"]
        payment = db_session.query(Payment).one()
        assert payment.payment_method == "credit_card"
        assert payment.synced is True
        sale = db_session.get(Sale, payment.sale_id)
        assert sale.status == "paid"

    def test_payment_replay_is_not_double_counted(self, db_session, ctx, shop_a, product_a):
        pushed = sync_service.push(ctx, "sales", [_sale("s-1", shop_a, product_a, quantity=4)])
        sale_id = pushed.records[0]["id"]
        payment = {"id": "p-1", "sale_id": sale_id, "amount": "20.00"}

        sync_service.push(ctx, "payments", [payment])
        sync_service.push(ctx, "payments", [payment])

        sale = db_session.get(Sale, sale_id)
        assert sale.amount_paid == Decimal("20.00")
        assert sale.status == "partially_paid"
        assert db_session.query(Payment).count() == 1
        assert db_session.query(SyncReceipt).filter_by(entity_type="payments").count() == 1

    def test_unknown_sale_client_id_is_skipped(self, db_session, ctx, shop_a):
        result = sync_service.push(ctx, "payments", [
            {"id": "p-1", "shop_id": shop_a.id, "sale_client_id": "never-pushed", "amount": "5.00"},
        ])
        assert result.skipped[0]["errors"] == {"sale_client_id": "unknown"}


class TestInvoicePush:

    def test_replay_creates_one_invoice_and_one_decrement(self, db_session, ctx, shop_a, product_a, customer_a):
        record = _invoice("i-1", shop_a, customer_a, product_a)
        first = sync_service.push(ctx, "invoices", [record])
        second = sync_service.push(ctx, "invoices", [record])

        assert second.processed == ["i-1"]
        assert second.records == first.records
        invoice = db_session.query(Invoice).one()
        assert invoice.total_amount == Decimal("25.00")
        assert invoice.client_id == "i-1"
        assert invoice.synced is True
        assert db_session.query(StockMovement).count() == 1
        assert _stock(db_session, shop_a, product_a).quantity == 8

    def test_changed_replay_is_a_conflict(self, db_session, ctx, shop_a, product_a, customer_a):
        sync_service.push(ctx, "invoices", [_invoice("i-1", shop_a, customer_a, product_a)])
        result = sync_service.push(ctx, "invoices", [_invoice("i-1", shop_a, customer_a, product_a, quantity=5)])

        assert result.processed == []
        assert "different content" in result.skipped[0]["reason"]
        assert db_session.query(Invoice).one().total_amount == Decimal("25.00")
        assert _stock(db_session, shop_a, product_a).quantity == 8

    def test_invoice_for_pushed_sale_leaves_stock_alone(self, db_session, ctx, shop_a, product_a, customer_a):
        pushed = sync_service.push(ctx, "sales", [_sale("s-1", shop_a, product_a)])
        sale_id = pushed.records[0]["id"]

        result = sync_service.push(ctx, "invoices", [
            _invoice("i-1", shop_a, customer_a, product_a, quantity=1, sale_id=sale_id),
        ])

        assert result.processed == ["i-1"]
        assert db_session.query(Invoice).one().sale_id == sale_id
        assert _stock(db_session, shop_a, product_a).quantity == 9
        assert db_session.query(StockMovement).count() == 1

    def test_invalid_line_is_skipped_and_the_rest_applied(
        self, client, db_session, clerk_headers, shop_a, product_a, customer_a
    ):
        bad = _invoice("i-2", shop_a, customer_a, product_a)
        bad["items"][0]["quantity"] = 0

        response = client.post(f'/api/shops/{shop_a.id}/invoices', headers=clerk_headers, json={"invoices": [
            _invoice("i-1", shop_a, customer_a, product_a),
            bad,
            _invoice("i-3", shop_a, customer_a, product_a, quantity=1),
        ]})

        assert response.status_code == 201
        body = response.json
        assert body["processed"] == ["i-1", "i-3"]
        assert body["skipped"][0]["client_id"] == "i-2"
        assert "items[0].quantity" in body["skipped"][0]["errors"]

        db_session.expire_all()
        assert db_session.query(Invoice).count() == 2
        assert _stock(db_session, shop_a, product_a).quantity == 7
