# Overview: Pytest coverage for stock movements and supply intake.

from datetime import date
from decimal import Decimal

import pytest

from shopsync.models import Stock, StockMovement, Supplier, Supply
from shopsync.services import stock_service, supply_service
from shopsync.time_utils import utcnow
from shopsync.validation import ValidationError


@pytest.fixture
def supplier(db_session):
    supplier = Supplier(name="Roastery Ltd", phone="555-0300")
    db_session.add(supplier)
    db_session.commit()
    return supplier


class TestStockEngine:

    def test_line_item_applies_once(self, db_session, shop_a, product_a):
        first = stock_service.apply_line_item(shop_a.id, product_a.id, 3, "sale:1:abc:0")
        again = stock_service.apply_line_item(shop_a.id, product_a.id, 3, "sale:1:abc:0")
        db_session.commit()

        assert first.applied is True
        assert again.applied is False
        assert again.movement.id == first.movement.id
        assert first.movement.resulting_quantity == 7
        stock = db_session.query(Stock).filter_by(shop_id=shop_a.id, product_id=product_a.id).one()
        assert stock.quantity == 7
        assert db_session.query(StockMovement).count() == 1

    def test_zero_quantity_rejected(self, db_session, shop_a, product_a):
        with pytest.raises(ValidationError):
            stock_service.apply_line_item(shop_a.id, product_a.id, 0, "sale:1:abc:0")

    def test_products_not_sold_by_shop(self, db_session, shop_a, product_a, product_b):
        assert stock_service.products_not_sold_by_shop(shop_a.id, [product_a.id, product_b.id]) == {product_b.id}

    def test_deleted_product_is_not_sold(self, db_session, shop_a, product_a):
        product_a.deleted_at = utcnow()
        db_session.commit()
        assert stock_service.products_not_sold_by_shop(shop_a.id, [product_a.id]) == {product_a.id}

    def test_alerts_split_low_and_oversold(self, db_session, shop_a, product_a):
        stock_service.adjust_stock(shop_a.id, product_a.id, -12, "adjust:1:count-1")
        alerts = stock_service.stock_alerts(shop_a.id)
        assert alerts["low_stock"] == []
        assert [row["product_id"] for row in alerts["oversold"]] == [product_a.id]

    def test_adjust_route_is_idempotent_per_reference(self, client, db_session, manager_headers, shop_a, product_a):
        body = {"product_id": product_a.id, "delta": -2, "reference": "damage-7"}
        first = client.post(f'/api/shops/{shop_a.id}/stock/adjust', headers=manager_headers, json=body)
        second = client.post(f'/api/shops/{shop_a.id}/stock/adjust', headers=manager_headers, json=body)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json["data"]["applied"] is False
        assert second.json["data"]["stock"]["quantity"] == 8


class TestSupplies:

    def test_receive_supply_adds_stock_and_total_cost(self, db_session, ctx, shop_a, product_a, supplier):
        supply, created = supply_service.receive_supply(ctx, {
            "shop_id": shop_a.id,
            "supplier_id": supplier.id,
            "product_id": product_a.id,
            "quantity": 5,
            "cost_price": "7.25",
            "supply_date": "2026-02-10",
        })

        assert created is True
        assert supply.total_cost == Decimal("36.25")
        assert supply.supply_date == date(2026, 2, 10)
        stock = db_session.query(Stock).filter_by(shop_id=shop_a.id, product_id=product_a.id).one()
        assert stock.quantity == 15

    def test_supply_to_new_shop_creates_stock_row(self, db_session, ctx, shop_a, product_b, supplier):
        supply_service.receive_supply(ctx, {
            "shop_id": shop_a.id,
            "supplier_id": supplier.id,
            "product_id": product_b.id,
            "quantity": 4,
            "cost_price": "2.00",
        })
        assert stock_service.products_not_sold_by_shop(shop_a.id, [product_b.id]) == set()

    def test_reference_makes_receipt_idempotent(self, client, db_session, manager_headers, shop_a, product_a, supplier):
        body = {
            "shop_id": shop_a.id,
            "supplier_id": supplier.id,
            "product_id": product_a.id,
            "quantity": 5,
            "cost_price": "7.25",
            "reference": "PO-1001",
        }
        first = client.post('/api/supplies', headers=manager_headers, json=body)
        second = client.post('/api/supplies', headers=manager_headers, json=body)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json["data"]["id"] == first.json["data"]["id"]
        assert db_session.query(Supply).count() == 1
        db_session.expire_all()
        stock = db_session.query(Stock).filter_by(shop_id=shop_a.id, product_id=product_a.id).one()
        assert stock.quantity == 15

    def test_cost_update_recomputes_total(self, db_session, ctx, shop_a, product_a, supplier):
        supply, _ = supply_service.receive_supply(ctx, {
            "shop_id": shop_a.id,
            "supplier_id": supplier.id,
            "product_id": product_a.id,
            "quantity": 4,
            "cost_price": "2.00",
        })
        updated = supply_service.update_supply(ctx, supply.id, {"cost_price": "2.50"})
        assert updated.total_cost == Decimal("10.00")

        with pytest.raises(ValidationError):
            supply_service.update_supply(ctx, supply.id, {"quantity": 9})
