# Overview: Pytest coverage for the order lifecycle and order valuation.

"""
Order Service Tests

Covers:
- Creation with lines, discount bounds, unknown products
- Completion debits stock and links the ledger entry on each line
- Only description and status are mutable; Completed is terminal
- Hard delete keeps debited stock debited
"""

from datetime import datetime
from decimal import Decimal

import pytest

from backoffice.models import Order, OrderLine
from backoffice.services import order_service, stock_ledger_service
from backoffice.validation import NotFoundError, ValidationError


def line(product, qty, price):
    return {"product_id": product.id, "quantity": qty, "sell_price": Decimal(price)}


class TestCreateOrder:
    def test_pending_order_does_not_touch_stock(self, db_session, product, receive):
        receive(product, 10, "50")
        order = order_service.create_order(lines=[line(product, 2, "100")])

        assert order.status == "Pending"
        assert order.completed_at is None
        assert order.lines[0].inventory_id is None
        assert stock_ledger_service.available_quantity(product.id) == 10

    def test_completed_order_debits_stock(self, db_session, product, receive):
        e = receive(product, 10, "50")
        order = order_service.create_order(lines=[line(product, 3, "100")], status="Completed")

        assert order.completed_at is not None
        assert order.lines[0].inventory_id == e.id
        assert stock_ledger_service.available_quantity(product.id) == 7

    def test_insufficient_stock_rolls_back_order(self, db_session, product, receive):
        receive(product, 1, "50")
        with pytest.raises(ValidationError):
            order_service.create_order(lines=[line(product, 2, "100")], status="Completed")

        assert db_session.query(Order).count() == 0
        assert stock_ledger_service.available_quantity(product.id) == 1

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.create_order(
                lines=[{"product_id": 99999, "quantity": 1, "sell_price": Decimal("1")}]
            )
        assert db_session.query(OrderLine).count() == 0

    def test_discount_larger_than_revenue_rejected(self, db_session, product):
        with pytest.raises(ValidationError):
            order_service.create_order(lines=[line(product, 1, "10")], discount=Decimal("10.01"))

    def test_empty_lines_rejected(self, db_session):
        with pytest.raises(ValidationError):
            order_service.create_order(lines=[])

    def test_duplicate_product_lines_rejected(self, db_session, product):
        with pytest.raises(ValidationError):
            order_service.create_order(lines=[line(product, 1, "10"), line(product, 2, "10")])
        assert db_session.query(Order).count() == 0

    def test_unknown_status_rejected(self, db_session, product):
        with pytest.raises(ValidationError):
            order_service.create_order(lines=[line(product, 1, "10")], status="Shipped")


class TestUpdateOrder:
    def test_update_description(self, db_session, product):
        order = order_service.create_order(lines=[line(product, 1, "10")], description="walk-in")
        updated = order_service.update_order(order.id, {"description": "phone order"})
        assert updated.description == "phone order"

    def test_complete_pending_order(self, db_session, product, receive):
        e = receive(product, 5, "4")
        order = order_service.create_order(lines=[line(product, 2, "10")])

        updated = order_service.update_order(order.id, {"status": "Completed"})

        assert updated.status == "Completed"
        assert updated.lines[0].inventory_id == e.id
        assert stock_ledger_service.available_quantity(product.id) == 3

    def test_completed_is_terminal(self, db_session, product, sell, receive):
        receive(product, 5, "4")
        order = sell(product, 1, "10")

        with pytest.raises(ValidationError):
            order_service.update_order(order.id, {"status": "Pending"})

    def test_discount_is_frozen(self, db_session, product):
        order = order_service.create_order(lines=[line(product, 1, "10")])
        with pytest.raises(ValidationError):
            order_service.update_order(order.id, {"discount": Decimal("1")})

    def test_update_unknown_order(self, db_session):
        with pytest.raises(NotFoundError):
            order_service.update_order(4242, {"description": "x"})


class TestDeleteOrder:
    def test_delete_cascades_lines_and_keeps_stock_debited(self, db_session, product, receive, sell):
        receive(product, 10, "4")
        order = sell(product, 4, "10")
        order_id = order.id

        snapshot = order_service.delete_order(order_id)

        assert snapshot["id"] == order_id
        assert db_session.query(OrderLine).filter_by(order_id=order_id).count() == 0
        assert stock_ledger_service.available_quantity(product.id) == 6
        with pytest.raises(NotFoundError):
            order_service.get_order(order_id)


class TestQueries:
    def test_valuation_uses_current_wac(self, db_session, product, receive):
        receive(product, 10, "60")
        order = order_service.create_order(
            lines=[line(product, 2, "100")],
            discount=Decimal("10"),
            status="Completed",
        )

        valuation = order_service.get_order_valuation(order.id)

        assert valuation.net_sales == Decimal("190")
        assert valuation.cost == Decimal("120")
        assert valuation.profit == Decimal("70")

    def test_list_filters_by_status_and_range(self, db_session, product, receive):
        receive(product, 10, "1")
        order_service.create_order(lines=[line(product, 1, "2")], created_at=datetime(2024, 1, 5))
        order_service.create_order(
            lines=[line(product, 1, "2")], status="Completed", created_at=datetime(2024, 2, 5)
        )

        assert len(order_service.list_orders(status="Completed")) == 1
        assert len(order_service.list_orders(start=datetime(2024, 2, 1))) == 1
        assert len(order_service.list_orders()) == 2

    def test_snapshot_carries_category_name(self, db_session, product, make_product):
        loose = make_product("LOOSE-1", "Loose item")
        order_service.create_order(lines=[line(product, 1, "2"), line(loose, 1, "3")])

        (record,) = order_service.order_snapshot()
        names = {l.product_id: l.category_name for l in record.lines}

        assert names == {product.id: "Beverages", loose.id: "Uncategorized"}
