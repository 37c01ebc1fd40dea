# Overview: Pytest coverage for stock ledger intake, reconciliation, debits and return credits.

"""
Stock Ledger Service Tests

Covers:
- Intake: entries start fully available, ids are prefixed UUIDs
- Reconciliation keeps consumed stock and rejects negative availability
- Optimistic version check on reconcile
- Debit oldest-first, credit newest-first, never past purchased quantity
- Stock summary and low-stock classification
"""

from datetime import datetime
from decimal import Decimal

import pytest

from backoffice.services import stock_ledger_service
from backoffice.validation import ConflictError, NotFoundError, ValidationError


class TestCreateEntry:
    def test_entry_starts_fully_available(self, db_session, product, receive):
        e = receive(product, 50, "12.50")

        assert e.id.startswith("inv-")
        assert e.purchased_quantity == 50
        assert e.available_quantity == 50
        assert e.purchase_price == Decimal("12.50")
        assert e.version_id == 1

    def test_unknown_product_is_not_found(self, db_session):
        with pytest.raises(NotFoundError):
            stock_ledger_service.create_entry(
                product_id=424242, purchased_quantity=1, purchase_price=Decimal("1")
            )

    def test_negative_quantity_rejected(self, db_session, product):
        with pytest.raises(ValidationError):
            stock_ledger_service.create_entry(
                product_id=product.id, purchased_quantity=-1, purchase_price=Decimal("1")
            )

    def test_identifiers_are_unique(self, db_session, product, receive):
        ids = {receive(product, 1, "1").id for _ in range(5)}
        assert len(ids) == 5


class TestReconcileQuantity:
    def _entry_with_sales(self, product, receive, sold: int):
        e = receive(product, 50, "10")
        stock_ledger_service.debit_stock(product.id, sold)
        return e

    def test_reconcile_preserves_consumed_stock(self, db_session, product, receive):
        """P=50, A=42, P'=60 -> A'=52."""
        e = self._entry_with_sales(product, receive, 8)
        db_session.commit()

        updated = stock_ledger_service.reconcile_quantity(
            e.id,
            purchased_quantity=60,
            purchase_price=Decimal("10"),
            product_id=product.id,
        )

        assert updated.purchased_quantity == 60
        assert updated.available_quantity == 52
        assert updated.consumed_quantity == 8

    def test_reconcile_down_to_consumed_is_allowed(self, db_session, product, receive):
        e = self._entry_with_sales(product, receive, 8)
        db_session.commit()

        updated = stock_ledger_service.reconcile_quantity(
            e.id, purchased_quantity=8, purchase_price=Decimal("10"), product_id=product.id
        )
        assert updated.available_quantity == 0

    def test_reconcile_below_consumed_is_rejected(self, db_session, product, receive):
        e = self._entry_with_sales(product, receive, 8)
        db_session.commit()

        with pytest.raises(ValidationError):
            stock_ledger_service.reconcile_quantity(
                e.id, purchased_quantity=5, purchase_price=Decimal("10"), product_id=product.id
            )

        db_session.expire_all()
        fresh = stock_ledger_service.get_entry(e.id)
        assert fresh.purchased_quantity == 50
        assert fresh.available_quantity == 42

    def test_reconcile_updates_price_and_product(self, db_session, product, make_product, receive):
        other = make_product("TEA-001", "Green Tea")
        e = receive(product, 10, "10")

        updated = stock_ledger_service.reconcile_quantity(
            e.id, purchased_quantity=10, purchase_price=Decimal("11.25"), product_id=other.id
        )

        assert updated.product_id == other.id
        assert updated.purchase_price == Decimal("11.25")

    def test_reconcile_unknown_entry(self, db_session, product):
        with pytest.raises(NotFoundError):
            stock_ledger_service.reconcile_quantity(
                "inv-missing", purchased_quantity=1, purchase_price=Decimal("1"), product_id=product.id
            )

    def test_stale_expected_version_conflicts(self, db_session, product, receive):
        e = receive(product, 10, "10")
        stock_ledger_service.reconcile_quantity(
            e.id, purchased_quantity=12, purchase_price=Decimal("10"), product_id=product.id,
            expected_version=1,
        )

        with pytest.raises(ConflictError):
            stock_ledger_service.reconcile_quantity(
                e.id, purchased_quantity=15, purchase_price=Decimal("10"), product_id=product.id,
                expected_version=1,
            )

    def test_stale_version_leaves_session_clean(self, db_session, product, receive):
        e = receive(product, 10, "10")
        stock_ledger_service.reconcile_quantity(
            e.id, purchased_quantity=12, purchase_price=Decimal("10"), product_id=product.id,
        )

        with pytest.raises(ConflictError):
            stock_ledger_service.reconcile_quantity(
                e.id, purchased_quantity=15, purchase_price=Decimal("10"), product_id=product.id,
                expected_version=1,
            )

        assert stock_ledger_service.get_entry(e.id).purchased_quantity == 12
        updated = stock_ledger_service.reconcile_quantity(
            e.id, purchased_quantity=15, purchase_price=Decimal("10"), product_id=product.id,
            expected_version=2,
        )
        assert updated.purchased_quantity == 15

    def test_version_increments_on_each_write(self, db_session, product, receive):
        e = receive(product, 10, "10")
        updated = stock_ledger_service.reconcile_quantity(
            e.id, purchased_quantity=11, purchase_price=Decimal("10"), product_id=product.id
        )
        assert updated.version_id == 2


class TestDebitAndCredit:
    def test_debit_takes_oldest_entry_first(self, db_session, product, receive):
        old = receive(product, 5, "10", created_at=datetime(2024, 1, 1))
        new = receive(product, 5, "20", created_at=datetime(2024, 2, 1))

        first_id = stock_ledger_service.debit_stock(product.id, 7)
        db_session.commit()

        assert first_id == old.id
        assert stock_ledger_service.get_entry(old.id).available_quantity == 0
        assert stock_ledger_service.get_entry(new.id).available_quantity == 3

    def test_debit_more_than_available_is_rejected(self, db_session, product, receive):
        receive(product, 3, "10")
        with pytest.raises(ValidationError):
            stock_ledger_service.debit_stock(product.id, 4)

    def test_return_credits_newest_consumed_entry_first(self, db_session, product, receive):
        old = receive(product, 5, "10", created_at=datetime(2024, 1, 1))
        new = receive(product, 5, "20", created_at=datetime(2024, 2, 1))
        stock_ledger_service.debit_stock(product.id, 8)  # old: 0 left, new: 2 left

        stock_ledger_service.on_return_accepted(product.id, 4)
        db_session.commit()

        assert stock_ledger_service.get_entry(new.id).available_quantity == 5
        assert stock_ledger_service.get_entry(old.id).available_quantity == 1

    def test_return_never_exceeds_purchased(self, db_session, product, receive):
        e = receive(product, 5, "10")
        stock_ledger_service.debit_stock(product.id, 2)

        with pytest.raises(ValidationError):
            stock_ledger_service.on_return_accepted(product.id, 3)

        db_session.rollback()
        assert stock_ledger_service.get_entry(e.id).available_quantity <= 5

    def test_sold_and_available_quantity(self, db_session, product, receive):
        receive(product, 10, "10")
        receive(product, 4, "10")
        stock_ledger_service.debit_stock(product.id, 6)
        db_session.commit()

        assert stock_ledger_service.available_quantity(product.id) == 8
        assert stock_ledger_service.sold_quantity(product.id) == 6


class TestDeleteEntry:
    def test_delete_unreferenced_entry(self, db_session, product, receive):
        e = receive(product, 1, "1")
        stock_ledger_service.delete_entry(e.id)
        with pytest.raises(NotFoundError):
            stock_ledger_service.get_entry(e.id)

    def test_delete_referenced_entry_conflicts(self, db_session, product, receive, sell):
        e = receive(product, 5, "1")
        sell(product, 1, "3")

        with pytest.raises(ConflictError):
            stock_ledger_service.delete_entry(e.id)

    def test_delete_entry_drawn_by_a_later_debit_conflicts(self, db_session, product, receive, sell):
        """A sale spanning two entries only records the first; the second is still consumed."""
        first = receive(product, 2, "1", created_at=datetime(2024, 1, 1))
        second = receive(product, 5, "1", created_at=datetime(2024, 2, 1))
        order = sell(product, 4, "3")
        assert order.lines[0].inventory_id == first.id

        with pytest.raises(ConflictError):
            stock_ledger_service.delete_entry(second.id)

        assert stock_ledger_service.sold_quantity(product.id) == 4


class TestSummaries:
    def test_stock_summary(self, db_session, product, receive):
        receive(product, 10, "100")
        receive(product, 10, "200")
        stock_ledger_service.debit_stock(product.id, 5)
        db_session.commit()

        summary = stock_ledger_service.get_stock_summary(product.id)

        assert summary["entries"] == 2
        assert summary["purchased_quantity"] == 20
        assert summary["available_quantity"] == 15
        assert summary["sold_quantity"] == 5
        assert summary["weighted_average_cost"] == Decimal("150")
        assert summary["stock_value"] == Decimal("2250")

    def test_stock_levels_classification(self, db_session, make_product, receive):
        plenty = make_product("A-1", "Apples")
        few = make_product("B-1", "Bananas")
        make_product("C-1", "Cherries")
        receive(plenty, 50, "1")
        receive(few, 3, "1")

        levels = {row["sku"]: row["status"] for row in stock_ledger_service.stock_levels(threshold=10)}

        assert levels == {"A-1": "in_stock", "B-1": "low", "C-1": "out_of_stock"}
