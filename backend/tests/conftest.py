"""
Pytest fixtures for back-office backend tests.

Provides test database setup, a test client, and small factories for catalog,
stock, orders and returns.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest
from backoffice import create_app
from backoffice.config import TestConfig
from backoffice.extensions import db
from backoffice.models import Category, Product
from backoffice.services import order_service, return_service, stock_ledger_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(config_class=TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def category(db_session):
    """Create the 'Beverages' category."""
    cat = Category(name="Beverages")
    db_session.add(cat)
    db_session.commit()
    return cat


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(sku, name=None, category=None, price=0)."""
    def _make(sku: str, name: str | None = None, category: Category | None = None, price="0") -> Product:
        product = Product(
            sku=sku,
            name=name or f"Product {sku}",
            price=Decimal(price),
            category_id=category.id if category is not None else None,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def product(make_product, category):
    """Create a categorised product."""
    return make_product("COF-001", "Cold Brew", category=category, price="120.00")


@pytest.fixture(scope='function')
def receive(db_session):
    """Factory: receive(product, qty, price, created_at=None) -> StockLedgerEntry."""
    def _receive(product: Product, qty: int, price, created_at: datetime | None = None):
        return stock_ledger_service.create_entry(
            product_id=product.id,
            purchased_quantity=qty,
            purchase_price=Decimal(price),
            created_at=created_at,
        )
    return _receive


@pytest.fixture(scope='function')
def sell(db_session):
    """Factory: sell(product, qty, price, discount=0, status='Completed', created_at=None) -> Order."""
    def _sell(product: Product, qty: int, price, discount="0", status="Completed", created_at=None):
        return order_service.create_order(
            lines=[{"product_id": product.id, "quantity": qty, "sell_price": Decimal(price)}],
            discount=Decimal(discount),
            status=status,
            created_at=created_at,
        )
    return _sell


@pytest.fixture(scope='function')
def give_back(db_session):
    """Factory: give_back(product, qty, price, order_id=None, created_at=None) -> ReturnOrder."""
    def _give_back(product: Product, qty: int, price, order_id=None, created_at=None):
        return return_service.create_return(
            lines=[{
                "product_id": product.id,
                "quantity": qty,
                "sell_price": Decimal(price),
                "order_id": order_id,
            }],
            created_at=created_at,
        )
    return _give_back
