"""
Pytest fixtures for retailpos backend tests.

Provides test database setup, catalog/customer factories, and test client.
"""

from datetime import datetime
from decimal import Decimal

import pytest
from retailpos import create_app
from retailpos.config import TestConfig
from retailpos.extensions import db
from retailpos.models import Category, Customer, Product


# Fixed business time used by service tests (UTC-naive)
SALE_TIME = datetime(2026, 10, 19, 10, 30, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def category(db_session):
    category = Category(name="Beverages")
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture(scope='function')
def make_product(db_session, category):
    """Factory for products; money arguments accept str/int/Decimal."""
    counter = {"n": 0}

    def _make(
        *,
        sku=None,
        name=None,
        price="100",
        cost_price="60",
        tax_rate="0",
        stock_quantity=50,
        wholesale_price=None,
        wholesale_threshold=None,
    ):
        counter["n"] += 1
        product = Product(
            sku=sku or f"SKU-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            category_id=category.id,
            price=Decimal(str(price)),
            cost_price=Decimal(str(cost_price)),
            tax_rate=Decimal(str(tax_rate)),
            stock_quantity=stock_quantity,
            wholesale_price=Decimal(str(wholesale_price)) if wholesale_price is not None else None,
            wholesale_threshold=wholesale_threshold,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def coke(make_product):
    """COKE500 as used in the counter scenario."""
    return make_product(
        sku="COKE500",
        name="Coca-Cola 500ml",
        price="40",
        cost_price="30",
        tax_rate="18",
        stock_quantity=100,
        wholesale_price="35",
        wholesale_threshold=12,
    )


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(
        name="Asha Traders",
        phone="9800000001",
        credit_limit=Decimal("1000"),
        outstanding_balance=Decimal("0"),
        loyalty_points=0,
    )
    db_session.add(customer)
    db_session.commit()
    return customer


def operator_headers(user_id: str = "cashier-1", role: str = "cashier") -> dict:
    """Helper to create the identity headers the upstream auth layer forwards."""
    return {'X-User-Id': user_id, 'X-User-Role': role}


def reload(obj):
    """Re-read an ORM instance from the database."""
    db.session.expire_all()
    return db.session.get(type(obj), obj.id)
