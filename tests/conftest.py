"""
Pytest fixtures for shopflow tests.

Provides the in-memory application, a clean database per test, a test client
and small factories for the records most tests need.
"""

from decimal import Decimal

import pytest

from shopflow import create_app
from shopflow.config import TestConfig
from shopflow.extensions import db
from shopflow.models import Customer, LoyaltyConfig, Product, Store, StoreConfig, User


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
def store_config(db_session):
    """Store configuration with a 10% tax rate and a fresh invoice counter."""
    config = StoreConfig(name="Test Store", invoice_prefix="INV-", invoice_number=0, tax_rate=Decimal("0.10"))
    db_session.add(config)
    db_session.commit()
    return config


@pytest.fixture(scope='function')
def cashier(db_session):
    user = User(name="Casey Cashier", email="cashier@shopflow.local")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Dana Buyer", email="dana@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def stores(db_session):
    """Two store locations: (main, branch)."""
    main = Store(name="Main Street", code="MAIN")
    branch = Store(name="Harbor Branch", code="HARBOR")
    db_session.add_all([main, branch])
    db_session.commit()
    return main, branch


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory for products; each call gets a unique SKU."""
    counter = {"n": 0}

    def _make(stock=10, price="10.00", name=None, store_id=None, is_active=True, min_stock=None):
        counter["n"] += 1
        product = Product(
            sku=f"SKU-{counter['n']:04d}",
            name=name or f"Product {counter['n']}",
            price=Decimal(price),
            stock=stock,
            min_stock=min_stock,
            store_id=store_id,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def loyalty_config(db_session):
    """Active policy: 1 point per dollar, 0.01 per point, no expiry."""
    config = LoyaltyConfig(
        points_per_dollar=Decimal("1"),
        redemption_rate=Decimal("0.01"),
        min_purchase_for_points=Decimal("0"),
        is_active=True,
    )
    db_session.add(config)
    db_session.commit()
    return config


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Read stock straight from the database, bypassing the identity map."""
    def _stock(product_id: int) -> int:
        return db_session.query(Product.stock).filter(Product.id == product_id).scalar()

    return _stock
