"""
Pytest fixtures for Replenish backend tests.

Provides a fresh in-memory database per test, actors, product and order
factories, and the Flask test client.
"""

import pytest

from replenish import create_app
from replenish.extensions import db
from replenish.models import Product
from replenish.services import order_service
from replenish.services.actor import Actor, ROLE_ADMIN, ROLE_STAFF


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'ALLOW_NEGATIVE_STOCK': False,
    'BUSINESS_TIMEZONE': 'UTC',
    'DB_RETRY_BACKOFF': 0,
}


@pytest.fixture(scope='function')
def app():
    """Create application with an empty schema for each test."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    yield db.session
    db.session.rollback()


@pytest.fixture
def staff():
    return Actor(name="somchai", role=ROLE_STAFF, id="u-100")


@pytest.fixture
def admin():
    return Actor(name="admin", role=ROLE_ADMIN, id="u-1")


@pytest.fixture
def staff_headers():
    return {"X-Actor-Id": "u-100", "X-Actor-Name": "somchai", "X-Actor-Role": "staff"}


@pytest.fixture
def admin_headers():
    return {"X-Actor-Id": "u-1", "X-Actor-Name": "admin", "X-Actor-Role": "admin"}


@pytest.fixture
def make_product(db_session):
    """Factory: committed product with the given stock."""
    counter = {"n": 0}

    def _make(stock=0, price_cents=1000, min_stock=None, is_active=True, name=None):
        counter["n"] += 1
        product = Product(
            sku=f"SKU-{counter['n']:03d}",
            name=name or f"Product {counter['n']}",
            price_cents=price_cents,
            stock=stock,
            min_stock=min_stock,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product.id

    return _make


@pytest.fixture
def make_order(staff, admin):
    """
    Factory: order in the requested status.

    lines: [(product_id, ordered_qty, unit_price_cents), ...]
    """
    def _make(lines, status="draft", **header):
        items = [
            {"product_id": pid, "ordered_qty": qty, "unit_price_cents": price}
            for pid, qty, price in lines
        ]
        order = order_service.create_draft_order(actor=staff, items=items, **header)
        order_id = order.id
        if status in ("pending", "approved"):
            order_service.submit_order(order_id, actor=staff)
        if status == "approved":
            order_service.approve_order(order_id, actor=admin)
        return order_id

    return _make


@pytest.fixture
def stock_of(db_session):
    """Current stock straight from the database."""
    def _read(product_id: int) -> int:
        db_session.expire_all()
        return db_session.get(Product, product_id).stock

    return _read
