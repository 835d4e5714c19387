"""
Concurrency tests on a file-backed SQLite database.

Two sales racing for the same stock must not both succeed, a sale
cancelled from several workers credits stock once, approve racing cancel
ends in a single coherent status, and concurrently created orders never
share an id.
"""

import os
import tempfile
import threading

import pytest

from replenish import create_app
from replenish.errors import AlreadyCanceled, Conflict, InsufficientStock, InvalidTransition
from replenish.extensions import db
from replenish.models import Product, PurchaseOrder
from replenish.services import audit_service, order_service, sales_service
from replenish.services.actor import Actor


@pytest.fixture
def file_app():
    tmpdir = tempfile.TemporaryDirectory()
    db_path = os.path.join(tmpdir.name, "concurrency.db")
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}",
        'SQLALCHEMY_ENGINE_OPTIONS': {"connect_args": {"timeout": 30}},
        'DB_RETRY_ATTEMPTS': 5,
        'DB_RETRY_BACKOFF': 0.05,
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()
    tmpdir.cleanup()


def _run_in_threads(app, target, count):
    barrier = threading.Barrier(count)
    results = []
    lock = threading.Lock()

    def worker(index):
        with app.app_context():
            barrier.wait()
            try:
                outcome = ("ok", target(index))
            except Exception as exc:
                outcome = ("error", exc)
            finally:
                db.session.remove()
            with lock:
                results.append(outcome)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def test_concurrent_sales_never_oversell(file_app):
    with file_app.app_context():
        product = Product(sku="CONCUR-1", name="Concurrent Product", price_cents=100, stock=5)
        db.session.add(product)
        db.session.commit()
        product_id = product.id

    cashier = Actor(name="cashier", role="staff")

    def sell(_index):
        sale = sales_service.complete_sale(
            items=[{"product_id": product_id, "quantity": 3}],
            payment_method="qrcode",
            actor=cashier,
        )
        return sale.id

    results = _run_in_threads(file_app, sell, 2)

    successes = [value for kind, value in results if kind == "ok"]
    failures = [value for kind, value in results if kind == "error"]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientStock)

    with file_app.app_context():
        assert db.session.get(Product, product_id).stock == 2


def test_concurrent_drafts_get_unique_ids(file_app):
    clerk = Actor(name="clerk", role="staff")

    def create(_index):
        return order_service.create_draft_order(actor=clerk).id

    results = _run_in_threads(file_app, create, 6)

    assert all(kind == "ok" for kind, _ in results), results
    ids = [value for _, value in results]
    assert len(set(ids)) == 6

    with file_app.app_context():
        assert db.session.query(PurchaseOrder).count() == 6


def test_parallel_sale_cancels_credit_once(file_app):
    with file_app.app_context():
        product = Product(sku="CONCUR-2", name="Cancelled Product", price_cents=100, stock=5)
        db.session.add(product)
        db.session.commit()
        product_id = product.id

    cashier = Actor(name="cashier", role="staff")
    manager = Actor(name="manager", role="admin")

    with file_app.app_context():
        sale_id = sales_service.complete_sale(
            items=[{"product_id": product_id, "quantity": 3}],
            payment_method="cash",
            received_amount_cents=300,
            actor=cashier,
        ).id
        assert db.session.get(Product, product_id).stock == 2
        db.session.remove()

    def cancel(_index):
        return sales_service.cancel_sale(sale_id, actor=manager, reason="customer returned").id

    results = _run_in_threads(file_app, cancel, 4)

    successes = [value for kind, value in results if kind == "ok"]
    failures = [value for kind, value in results if kind == "error"]
    assert successes == [sale_id]
    assert len(failures) == 3
    assert all(isinstance(exc, AlreadyCanceled) for exc in failures), failures

    with file_app.app_context():
        assert db.session.get(Product, product_id).stock == 5


def test_approve_racing_cancel(file_app):
    with file_app.app_context():
        product = Product(sku="CONCUR-3", name="Raced Product", price_cents=100, stock=0)
        db.session.add(product)
        db.session.commit()
        product_id = product.id

    clerk = Actor(name="clerk", role="staff")
    manager = Actor(name="manager", role="admin")

    with file_app.app_context():
        order_id = order_service.create_draft_order(
            actor=clerk,
            items=[{"product_id": product_id, "ordered_qty": 2, "unit_price_cents": 100}],
        ).id
        order_service.submit_order(order_id, actor=clerk)
        db.session.remove()

    def act(index):
        if index == 0:
            return order_service.approve_order(order_id, actor=manager).status
        return order_service.cancel_order(order_id, actor=manager, confirm=True).status

    results = _run_in_threads(file_app, act, 2)

    failures = [value for kind, value in results if kind == "error"]
    assert all(isinstance(exc, (InvalidTransition, Conflict)) for exc in failures), failures
    # approved -> cancelled is legal, so at most the approve can lose
    assert len(failures) <= 1

    with file_app.app_context():
        assert order_service.get_order(order_id).status == "cancelled"
        edges = audit_service.transitions_for("purchase_order", order_id)
        if failures:
            assert edges[-1] == ("pending", "cancelled")
        else:
            assert edges[-2:] == [("pending", "approved"), ("approved", "cancelled")]
