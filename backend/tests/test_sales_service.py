"""
Sale transaction processor tests.

Verifies:
- A sale inserts its lines and debits stock atomically
- Payment validation (received >= total, change = received - total)
- A failing debit leaves no sale and no stock change
- Cancellation credits every line exactly once and is admin only
"""

import pytest

from replenish.errors import (
    AlreadyCanceled,
    InsufficientStock,
    PermissionDenied,
    SaleNotFound,
    ValidationError,
)
from replenish.models import Sale, StockMovement
from replenish.services import sales_service
from replenish.time_utils import business_date


class TestCompleteSale:

    def test_cash_sale(self, db_session, make_product, staff, stock_of):
        p1 = make_product(stock=10, price_cents=1500)
        p2 = make_product(stock=4, price_cents=250)

        sale = sales_service.complete_sale(
            items=[{"product_id": p1, "quantity": 2}, {"product_id": p2, "quantity": 4}],
            payment_method="cash",
            received_amount_cents=5000,
            actor=staff,
        )

        assert sale.id == business_date("UTC").strftime("%d%m%Y") + "0001"
        assert sale.total_cents == 2 * 1500 + 4 * 250
        assert sale.change_amount_cents == 1000
        assert sale.canceled is False
        assert sale.created_by == "somchai"
        assert [(line.sku, line.quantity, line.line_total_cents) for line in sale.lines] == [
            ("SKU-001", 2, 3000),
            ("SKU-002", 4, 1000),
        ]
        assert stock_of(p1) == 8
        assert stock_of(p2) == 0

    def test_sale_ids_increment(self, db_session, make_product, staff):
        p = make_product(stock=10, price_cents=100)
        first = sales_service.complete_sale(
            items=[{"product_id": p, "quantity": 1}], payment_method="qrcode", actor=staff,
        )
        second = sales_service.complete_sale(
            items=[{"product_id": p, "quantity": 1}], payment_method="qrcode", actor=staff,
        )
        assert int(second.id[-4:]) == int(first.id[-4:]) + 1

    def test_qrcode_defaults_to_exact_amount(self, db_session, make_product, staff):
        p = make_product(stock=1, price_cents=990)
        sale = sales_service.complete_sale(
            items=[{"product_id": p, "quantity": 1}], payment_method="qrcode", actor=staff,
        )
        assert sale.received_amount_cents == 990
        assert sale.change_amount_cents == 0

    def test_supplied_change_must_match(self, db_session, make_product, staff):
        p = make_product(stock=5, price_cents=300)
        sale = sales_service.complete_sale(
            items=[{"product_id": p, "quantity": 1}],
            payment_method="cash",
            received_amount_cents=500,
            change_amount_cents=200,
            actor=staff,
        )
        assert sale.change_amount_cents == 200

        with pytest.raises(ValidationError):
            sales_service.complete_sale(
                items=[{"product_id": p, "quantity": 1}],
                payment_method="cash",
                received_amount_cents=500,
                change_amount_cents=150,
                actor=staff,
            )

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"items": [], "payment_method": "cash", "received_amount_cents": 100},
            {"items": [{"product_id": 1, "quantity": 0}], "payment_method": "cash", "received_amount_cents": 100},
            {"items": [{"product_id": 1, "quantity": 1}], "payment_method": "card", "received_amount_cents": 100},
            {"items": [{"product_id": 1, "quantity": 1}], "payment_method": "cash"},
            {"items": [{"product_id": 1, "quantity": 1}], "payment_method": "cash", "received_amount_cents": 99},
            {"items": [{"product_id": 999, "quantity": 1}], "payment_method": "cash", "received_amount_cents": 100},
        ],
    )
    def test_invalid_sales_rejected(self, db_session, make_product, staff, stock_of, kwargs):
        p = make_product(stock=5, price_cents=100)
        with pytest.raises(ValidationError):
            sales_service.complete_sale(actor=staff, **kwargs)
        assert stock_of(p) == 5
        assert db_session.query(Sale).count() == 0

    def test_inactive_product_rejected(self, db_session, make_product, staff):
        p = make_product(stock=5, is_active=False)
        with pytest.raises(ValidationError):
            sales_service.complete_sale(
                items=[{"product_id": p, "quantity": 1}], payment_method="qrcode", actor=staff,
            )

    def test_insufficient_stock_rolls_back_everything(self, db_session, make_product, staff, stock_of):
        plenty = make_product(stock=10, price_cents=100)
        scarce = make_product(stock=1, price_cents=100)

        with pytest.raises(InsufficientStock):
            sales_service.complete_sale(
                items=[{"product_id": plenty, "quantity": 3}, {"product_id": scarce, "quantity": 2}],
                payment_method="qrcode",
                actor=staff,
            )

        assert stock_of(plenty) == 10
        assert stock_of(scarce) == 1
        assert db_session.query(Sale).count() == 0
        assert db_session.query(StockMovement).count() == 0


class TestCancelSale:

    def _sale(self, make_product, staff, stock=5, qty=2):
        p = make_product(stock=stock, price_cents=100)
        sale = sales_service.complete_sale(
            items=[{"product_id": p, "quantity": qty}], payment_method="qrcode", actor=staff,
        )
        return p, sale.id

    def test_cancel_restores_stock(self, db_session, make_product, staff, admin, stock_of):
        p, sale_id = self._sale(make_product, staff)
        assert stock_of(p) == 3

        sale = sales_service.cancel_sale(sale_id, actor=admin, reason="customer returned")
        assert sale.canceled is True
        assert sale.canceled_by == "admin"
        assert sale.cancel_reason == "customer returned"
        assert stock_of(p) == 5

        movement = db_session.query(StockMovement).filter_by(movement_type="SALE_CANCEL").one()
        assert movement.quantity_delta == 2
        assert movement.reference_id == sale_id

    def test_second_cancel_does_not_credit_again(self, db_session, make_product, staff, admin, stock_of):
        p, sale_id = self._sale(make_product, staff)
        sales_service.cancel_sale(sale_id, actor=admin)

        with pytest.raises(AlreadyCanceled) as exc:
            sales_service.cancel_sale(sale_id, actor=admin)

        assert exc.value.retryable is False
        assert stock_of(p) == 5

    def test_cancel_is_admin_only(self, db_session, make_product, staff, stock_of):
        p, sale_id = self._sale(make_product, staff)
        with pytest.raises(PermissionDenied):
            sales_service.cancel_sale(sale_id, actor=staff)
        assert stock_of(p) == 3
        assert sales_service.get_sale(sale_id).canceled is False

    def test_cancel_missing_sale(self, db_session, admin):
        with pytest.raises(SaleNotFound):
            sales_service.cancel_sale("010120000001", actor=admin)

    def test_list_sales(self, db_session, make_product, staff, admin):
        _, first = self._sale(make_product, staff)
        _, second = self._sale(make_product, staff)
        sales_service.cancel_sale(first, actor=admin)

        sales, total = sales_service.list_sales()
        assert total == 2

        open_sales, total = sales_service.list_sales(include_canceled=False)
        assert total == 1
        assert open_sales[0].id == second
