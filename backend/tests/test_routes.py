"""
HTTP boundary tests.

Verifies:
- Requests without an actor get 401, admin-only routes 403 for staff
- Domain errors map to 400 / 404 / 409 with {"error", "code", "retryable", "details"}
- End-to-end order flow: create -> submit -> approve -> receive
"""

import pytest


def _create_order(client, headers, product_id, qty=10, price=100):
    resp = client.post(
        "/api/purchase-orders",
        json={
            "seller_id": "S-1",
            "seller_name": "Acme",
            "items": [{"product_id": product_id, "ordered_qty": qty, "unit_price_cents": price}],
        },
        headers=headers,
    )
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["order"]


class TestAuthBoundary:

    def test_health_is_public(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/purchase-orders"),
            ("POST", "/api/purchase-orders"),
            ("POST", "/api/purchase-orders/PO191020260001/approve"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/stock/low"),
            ("GET", "/api/audit-events"),
        ],
    )
    def test_requires_actor(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_staff_cannot_approve(self, client, db_session, make_product, staff_headers):
        p = make_product()
        order = _create_order(client, staff_headers, p)
        client.post(f"/api/purchase-orders/{order['id']}/submit", headers=staff_headers)

        resp = client.post(f"/api/purchase-orders/{order['id']}/approve", headers=staff_headers)
        assert resp.status_code == 403

    def test_staff_cannot_delete_or_cancel_sales(self, client, staff_headers):
        assert client.delete("/api/purchase-orders/PO191020260001", headers=staff_headers).status_code == 403
        assert client.post("/api/sales/191020260001/cancel", headers=staff_headers).status_code == 403


class TestOrderFlow:

    def test_full_flow(self, client, db_session, make_product, staff_headers, admin_headers):
        p = make_product(stock=1)
        order = _create_order(client, staff_headers, p, qty=10, price=250)
        assert order["status"] == "draft"
        assert order["total_cents"] == 2500
        assert order["created_by"] == "somchai"

        resp = client.post(f"/api/purchase-orders/{order['id']}/submit", headers=staff_headers)
        assert resp.get_json()["order"]["status"] == "pending"

        resp = client.post(f"/api/purchase-orders/{order['id']}/approve", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order"]["approved_by"] == "admin"

        item_id = order["items"][0]["id"]
        resp = client.post(
            f"/api/purchase-orders/{order['id']}/receive",
            json={"receipts": [{"item_id": item_id, "received_qty": 4}]},
            headers=staff_headers,
        )
        body = resp.get_json()["order"]
        assert resp.status_code == 200
        assert body["status"] == "partial_received"
        assert body["items"][0]["receipt_state"] == "partial"

        resp = client.get(f"/api/stock/{p}", headers=staff_headers)
        assert resp.get_json()["stock"] == 5

        resp = client.get(f"/api/stock/{p}/movements", headers=staff_headers)
        assert [m["movement_type"] for m in resp.get_json()["movements"]] == ["RECEIPT"]

        resp = client.get(
            "/api/audit-events",
            query_string={"entity_type": "purchase_order", "entity_id": order["id"]},
            headers=staff_headers,
        )
        actions = [e["action"] for e in resp.get_json()["events"]]
        assert actions == ["order.created", "order.submitted", "order.approved", "order.received_partial"]

    def test_latest_and_list(self, client, db_session, make_product, staff_headers):
        p = make_product()
        assert client.get("/api/purchase-orders/latest", headers=staff_headers).get_json() == {"order": None}

        order = _create_order(client, staff_headers, p)
        resp = client.get("/api/purchase-orders/latest", headers=staff_headers)
        assert resp.get_json()["order"]["id"] == order["id"]

        resp = client.get("/api/purchase-orders", query_string={"status": "draft"}, headers=staff_headers)
        assert resp.get_json()["total"] == 1

    def test_patch_rules(self, client, db_session, make_product, staff_headers):
        p = make_product()
        order = _create_order(client, staff_headers, p)

        resp = client.patch(f"/api/purchase-orders/{order['id']}", json={"notes": "fragile"}, headers=staff_headers)
        assert resp.status_code == 200
        assert resp.get_json()["order"]["notes"] == "fragile"

        resp = client.patch(f"/api/purchase-orders/{order['id']}", json={"status": "approved"}, headers=staff_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"

        resp = client.patch(f"/api/purchase-orders/{order['id']}", json={"total_cents": 1}, headers=staff_headers)
        assert resp.status_code == 400

    def test_cancel_via_http(self, client, db_session, make_product, staff_headers, admin_headers):
        p = make_product()
        order = _create_order(client, staff_headers, p)

        resp = client.post(f"/api/purchase-orders/{order['id']}/cancel", json={"note": "x"}, headers=staff_headers)
        assert resp.status_code == 400

        resp = client.post(
            f"/api/purchase-orders/{order['id']}/cancel",
            json={"confirm": True, "note": "duplicate order"},
            headers=staff_headers,
        )
        assert resp.get_json()["order"]["status"] == "cancelled"

        resp = client.post(f"/api/purchase-orders/{order['id']}/cancel", json={"confirm": True}, headers=admin_headers)
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "already_canceled"
        assert body["retryable"] is False

    def test_delete_via_http(self, client, db_session, make_product, staff_headers, admin_headers):
        p = make_product()
        order = _create_order(client, staff_headers, p)
        resp = client.delete(f"/api/purchase-orders/{order['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/purchase-orders/{order['id']}", headers=staff_headers).status_code == 404


class TestErrorMapping:

    def test_not_found(self, client, staff_headers):
        resp = client.get("/api/purchase-orders/PO010120000001", headers=staff_headers)
        assert resp.status_code == 404
        body = resp.get_json()
        assert body["code"] == "order_not_found"
        assert set(body) == {"error", "code", "retryable", "details"}

    def test_invalid_transition_is_409(self, client, db_session, make_product, admin_headers):
        p = make_product()
        order = _create_order(client, admin_headers, p)
        resp = client.post(f"/api/purchase-orders/{order['id']}/approve", headers=admin_headers)
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "invalid_transition"
        assert body["details"]["from_status"] == "draft"
        assert body["details"]["to_status"] == "approved"

    def test_submit_empty_order_is_400(self, client, db_session, staff_headers):
        resp = client.post("/api/purchase-orders", json={}, headers=staff_headers)
        order_id = resp.get_json()["order"]["id"]
        resp = client.post(f"/api/purchase-orders/{order_id}/submit", headers=staff_headers)
        assert resp.status_code == 400

    def test_unknown_route_is_json_404(self, client):
        resp = client.get("/api/nope")
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "not_found"

    def test_unexpected_error_has_error_body(self, client, staff_headers, monkeypatch):
        from replenish.services import order_service

        def boom(**_kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(order_service, "list_orders", boom)
        resp = client.get("/api/purchase-orders", headers=staff_headers)
        assert resp.status_code == 500
        assert resp.get_json() == {
            "error": "Internal server error",
            "code": "internal_error",
            "retryable": False,
            "details": {},
        }

    def test_bad_query_argument(self, client, staff_headers):
        resp = client.get("/api/purchase-orders", query_string={"limit": "1e3"}, headers=staff_headers)
        assert resp.status_code == 400


class TestSalesHttp:

    def test_sale_and_cancel(self, client, db_session, make_product, staff_headers, admin_headers, stock_of):
        p = make_product(stock=5, price_cents=400)
        resp = client.post(
            "/api/sales",
            json={"items": [{"product_id": p, "quantity": 2}], "payment_method": "cash",
                  "received_amount_cents": 1000},
            headers=staff_headers,
        )
        assert resp.status_code == 201
        sale = resp.get_json()["sale"]
        assert sale["change_amount_cents"] == 200
        assert stock_of(p) == 3

        resp = client.post(f"/api/sales/{sale['id']}/cancel", json={"reason": "wrong item"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["sale"]["canceled"] is True
        assert stock_of(p) == 5

        resp = client.post(f"/api/sales/{sale['id']}/cancel", headers=admin_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "already_canceled"
        assert stock_of(p) == 5

    def test_insufficient_stock_is_409(self, client, db_session, make_product, staff_headers, stock_of):
        p = make_product(stock=1)
        resp = client.post(
            "/api/sales",
            json={"items": [{"product_id": p, "quantity": 2}], "payment_method": "qrcode"},
            headers=staff_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "insufficient_stock"
        assert stock_of(p) == 1
        assert client.get("/api/sales", headers=staff_headers).get_json()["total"] == 0

    def test_stock_lists(self, client, db_session, make_product, staff_headers):
        low = make_product(stock=2)
        make_product(stock=50)
        resp = client.get("/api/stock/low", headers=staff_headers)
        assert [prod["id"] for prod in resp.get_json()["products"]] == [low]

        resp = client.get("/api/stock/negative", headers=staff_headers)
        assert resp.get_json()["products"] == []
