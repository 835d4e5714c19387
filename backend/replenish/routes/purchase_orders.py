# backend/replenish/routes/purchase_orders.py
"""
Purchase Order API Routes

- GET    /api/purchase-orders             - List orders (status, seller_id, limit, offset)
- GET    /api/purchase-orders/latest      - Most recently created order
- GET    /api/purchase-orders/:id         - One order with items
- POST   /api/purchase-orders             - Create a draft
- PATCH  /api/purchase-orders/:id         - Typed partial update
- POST   /api/purchase-orders/:id/submit  - draft -> pending
- POST   /api/purchase-orders/:id/approve - pending -> approved (admin)
- POST   /api/purchase-orders/:id/cancel  - -> cancelled
- POST   /api/purchase-orders/:id/receive - record received quantities
- DELETE /api/purchase-orders/:id         - administrative hard delete (admin)

SECURITY:
- All routes require an actor (X-Actor-* headers from the auth gateway).
- Attribution (created_by, approved_by, ...) is taken from the actor, never
  from the request body.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ReplenishError, internal_error_response
from ..decorators import require_actor, require_admin
from ..services import order_service, receiving_service
from ..services.order_service import OrderUpdate
from ..validation import MAX_PAGE_SIZE, int_arg, json_body, reject_unknown


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("")
@require_actor
def list_orders_route():
    try:
        orders, total = order_service.list_orders(
            status=request.args.get("status") or None,
            seller_id=request.args.get("seller_id") or None,
            limit=int_arg("limit", 50, maximum=MAX_PAGE_SIZE),
            offset=int_arg("offset", 0),
        )
        return jsonify({
            "orders": [o.to_dict(include_items=False) for o in orders],
            "total": total,
        }), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list purchase orders")
        return internal_error_response()


@purchase_orders_bp.get("/latest")
@require_actor
def latest_order_route():
    order = order_service.get_latest_order()
    if order is None:
        return jsonify({"order": None}), 200
    return jsonify({"order": order.to_dict()}), 200


@purchase_orders_bp.get("/<order_id>")
@require_actor
def get_order_route(order_id: str):
    try:
        order = order_service.get_order(order_id)
        return jsonify({"order": order.to_dict()}), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status


@purchase_orders_bp.post("")
@require_actor
def create_order_route():
    """
    Create a draft order.

    Request body:
        {
            "seller_id": "S-1",
            "seller_name": "Acme Wholesale",
            "items": [{"product_id": 1, "ordered_qty": 10, "unit_price_cents": 250,
                       "lot_code": "L1", "expiry_date": "2027-01-31"}],
            "notes": "...",
            "payment": "cash" | {"method": "credit", "credit_days": 30},
            "expected_delivery_date": "2026-11-01"
        }
    """
    try:
        data = json_body()
        reject_unknown(data, {"seller_id", "seller_name", "items", "notes", "payment", "expected_delivery_date"})

        order = order_service.create_draft_order(actor=g.actor, **data)
        return jsonify({"order": order.to_dict()}), 201
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return internal_error_response()


@purchase_orders_bp.patch("/<order_id>")
@require_actor
def update_order_route(order_id: str):
    try:
        update = OrderUpdate.from_payload(json_body())
        order = order_service.update_order(order_id, update, actor=g.actor)
        return jsonify({"order": order.to_dict()}), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update purchase order")
        return internal_error_response()


@purchase_orders_bp.post("/<order_id>/submit")
@require_actor
def submit_order_route(order_id: str):
    try:
        order = order_service.submit_order(order_id, actor=g.actor)
        return jsonify({"order": order.to_dict()}), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to submit purchase order")
        return internal_error_response()


@purchase_orders_bp.post("/<order_id>/approve")
@require_actor
@require_admin
def approve_order_route(order_id: str):
    try:
        order = order_service.approve_order(order_id, actor=g.actor)
        return jsonify({"order": order.to_dict()}), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to approve purchase order")
        return internal_error_response()


@purchase_orders_bp.post("/<order_id>/cancel")
@require_actor
def cancel_order_route(order_id: str):
    """
    Request body:
        {"confirm": true, "note": "Supplier out of stock"}

    note is required unless the actor is an admin.
    """
    try:
        data = json_body()
        order = order_service.cancel_order(
            order_id,
            actor=g.actor,
            note=data.get("note"),
            confirm=data.get("confirm") is True,
        )
        return jsonify({"order": order.to_dict()}), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel purchase order")
        return internal_error_response()


@purchase_orders_bp.post("/<order_id>/receive")
@require_actor
def receive_order_route(order_id: str):
    """
    Record cumulative received quantities.

    Request body:
        {
            "receipts": [{"item_id": 1, "received_qty": 8, "received_at": "2026-10-19T09:00:00Z"}],
            "received_at": "2026-10-19T09:00:00Z"
        }
    """
    try:
        data = json_body()
        order = receiving_service.receive_items(
            order_id,
            data.get("receipts"),
            actor=g.actor,
            received_at=data.get("received_at"),
        )
        return jsonify({"order": order.to_dict()}), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to receive purchase order")
        return internal_error_response()


@purchase_orders_bp.delete("/<order_id>")
@require_actor
@require_admin
def delete_order_route(order_id: str):
    try:
        order_service.delete_order(order_id, actor=g.actor)
        return jsonify({"deleted": order_id}), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete purchase order")
        return internal_error_response()
