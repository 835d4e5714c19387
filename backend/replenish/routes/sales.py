# backend/replenish/routes/sales.py
"""
Sales API Routes

- GET  /api/sales             - List sales (include_canceled, limit, offset)
- GET  /api/sales/:id         - One sale with lines
- POST /api/sales             - Complete a sale (debits stock)
- POST /api/sales/:id/cancel  - Cancel a sale (admin; credits stock once)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ReplenishError, internal_error_response
from ..decorators import require_actor, require_admin
from ..services import sales_service
from ..validation import MAX_PAGE_SIZE, bool_arg, int_arg, json_body, reject_unknown


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_actor
def list_sales_route():
    try:
        sales, total = sales_service.list_sales(
            include_canceled=bool_arg("include_canceled", True),
            limit=int_arg("limit", 50, maximum=MAX_PAGE_SIZE),
            offset=int_arg("offset", 0),
        )
        return jsonify({
            "sales": [s.to_dict(include_lines=False) for s in sales],
            "total": total,
        }), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status


@sales_bp.get("/<sale_id>")
@require_actor
def get_sale_route(sale_id: str):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status


@sales_bp.post("")
@require_actor
def complete_sale_route():
    """
    Request body:
        {
            "items": [{"product_id": 1, "quantity": 2}],
            "payment_method": "cash" | "qrcode",
            "received_amount_cents": 1000,
            "change_amount_cents": 200   // optional, computed when omitted
        }

    Error responses:
        400: Invalid items / payment
        409: Insufficient stock (nothing was applied)
    """
    try:
        data = json_body()
        reject_unknown(data, {"items", "payment_method", "received_amount_cents", "change_amount_cents"})
        sale = sales_service.complete_sale(
            items=data.get("items"),
            payment_method=data.get("payment_method"),
            received_amount_cents=data.get("received_amount_cents"),
            change_amount_cents=data.get("change_amount_cents"),
            actor=g.actor,
        )
        return jsonify({"sale": sale.to_dict()}), 201
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to complete sale")
        return internal_error_response()


@sales_bp.post("/<sale_id>/cancel")
@require_actor
@require_admin
def cancel_sale_route(sale_id: str):
    try:
        data = json_body()
        sale = sales_service.cancel_sale(sale_id, actor=g.actor, reason=data.get("reason"))
        return jsonify({"sale": sale.to_dict()}), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return internal_error_response()
