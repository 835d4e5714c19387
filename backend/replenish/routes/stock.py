# backend/replenish/routes/stock.py
"""
Stock ledger read API.

- GET /api/stock/low                  - products needing replenishment
- GET /api/stock/negative             - products with negative stock
- GET /api/stock/:product_id          - on-hand quantity
- GET /api/stock/:product_id/movements - movement journal, newest first
"""

from flask import Blueprint, request, jsonify

from ..errors import ReplenishError
from ..decorators import require_actor
from ..services import stock_ledger_service
from ..validation import MAX_PAGE_SIZE, int_arg


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/low")
@require_actor
def low_stock_route():
    try:
        threshold = request.args.get("threshold")
        products = stock_ledger_service.list_low_stock(
            int_arg("threshold", 0) if threshold else None
        )
        return jsonify({"products": [p.to_dict() for p in products]}), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status


@stock_bp.get("/negative")
@require_actor
def negative_stock_route():
    products = stock_ledger_service.list_negative_stock()
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@stock_bp.get("/<int:product_id>")
@require_actor
def get_stock_route(product_id: int):
    try:
        product = stock_ledger_service.get_product(product_id)
        return jsonify({
            "product_id": product.id,
            "sku": product.sku,
            "stock": product.stock,
            "min_stock": product.min_stock,
        }), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status


@stock_bp.get("/<int:product_id>/movements")
@require_actor
def list_movements_route(product_id: int):
    try:
        movements = stock_ledger_service.list_movements(
            product_id,
            limit=int_arg("limit", 100, maximum=MAX_PAGE_SIZE),
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except ReplenishError as e:
        return jsonify(e.to_dict()), e.http_status
