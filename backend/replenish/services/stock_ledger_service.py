# Overview: Service-layer operations for the per-product stock counter and its movement journal.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import and_, or_, update

from ..errors import InsufficientStock, ProductNotFound, ValidationError
from ..extensions import db
from ..models import Product, StockMovement
from ..time_utils import utcnow
from .audit_service import append_audit_event
"""
Stock ledger invariants (authoritative)

- Product.stock is mutated only here, and only with a single relative
  UPDATE (stock = stock +/- qty) inside the caller's transaction. No
  read-modify-write, so concurrent writers never lose an update.
- Every mutation appends a StockMovement row in the same transaction.
- Quantities are positive integers; the sign comes from credit/debit.
- ALLOW_NEGATIVE_STOCK = False (default): a debit that would take stock
  below zero matches no row and raises InsufficientStock.
- ALLOW_NEGATIVE_STOCK = True: the debit always applies; a negative result
  is logged at WARNING and recorded as a stock.negative audit event.
"""

MOVEMENT_RECEIPT = "RECEIPT"
MOVEMENT_SALE = "SALE"
MOVEMENT_SALE_CANCEL = "SALE_CANCEL"
MOVEMENT_TYPES = {MOVEMENT_RECEIPT, MOVEMENT_SALE, MOVEMENT_SALE_CANCEL}


def _validate_quantity(qty) -> None:
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise ValidationError("Stock quantity must be a positive integer", details={"quantity": qty})


def _apply_delta(product_id: int, delta: int, *, guard_negative: bool) -> int:
    stmt = update(Product).where(Product.id == product_id)
    if guard_negative:
        stmt = stmt.where(Product.stock + delta >= 0)
    stmt = stmt.values(stock=Product.stock + delta).execution_options(synchronize_session=False)

    result = db.session.execute(stmt)
    if not result.rowcount:
        on_hand = db.session.query(Product.stock).filter(Product.id == product_id).scalar()
        if on_hand is None:
            raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
        raise InsufficientStock(
            f"Insufficient stock for product {product_id}",
            details={"product_id": product_id, "requested": -delta, "on_hand": on_hand},
        )

    # Refresh any loaded instance; the UPDATE bypassed the identity map
    product = db.session.get(Product, product_id, populate_existing=True)
    return product.stock


def _journal(
    product_id: int,
    delta: int,
    stock_after: int,
    *,
    movement_type: str,
    reference_type: str,
    reference_id: str,
    lot_code: str | None,
    actor,
    occurred_at: Optional[datetime],
) -> StockMovement:
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type '{movement_type}'")

    movement = StockMovement(
        product_id=product_id,
        movement_type=movement_type,
        quantity_delta=delta,
        stock_after=stock_after,
        reference_type=reference_type,
        reference_id=str(reference_id),
        lot_code=lot_code,
        actor=actor.name if actor is not None else None,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def credit(
    product_id: int,
    qty: int,
    *,
    movement_type: str,
    reference_type: str,
    reference_id: str,
    lot_code: str | None = None,
    actor=None,
    occurred_at: Optional[datetime] = None,
) -> StockMovement:
    """Increase on-hand stock (goods receipt, sale cancellation)."""
    _validate_quantity(qty)
    stock_after = _apply_delta(product_id, qty, guard_negative=False)
    return _journal(
        product_id, qty, stock_after,
        movement_type=movement_type,
        reference_type=reference_type,
        reference_id=reference_id,
        lot_code=lot_code,
        actor=actor,
        occurred_at=occurred_at,
    )


def debit(
    product_id: int,
    qty: int,
    *,
    movement_type: str = MOVEMENT_SALE,
    reference_type: str,
    reference_id: str,
    actor=None,
    occurred_at: Optional[datetime] = None,
    allow_negative: bool | None = None,
) -> StockMovement:
    """
    Decrease on-hand stock (sale).

    Raises:
        InsufficientStock: stock would go negative and the policy forbids it.
        ProductNotFound: unknown product.
    """
    _validate_quantity(qty)
    if allow_negative is None:
        allow_negative = bool(current_app.config.get("ALLOW_NEGATIVE_STOCK", False))

    stock_after = _apply_delta(product_id, -qty, guard_negative=not allow_negative)

    if stock_after < 0:
        current_app.logger.warning(
            "Stock for product %s went negative (%s) after %s %s",
            product_id, stock_after, reference_type, reference_id,
        )
        append_audit_event(
            action="stock.negative",
            entity_type="product",
            entity_id=product_id,
            actor=actor,
            note=f"{reference_type} {reference_id}",
            payload={"stock_after": stock_after, "quantity": qty},
        )

    return _journal(
        product_id, -qty, stock_after,
        movement_type=movement_type,
        reference_type=reference_type,
        reference_id=reference_id,
        lot_code=None,
        actor=actor,
        occurred_at=occurred_at,
    )


# ---------------------------------------------------------------------------
# Read helpers
# ---------------------------------------------------------------------------

def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def get_stock(product_id: int) -> int:
    return get_product(product_id).stock


def list_low_stock(threshold: int | None = None) -> list[Product]:
    """
    Active products that need replenishing.

    A product with min_stock > 0 is low at or below its min_stock; otherwise
    it is low below the global threshold (LOW_STOCK_THRESHOLD).
    """
    if threshold is None:
        threshold = int(current_app.config.get("LOW_STOCK_THRESHOLD", 10))

    has_min = and_(Product.min_stock.isnot(None), Product.min_stock > 0)
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .filter(
            or_(
                and_(has_min, Product.stock <= Product.min_stock),
                and_(~has_min, Product.stock < threshold),
            )
        )
        .order_by(Product.stock.asc(), Product.id.asc())
        .all()
    )


def list_negative_stock() -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.stock < 0)
        .order_by(Product.stock.asc(), Product.id.asc())
        .all()
    )


def list_movements(product_id: int, *, limit: int = 100) -> list[StockMovement]:
    get_product(product_id)
    return (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product_id)
        .order_by(StockMovement.id.desc())
        .limit(limit)
        .all()
    )
