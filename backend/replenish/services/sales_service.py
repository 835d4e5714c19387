# Overview: Service-layer operations for point-of-sale sales and their cancellation.

"""
Sale Transaction Processor

WHY: A sale and its stock debits must never disagree. The sale row, its
lines and one ledger debit per line commit together or not at all; a
cancellation flips `canceled` and credits every line back exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import AlreadyCanceled, PermissionDenied, SaleNotFound, ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleLine
from ..time_utils import utcnow
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_in_transaction
from .sequence_service import next_sale_id
from .stock_ledger_service import MOVEMENT_SALE, MOVEMENT_SALE_CANCEL, credit, debit

PAYMENT_CASH = "cash"
PAYMENT_QRCODE = "qrcode"
SALE_PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_QRCODE)


@dataclass(frozen=True)
class SaleItem:
    product_id: int
    quantity: int

    @classmethod
    def from_payload(cls, raw, index: int = 0) -> "SaleItem":
        if isinstance(raw, SaleItem):
            return raw
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        product_id = raw.get("product_id")
        quantity = raw.get("quantity")
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError(f"items[{index}]: product_id must be an integer")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(
                f"items[{index}]: quantity must be a positive integer",
                details={"product_id": product_id, "quantity": quantity},
            )
        return cls(product_id=product_id, quantity=quantity)


def _money(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer amount in cents", details={"field": name})
    return value


def complete_sale(
    *,
    items,
    payment_method: str,
    received_amount_cents: int | None = None,
    change_amount_cents: int | None = None,
    actor,
) -> Sale:
    """
    Record a completed sale and debit stock for every line.

    RULES:
    - At least one item; quantities positive; products exist and are active.
    - received_amount_cents >= total (qrcode defaults to the exact total).
    - change = received - total; a supplied change must match.

    Raises:
        ValidationError, ProductNotFound, InsufficientStock
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("A sale needs at least one item")
    sale_items = [SaleItem.from_payload(raw, i) for i, raw in enumerate(items)]

    method = (payment_method or "").strip().lower()
    if method not in SALE_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method '{payment_method}'",
            details={"allowed": list(SALE_PAYMENT_METHODS)},
        )

    def _op() -> Sale:
        product_ids = {item.product_id for item in sale_items}
        products = {
            p.id: p
            for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
        }
        missing = sorted(product_ids - set(products))
        if missing:
            raise ValidationError("Unknown products in sale", details={"product_ids": missing})
        inactive = sorted(pid for pid, p in products.items() if not p.is_active)
        if inactive:
            raise ValidationError("Inactive products cannot be sold", details={"product_ids": inactive})

        total = sum(products[item.product_id].price_cents * item.quantity for item in sale_items)

        received = received_amount_cents
        if received is None and method == PAYMENT_QRCODE:
            received = total
        if received is None:
            raise ValidationError("received_amount_cents is required for cash sales")
        received = _money(received, "received_amount_cents")
        if received < total:
            raise ValidationError(
                "Received amount is less than the sale total",
                details={"total_cents": total, "received_amount_cents": received},
            )

        change = received - total
        if change_amount_cents is not None and _money(change_amount_cents, "change_amount_cents") != change:
            raise ValidationError(
                "change_amount_cents does not match received - total",
                details={"expected": change, "given": change_amount_cents},
            )

        sale = Sale(
            id=next_sale_id(),
            total_cents=total,
            payment_method=method,
            received_amount_cents=received,
            change_amount_cents=change,
            created_by=actor.name if actor is not None else None,
            canceled=False,
        )
        for item in sale_items:
            product = products[item.product_id]
            sale.lines.append(
                SaleLine(
                    product_id=product.id,
                    sku=product.sku,
                    product_name=product.name,
                    quantity=item.quantity,
                    unit_price_cents=product.price_cents,
                    line_total_cents=product.price_cents * item.quantity,
                )
            )
        db.session.add(sale)
        db.session.flush()

        for line in sale.lines:
            debit(
                line.product_id,
                line.quantity,
                movement_type=MOVEMENT_SALE,
                reference_type="sale",
                reference_id=sale.id,
                actor=actor,
            )

        append_audit_event(
            action="sale.completed",
            entity_type="sale",
            entity_id=sale.id,
            actor=actor,
            payload={"total_cents": total, "payment_method": method},
        )
        return sale

    sale = run_in_transaction(_op)
    current_app.logger.info("Sale %s completed (%s cents)", sale.id, sale.total_cents)
    return sale


def cancel_sale(sale_id: str, *, actor, reason: str | None = None) -> Sale:
    """
    Cancel a sale and return its goods to stock.

    Idempotency guard: a sale that is already canceled raises AlreadyCanceled
    and is never credited twice.
    """
    if actor is None or not actor.is_admin:
        raise PermissionDenied("Only an administrator may cancel sales", details={"action": "cancel sale"})

    def _op() -> Sale:
        sale = lock_for_update(db.session.query(Sale).filter(Sale.id == sale_id)).first()
        if sale is None:
            raise SaleNotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})
        if sale.canceled:
            raise AlreadyCanceled(f"Sale {sale.id} is already canceled", details={"sale_id": sale.id})

        sale.canceled = True
        sale.canceled_by = actor.name
        sale.canceled_at = utcnow()
        sale.cancel_reason = (reason or "").strip() or None
        db.session.flush()

        for line in sale.lines:
            credit(
                line.product_id,
                line.quantity,
                movement_type=MOVEMENT_SALE_CANCEL,
                reference_type="sale",
                reference_id=sale.id,
                actor=actor,
            )

        append_audit_event(
            action="sale.cancelled",
            entity_type="sale",
            entity_id=sale.id,
            actor=actor,
            note=sale.cancel_reason,
        )
        return sale

    sale = run_in_transaction(_op)
    current_app.logger.info("Sale %s cancelled by %s", sale_id, actor.name)
    return sale


def get_sale(sale_id: str) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def list_sales(
    *,
    include_canceled: bool = True,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Sale], int]:
    query = db.session.query(Sale)
    if not include_canceled:
        query = query.filter(Sale.canceled.is_(False))
    total = query.count()
    sales = (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return sales, total
