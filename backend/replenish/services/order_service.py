# Overview: Service-layer operations for purchase orders; the Order Store write path and lifecycle commands.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import (
    AlreadyCanceled,
    InvalidTransition,
    OrderNotFound,
    PermissionDenied,
    ValidationError,
)
from ..extensions import db
from ..models import Product, PurchaseOrder, PurchaseOrderItem
from ..time_utils import business_date, normalize_datetime, parse_iso_date
from . import order_lifecycle as lifecycle
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_in_transaction
from .payment_terms import PaymentTerms
from .sequence_service import next_order_id

"""
Order Store invariants

- total_cents == sum(unit_price_cents * ordered_qty) over the items; it is
  recomputed here every time the item list is replaced and never accepted
  from a caller.
- The item list is replaced wholesale, never patched line by line.
- status / received_qty / received_at are owned by the state machine and the
  receiving service; updates naming them are rejected.
"""

# Fields owned by the state machine or derived; never settable through an update
PROTECTED_FIELDS = frozenset({
    "id",
    "status",
    "total",
    "total_cents",
    "received_qty",
    "received_at",
    "version_id",
    "created_by",
    "created_at",
    "approved_by",
    "approved_at",
    "cancelled_by",
    "cancelled_at",
})

ITEM_FIELDS = frozenset({"product_id", "ordered_qty", "unit_price_cents", "lot_code", "expiry_date"})

_UNSET: Any = object()


def _positive_int(value, name: str, *, allow_zero: bool = False) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", details={"field": name})
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(
            f"{name} must be {'non-negative' if allow_zero else 'positive'}",
            details={"field": name, "value": value},
        )
    return value


def _optional_date(value, name: str) -> date | None:
    try:
        return parse_iso_date(value)
    except ValueError as exc:
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)", details={"field": name}) from exc


@dataclass(frozen=True)
class ItemSpec:
    """One requested order line, validated but not yet persisted."""
    product_id: int
    ordered_qty: int
    unit_price_cents: int
    lot_code: str | None = None
    expiry_date: date | None = None

    @classmethod
    def from_payload(cls, raw: dict, index: int = 0) -> "ItemSpec":
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        unknown = set(raw) - ITEM_FIELDS
        protected = unknown & {"received_qty", "received_at", "id"}
        if protected:
            raise ValidationError(
                f"items[{index}]: {', '.join(sorted(protected))} cannot be set directly",
                details={"fields": sorted(protected)},
            )
        if unknown:
            raise ValidationError(f"items[{index}]: unknown fields", details={"fields": sorted(unknown)})
        if "product_id" not in raw or "ordered_qty" not in raw:
            raise ValidationError(f"items[{index}]: product_id and ordered_qty are required")

        lot_code = raw.get("lot_code")
        if lot_code is not None and not isinstance(lot_code, str):
            raise ValidationError(f"items[{index}]: lot_code must be a string")

        return cls(
            product_id=_positive_int(raw["product_id"], "product_id"),
            ordered_qty=_positive_int(raw["ordered_qty"], "ordered_qty"),
            unit_price_cents=_positive_int(raw.get("unit_price_cents", 0), "unit_price_cents", allow_zero=True),
            lot_code=(lot_code or "").strip() or None,
            expiry_date=_optional_date(raw.get("expiry_date"), "expiry_date"),
        )


def parse_items(raw_items) -> list[ItemSpec]:
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")
    return [item if isinstance(item, ItemSpec) else ItemSpec.from_payload(item, i)
            for i, item in enumerate(raw_items)]


@dataclass(frozen=True)
class OrderUpdate:
    """
    Typed partial update of an order.

    A field left at its default is not touched; passing None clears the
    field where that is meaningful. `items` replaces the whole item list.
    """
    seller_id: Any = _UNSET
    seller_name: Any = _UNSET
    notes: Any = _UNSET
    payment: Any = _UNSET
    expected_delivery_date: Any = _UNSET
    items: Any = _UNSET

    FIELDS = ("seller_id", "seller_name", "notes", "payment", "expected_delivery_date", "items")

    @classmethod
    def from_payload(cls, payload: dict) -> "OrderUpdate":
        if not isinstance(payload, dict):
            raise ValidationError("Update body must be an object")
        protected = set(payload) & PROTECTED_FIELDS
        if protected:
            raise ValidationError(
                f"{', '.join(sorted(protected))} cannot be set directly",
                details={"fields": sorted(protected)},
            )
        unknown = set(payload) - set(cls.FIELDS)
        if unknown:
            raise ValidationError("Unknown update fields", details={"fields": sorted(unknown)})
        return cls(**payload)

    def supplied(self) -> set[str]:
        return {name for name in self.FIELDS if getattr(self, name) is not _UNSET}


def _snapshot_names(lines: list[ItemSpec]) -> dict[int, Product]:
    product_ids = {line.product_id for line in lines}
    if not product_ids:
        return {}
    products = db.session.query(Product).filter(Product.id.in_(product_ids)).all()
    by_id = {p.id: p for p in products}
    missing = sorted(product_ids - set(by_id))
    if missing:
        raise ValidationError("Unknown products on order", details={"product_ids": missing})
    return by_id


def replace_items(order: PurchaseOrder, raw_items) -> None:
    """
    Replace the item list wholesale and recompute total_cents.

    The only writer of total_cents.
    """
    lines = parse_items(raw_items)
    products = _snapshot_names(lines)

    order.items = [
        PurchaseOrderItem(
            position=position,
            product_id=line.product_id,
            product_name=products[line.product_id].name,
            ordered_qty=line.ordered_qty,
            received_qty=0,
            unit_price_cents=line.unit_price_cents,
            lot_code=line.lot_code,
            expiry_date=line.expiry_date,
        )
        for position, line in enumerate(lines)
    ]
    order.total_cents = sum(line.unit_price_cents * line.ordered_qty for line in lines)


def _order_date(order: PurchaseOrder) -> date:
    """Business date the order was created on, the base for credit due dates."""
    return business_date(
        current_app.config.get("BUSINESS_TIMEZONE", "UTC"),
        now=normalize_datetime(order.created_at),
    )


def load_order(order_id: str, *, for_update: bool = False) -> PurchaseOrder:
    query = db.session.query(PurchaseOrder).filter(PurchaseOrder.id == order_id)
    if for_update:
        query = lock_for_update(query)
    order = query.first()
    if order is None:
        raise OrderNotFound(f"Purchase order {order_id} not found", details={"order_id": order_id})
    return order


def _require_admin(actor, action: str) -> None:
    if actor is None or not actor.is_admin:
        raise PermissionDenied(f"Only an administrator may {action}", details={"action": action})


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def create_draft_order(
    *,
    actor,
    seller_id: str | None = None,
    seller_name: str | None = None,
    items=None,
    notes: str | None = None,
    payment=None,
    expected_delivery_date=None,
) -> PurchaseOrder:
    """
    Create a draft order with a freshly minted identifier.

    An empty item list is allowed for a draft; submit enforces non-empty.
    """
    if actor is None:
        raise PermissionDenied("An authenticated actor is required")

    def _op() -> PurchaseOrder:
        order_date = business_date(current_app.config.get("BUSINESS_TIMEZONE", "UTC"))
        terms = PaymentTerms.from_payload(payment, order_date=order_date)

        order = PurchaseOrder(
            id=next_order_id(order_date),
            status=lifecycle.STATUS_DRAFT,
            seller_id=seller_id,
            seller_name=seller_name,
            notes=notes,
            expected_delivery_date=_optional_date(expected_delivery_date, "expected_delivery_date"),
            created_by=actor.name,
            created_by_id=actor.id,
        )
        terms.apply_to(order)
        replace_items(order, items)

        db.session.add(order)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ValidationError("Order violates a data constraint") from exc

        append_audit_event(
            action="order.created",
            entity_type="purchase_order",
            entity_id=order.id,
            actor=actor,
            to_status=lifecycle.STATUS_DRAFT,
        )
        return order

    order = run_in_transaction(_op)
    current_app.logger.info("Purchase order %s created by %s", order.id, actor.name)
    return order


def update_order(order_id: str, update: OrderUpdate, *, actor) -> PurchaseOrder:
    """
    Apply a typed partial update according to the per-status editing rules.

    Raises:
        InvalidTransition: order is in a status that forbids edits.
        ValidationError: a supplied field is frozen in the current status.
    """
    if isinstance(update, dict):
        update = OrderUpdate.from_payload(update)

    def _op() -> PurchaseOrder:
        order = load_order(order_id, for_update=True)
        allowed = lifecycle.editable_fields(order.status)
        if not allowed:
            raise InvalidTransition(
                f"Order {order.id} cannot be edited in status '{order.status}'",
                from_status=order.status,
                details={"order_id": order.id},
            )

        supplied = update.supplied()
        frozen = supplied - allowed
        if frozen:
            raise ValidationError(
                f"Fields frozen while order is {order.status}: {', '.join(sorted(frozen))}",
                details={"fields": sorted(frozen), "status": order.status},
            )

        if "seller_id" in supplied:
            order.seller_id = update.seller_id
        if "seller_name" in supplied:
            order.seller_name = update.seller_name
        if "notes" in supplied:
            order.notes = update.notes
        if "expected_delivery_date" in supplied:
            order.expected_delivery_date = _optional_date(update.expected_delivery_date, "expected_delivery_date")
        if "payment" in supplied:
            PaymentTerms.from_payload(update.payment, order_date=_order_date(order)).apply_to(order)
        if "items" in supplied:
            replace_items(order, update.items)
            if not order.items and order.status != lifecycle.STATUS_DRAFT:
                raise ValidationError(
                    f"Order {order.id} must keep at least one item while {order.status}",
                    details={"order_id": order.id, "status": order.status},
                )

        if supplied:
            append_audit_event(
                action="order.updated",
                entity_type="purchase_order",
                entity_id=order.id,
                actor=actor,
                payload={"fields": sorted(supplied)},
            )
        return order

    return run_in_transaction(_op)


def submit_order(order_id: str, *, actor) -> PurchaseOrder:
    """draft -> pending. An order must carry at least one item."""
    def _op() -> PurchaseOrder:
        order = load_order(order_id, for_update=True)
        lifecycle.require_transition(order.status, lifecycle.STATUS_PENDING, order_id=order.id)
        if not order.items:
            raise ValidationError(f"Order {order.id} has no items", details={"order_id": order.id})
        lifecycle.apply_transition(order, lifecycle.STATUS_PENDING, actor=actor, action="order.submitted")
        return order

    return run_in_transaction(_op)


def approve_order(order_id: str, *, actor) -> PurchaseOrder:
    """pending -> approved. Admin only."""
    _require_admin(actor, "approve purchase orders")

    def _op() -> PurchaseOrder:
        order = load_order(order_id, for_update=True)
        lifecycle.require_transition(order.status, lifecycle.STATUS_APPROVED, order_id=order.id)
        if not order.items:
            raise ValidationError(f"Order {order.id} has no items", details={"order_id": order.id})
        lifecycle.apply_transition(order, lifecycle.STATUS_APPROVED, actor=actor, action="order.approved")
        return order

    return run_in_transaction(_op)


def cancel_order(order_id: str, *, actor, note: str | None = None, confirm: bool = False) -> PurchaseOrder:
    """
    draft | pending | approved -> cancelled.

    RULES:
    - confirm must be True (explicit confirmation step).
    - A non-admin actor must give a reason.
    - Received quantities recorded so far stay as they are.
    """
    if not confirm:
        raise ValidationError("Cancellation must be confirmed (confirm=true)")
    note = (note or "").strip() or None
    if not (actor is not None and actor.is_admin) and not note:
        raise ValidationError("A cancellation reason is required")

    def _op() -> PurchaseOrder:
        order = load_order(order_id, for_update=True)
        if order.status == lifecycle.STATUS_CANCELLED:
            raise AlreadyCanceled(f"Order {order.id} is already cancelled", details={"order_id": order.id})
        lifecycle.apply_transition(
            order, lifecycle.STATUS_CANCELLED, actor=actor, action="order.cancelled", note=note,
        )
        return order

    return run_in_transaction(_op)


def delete_order(order_id: str, *, actor) -> None:
    """
    Administrative hard delete.

    Refused once any item has a received quantity: the stock ledger was
    already credited for those units.
    """
    _require_admin(actor, "delete purchase orders")

    def _op() -> None:
        order = load_order(order_id, for_update=True)
        if any((item.received_qty or 0) > 0 for item in order.items):
            raise InvalidTransition(
                f"Order {order.id} has received goods and cannot be deleted",
                from_status=order.status,
                details={"order_id": order.id},
            )
        append_audit_event(
            action="order.deleted",
            entity_type="purchase_order",
            entity_id=order.id,
            actor=actor,
            from_status=order.status,
        )
        db.session.delete(order)

    run_in_transaction(_op)
    current_app.logger.info("Purchase order %s deleted by %s", order_id, actor.name)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_order(order_id: str) -> PurchaseOrder:
    return load_order(order_id)


def list_orders(
    *,
    status: str | None = None,
    seller_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[PurchaseOrder], int]:
    query = db.session.query(PurchaseOrder)
    if status:
        lifecycle.validate_status(status)
        query = query.filter(PurchaseOrder.status == status)
    if seller_id:
        query = query.filter(PurchaseOrder.seller_id == seller_id)

    total = query.count()
    orders = (
        query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return orders, total


def get_latest_order() -> PurchaseOrder | None:
    """Most recently created order, by an explicit query (no cached 'last order')."""
    return (
        db.session.query(PurchaseOrder)
        .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
        .first()
    )
