# Overview: Service-layer operations for receiving goods against approved purchase orders.

"""
Receiving (Reconciliation) Service

WHY: Physical receipt rarely matches the order exactly. Each line records
how much actually arrived, stock is credited by what is new, and the order
status follows from the lines.

RULES:
1. Only approved / partial_received orders accept receipts.
2. received_qty in a receipt is the new CUMULATIVE value for the line. It may
   never go down (no corrections) and never be negative.
3. Stock is credited by (new - recorded) for each line, with a RECEIPT
   movement carrying the line's lot code.
4. Over-receipt (received > ordered) is accepted, counts as fully received
   and is flagged on the line.
5. Aggregate status after the batch:
       every line received >= ordered  -> received
       any line received > 0           -> partial_received
       otherwise                       -> unchanged
6. One batch is one transaction: any failing line rolls back all of them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..errors import InvalidTransition, ItemNotFound, ValidationError
from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem
from ..time_utils import normalize_datetime, utcnow
from . import order_lifecycle as lifecycle
from .concurrency import run_in_transaction
from .order_service import load_order
from .stock_ledger_service import MOVEMENT_RECEIPT, credit


@dataclass(frozen=True)
class ReceiptLine:
    item_id: int
    received_qty: int
    received_at: datetime | None = None

    @classmethod
    def from_payload(cls, raw, index: int = 0) -> "ReceiptLine":
        if isinstance(raw, ReceiptLine):
            return raw
        if not isinstance(raw, dict):
            raise ValidationError(f"receipts[{index}] must be an object")
        item_id = raw.get("item_id")
        qty = raw.get("received_qty")
        if isinstance(item_id, bool) or not isinstance(item_id, int):
            raise ValidationError(f"receipts[{index}]: item_id must be an integer")
        if isinstance(qty, bool) or not isinstance(qty, int):
            raise ValidationError(f"receipts[{index}]: received_qty must be an integer")
        if qty < 0:
            raise ValidationError(
                f"receipts[{index}]: received_qty cannot be negative",
                details={"item_id": item_id, "received_qty": qty},
            )
        try:
            received_at = normalize_datetime(raw.get("received_at"))
        except ValueError as exc:
            raise ValidationError(f"receipts[{index}]: received_at must be ISO-8601") from exc
        return cls(item_id=item_id, received_qty=qty, received_at=received_at)


def parse_receipts(raw_receipts) -> list[ReceiptLine]:
    if not isinstance(raw_receipts, list) or not raw_receipts:
        raise ValidationError("receipts must be a non-empty list")
    lines = [ReceiptLine.from_payload(raw, i) for i, raw in enumerate(raw_receipts)]

    seen: set[int] = set()
    duplicates: set[int] = set()
    for line in lines:
        if line.item_id in seen:
            duplicates.add(line.item_id)
        seen.add(line.item_id)
    if duplicates:
        raise ValidationError("Duplicate item ids in one receipt batch", details={"item_ids": sorted(duplicates)})
    return lines


def derive_order_status(items, current_status: str) -> str:
    """Aggregate status from line quantities (rule 5)."""
    if items and all((item.received_qty or 0) >= item.ordered_qty for item in items):
        return lifecycle.STATUS_RECEIVED
    if any((item.received_qty or 0) > 0 for item in items):
        return lifecycle.STATUS_PARTIAL_RECEIVED
    return current_status


def receive_items(order_id: str, receipts, *, actor, received_at=None) -> PurchaseOrder:
    """
    Apply one batch of cumulative receipts to an order.

    Args:
        order_id: Purchase order id
        receipts: [{item_id, received_qty, received_at?}] or ReceiptLine list
        received_at: Default receipt time for lines without their own
        actor: Receiving user

    Raises:
        InvalidTransition: order not in approved / partial_received
        ItemNotFound: an item id is not on this order
        ValidationError: malformed, duplicate or decreasing quantities
    """
    lines = parse_receipts(receipts)
    try:
        batch_received_at = normalize_datetime(received_at) or utcnow()
    except ValueError as exc:
        raise ValidationError("received_at must be ISO-8601") from exc

    def _op():
        order = load_order(order_id, for_update=True)
        if order.status not in lifecycle.RECEIVABLE_STATUSES:
            raise InvalidTransition(
                f"Order {order.id} cannot receive goods in status '{order.status}'",
                from_status=order.status,
                details={"order_id": order.id},
            )

        items_by_id: dict[int, PurchaseOrderItem] = {item.id: item for item in order.items}
        unknown = [line.item_id for line in lines if line.item_id not in items_by_id]
        if unknown:
            raise ItemNotFound(
                f"Items not on order {order.id}",
                details={"order_id": order.id, "item_ids": unknown},
            )

        over_received: list[int] = []
        changed = False
        latest = order.received_at
        for line in lines:
            item = items_by_id[line.item_id]
            recorded = item.received_qty or 0
            if line.received_qty < recorded:
                raise ValidationError(
                    f"received_qty for item {item.id} cannot decrease ({recorded} -> {line.received_qty})",
                    details={"item_id": item.id, "recorded": recorded, "received_qty": line.received_qty},
                )

            delta = line.received_qty - recorded
            if delta == 0:
                continue

            when = line.received_at or batch_received_at
            credit(
                item.product_id,
                delta,
                movement_type=MOVEMENT_RECEIPT,
                reference_type="purchase_order",
                reference_id=order.id,
                lot_code=item.lot_code,
                actor=actor,
                occurred_at=when,
            )
            changed = True
            item.received_qty = line.received_qty
            item.received_at = when
            if latest is None or when > latest:
                latest = when
            if item.over_received:
                over_received.append(item.id)

        order.received_at = latest

        new_status = derive_order_status(order.items, order.status)
        if changed and (new_status != order.status or new_status == lifecycle.STATUS_PARTIAL_RECEIVED):
            lifecycle.apply_transition(
                order,
                new_status,
                actor=actor,
                action="order.received" if new_status == lifecycle.STATUS_RECEIVED else "order.received_partial",
                payload={"item_ids": [line.item_id for line in lines]},
                via_receiving=True,
            )

        db.session.flush()
        return order, over_received

    order, over_received = run_in_transaction(_op)
    if over_received:
        current_app.logger.warning(
            "Purchase order %s over-received on items %s", order_id, over_received,
        )
    return order
