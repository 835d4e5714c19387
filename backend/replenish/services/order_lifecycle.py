# Overview: Purchase order status state machine; legal edges, editing rules and transition recording.

"""
Purchase Order State Machine

================================================================================
PURPOSE: Single source of truth for which status changes are legal
================================================================================

STATE MACHINE:
    draft -> pending -> approved -> partial_received -> received
    draft | pending | approved -> cancelled

    draft:            being prepared; every field and the item list are editable
    pending:          submitted for approval; items, notes and expected
                      delivery date stay editable, seller and payment frozen
    approved:         accepted; only receiving may change it
    partial_received: some goods arrived; only receiving may change it
    received:         TERMINAL
    cancelled:        TERMINAL

RULES (NON-NEGOTIABLE):
1. Only edges listed in TRANSITIONS are legal; anything else raises
   InvalidTransition. Requests are never clamped to a nearby legal state.
2. received / partial_received are set ONLY by the receiving service.
3. Every applied transition appends an audit event in the same transaction
   and is logged at INFO.

================================================================================
"""

from __future__ import annotations

from flask import current_app

from ..errors import InvalidTransition, ValidationError
from ..time_utils import utcnow
from .audit_service import append_audit_event

STATUS_DRAFT = "draft"
STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_PARTIAL_RECEIVED = "partial_received"
STATUS_RECEIVED = "received"
STATUS_CANCELLED = "cancelled"

VALID_STATUSES = {
    STATUS_DRAFT,
    STATUS_PENDING,
    STATUS_APPROVED,
    STATUS_PARTIAL_RECEIVED,
    STATUS_RECEIVED,
    STATUS_CANCELLED,
}

TERMINAL_STATUSES = {STATUS_RECEIVED, STATUS_CANCELLED}

TRANSITIONS: dict[str, set[str]] = {
    STATUS_DRAFT: {STATUS_PENDING, STATUS_CANCELLED},
    STATUS_PENDING: {STATUS_APPROVED, STATUS_CANCELLED},
    STATUS_APPROVED: {STATUS_PARTIAL_RECEIVED, STATUS_RECEIVED, STATUS_CANCELLED},
    STATUS_PARTIAL_RECEIVED: {STATUS_PARTIAL_RECEIVED, STATUS_RECEIVED},
    STATUS_RECEIVED: set(),
    STATUS_CANCELLED: set(),
}

# Targets reachable only through receiving_service.receive_items
RECEIVING_TARGETS = {STATUS_PARTIAL_RECEIVED, STATUS_RECEIVED}
RECEIVABLE_STATUSES = {STATUS_APPROVED, STATUS_PARTIAL_RECEIVED}

HEADER_FIELDS = frozenset({"seller_id", "seller_name", "notes", "payment", "expected_delivery_date"})
EDITABLE_FIELDS: dict[str, frozenset[str]] = {
    STATUS_DRAFT: HEADER_FIELDS | {"items"},
    STATUS_PENDING: frozenset({"items", "notes", "expected_delivery_date"}),
}


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Check if a status change is an edge of the state machine.

    partial_received -> partial_received is an edge (another partial
    receipt); every other same-state request is not.
    """
    validate_status(from_status)
    validate_status(to_status)
    return to_status in TRANSITIONS[from_status]


def require_transition(from_status: str, to_status: str, *, order_id: str | None = None) -> None:
    if not can_transition(from_status, to_status):
        raise InvalidTransition(
            f"Cannot move order from '{from_status}' to '{to_status}'",
            from_status=from_status,
            to_status=to_status,
            details={"order_id": order_id} if order_id else None,
        )


def editable_fields(status: str) -> frozenset[str]:
    """Fields an update may replace while the order is in `status`."""
    validate_status(status)
    return EDITABLE_FIELDS.get(status, frozenset())


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def apply_transition(
    order,
    to_status: str,
    *,
    actor=None,
    action: str,
    note: str | None = None,
    payload: dict | None = None,
    via_receiving: bool = False,
) -> None:
    """
    Move `order` to `to_status` and record it.

    Does not commit; the caller's unit of work owns the transaction.

    Raises:
        InvalidTransition: edge not allowed, or a receiving-only target
            requested outside the receiving service.
    """
    from_status = order.status
    if to_status in RECEIVING_TARGETS and not via_receiving:
        raise InvalidTransition(
            f"Status '{to_status}' is set by receiving goods, not directly",
            from_status=from_status,
            to_status=to_status,
        )
    require_transition(from_status, to_status, order_id=order.id)

    now = utcnow()
    order.status = to_status
    if to_status == STATUS_PENDING:
        order.submitted_at = now
    elif to_status == STATUS_APPROVED:
        order.approved_by = actor.name if actor is not None else None
        order.approved_at = now
    elif to_status == STATUS_CANCELLED:
        order.cancelled_by = actor.name if actor is not None else None
        order.cancelled_at = now
        order.cancellation_reason = note

    append_audit_event(
        action=action,
        entity_type="purchase_order",
        entity_id=order.id,
        actor=actor,
        from_status=from_status,
        to_status=to_status,
        note=note,
        payload=payload,
        occurred_at=now,
    )
    current_app.logger.info(
        "Purchase order %s: %s -> %s by %s",
        order.id, from_status, to_status, actor.name if actor is not None else "system",
    )
