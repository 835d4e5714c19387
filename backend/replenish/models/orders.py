from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


class PurchaseOrder(db.Model):
    """
    Purchase order header.

    IDENTITY: String id "PO" + DDMMYYYY + 4-digit daily sequence, minted when
    the draft is created and immutable afterwards.

    LIFECYCLE (see services/order_lifecycle.py):
        draft -> pending -> approved -> partial_received -> received
        draft | pending | approved -> cancelled

    WRITE OWNERSHIP:
    - total_cents is derived from the items and written only by
      order_service.replace_items.
    - status, received_at are written only by the lifecycle transitions and
      by receiving_service.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_status_created", "status", "created_at"),
        db.Index("ix_purchase_orders_seller", "seller_id"),
    )

    id = db.Column(db.String(32), primary_key=True)

    status = db.Column(db.String(24), nullable=False, default="draft", index=True)

    # Seller master data lives elsewhere; name is a snapshot for display
    seller_id = db.Column(db.String(64), nullable=True)
    seller_name = db.Column(db.String(255), nullable=True)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    # Payment terms: cash | check | credit (credit carries days + due date)
    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    credit_days = db.Column(db.Integer, nullable=True)
    due_date = db.Column(db.Date, nullable=True)

    expected_delivery_date = db.Column(db.Date, nullable=True)

    # Lifecycle user attribution (identity comes from the auth collaborator)
    created_by = db.Column(db.String(120), nullable=False)
    created_by_id = db.Column(db.String(64), nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(db.String(120), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.String(120), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)

    # Denormalized: time of the latest receipt applied to any item
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "PurchaseOrderItem",
        back_populates="order",
        order_by="PurchaseOrderItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id!r} status={self.status}>"

    @property
    def over_received_item_ids(self) -> list[int]:
        return [item.id for item in self.items if item.over_received]

    def to_dict(self, include_items: bool = True) -> dict:
        result = {
            "id": self.id,
            "status": self.status,
            "seller_id": self.seller_id,
            "seller_name": self.seller_name,
            "total_cents": self.total_cents,
            "notes": self.notes,
            "payment": {
                "method": self.payment_method,
                "credit_days": self.credit_days,
                "due_date": to_iso_date(self.due_date),
            },
            "expected_delivery_date": to_iso_date(self.expected_delivery_date),
            "created_by": self.created_by,
            "created_by_id": self.created_by_id,
            "submitted_at": to_utc_z(self.submitted_at),
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "cancelled_by": self.cancelled_by,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "received_at": to_utc_z(self.received_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            result["items"] = [item.to_dict() for item in self.items]
            result["over_received_item_ids"] = self.over_received_item_ids
        return result


class PurchaseOrderItem(db.Model):
    """
    Line item on a purchase order.

    ORDERED FIELDS (product, ordered_qty, unit price, lot, expiry) are only
    ever replaced wholesale together with the whole item list, never patched.

    RECEIVED FIELDS (received_qty, received_at) are written only by
    receiving_service.receive_items. received_qty starts at 0 and never
    decreases. received_qty > ordered_qty (over-receipt) is allowed and
    counts as fully received.
    """
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("ordered_qty > 0", name="ck_po_items_ordered_positive"),
        db.CheckConstraint("received_qty >= 0", name="ck_po_items_received_nonneg"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_po_items_price_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(32), db.ForeignKey("purchase_orders.id"), nullable=False, index=True)

    # Display order only
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=True)

    ordered_qty = db.Column(db.Integer, nullable=False)
    received_qty = db.Column(db.Integer, nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    lot_code = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)

    received_at = db.Column(db.DateTime(timezone=True), nullable=True)

    order = db.relationship("PurchaseOrder", back_populates="items")
    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.ordered_qty

    @property
    def receipt_state(self) -> str:
        received = self.received_qty or 0
        if received <= 0:
            return "unreceived"
        if received < self.ordered_qty:
            return "partial"
        return "received"

    @property
    def over_received(self) -> bool:
        return (self.received_qty or 0) > self.ordered_qty

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "position": self.position,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "ordered_qty": self.ordered_qty,
            "received_qty": self.received_qty,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "lot_code": self.lot_code,
            "expiry_date": to_iso_date(self.expiry_date),
            "received_at": to_utc_z(self.received_at),
            "receipt_state": self.receipt_state,
            "over_received": self.over_received,
        }
