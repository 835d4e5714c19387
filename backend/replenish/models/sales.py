from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Sale(db.Model):
    """
    Completed POS sale.

    IDENTITY: DDMMYYYY + 4-digit running number, reset daily.

    A sale is created already completed: the sale row, its lines and the
    stock debits commit together or not at all. `canceled` only ever moves
    false -> true, and the matching stock credit happens in the same
    transaction exactly once.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_canceled_created", "canceled", "created_at"),
    )

    id = db.Column(db.String(32), primary_key=True)

    total_cents = db.Column(db.Integer, nullable=False)

    # cash | qrcode
    payment_method = db.Column(db.String(16), nullable=False)
    received_amount_cents = db.Column(db.Integer, nullable=False)
    change_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    canceled = db.Column(db.Boolean, nullable=False, default=False)
    canceled_by = db.Column(db.String(120), nullable=True)
    canceled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    lines = db.relationship(
        "SaleLine",
        back_populates="sale",
        order_by="SaleLine.id",
        cascade="all, delete-orphan",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id!r} canceled={self.canceled}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        result = {
            "id": self.id,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "received_amount_cents": self.received_amount_cents,
            "change_amount_cents": self.change_amount_cents,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "canceled": self.canceled,
            "canceled_by": self.canceled_by,
            "canceled_at": to_utc_z(self.canceled_at),
            "cancel_reason": self.cancel_reason,
            "version_id": self.version_id,
        }
        if include_lines:
            result["lines"] = [line.to_dict() for line in self.lines]
        return result


class SaleLine(db.Model):
    """Individual line item on a sale, with a product snapshot."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.String(32), db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=True)
    product_name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="lines")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "sku": self.sku,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
