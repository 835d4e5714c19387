# Overview: Normalization of purchase order payment terms.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

from ..errors import ValidationError
from ..time_utils import parse_iso_date

PAYMENT_CASH = "cash"
PAYMENT_CHECK = "check"
PAYMENT_CREDIT = "credit"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CHECK, PAYMENT_CREDIT)


@dataclass(frozen=True)
class PaymentTerms:
    """
    How a purchase order is paid.

    RULES:
    - credit requires credit_days > 0; due_date defaults to
      order date + credit_days.
    - cash and check never carry credit_days or due_date.
    """
    method: str = PAYMENT_CASH
    credit_days: int | None = None
    due_date: date | None = None

    @classmethod
    def from_payload(cls, value, *, order_date: date) -> "PaymentTerms":
        """
        Accept either a bare method string ("cash") or a mapping
        {"method", "credit_days", "due_date"}.
        """
        if value is None:
            return cls()
        if isinstance(value, PaymentTerms):
            raw = {"method": value.method, "credit_days": value.credit_days, "due_date": value.due_date}
        elif isinstance(value, str):
            raw = {"method": value}
        elif isinstance(value, dict):
            raw = value
        else:
            raise ValidationError("payment must be a method name or an object")

        unknown = set(raw) - {"method", "credit_days", "due_date"}
        if unknown:
            raise ValidationError(
                "Unknown payment fields",
                details={"fields": sorted(unknown)},
            )

        method = raw.get("method") or PAYMENT_CASH
        if not isinstance(method, str):
            raise ValidationError("payment method must be a string")
        method = method.strip().lower()
        if method not in PAYMENT_METHODS:
            raise ValidationError(
                f"Invalid payment method '{method}'",
                details={"allowed": list(PAYMENT_METHODS)},
            )

        credit_days = raw.get("credit_days")
        due_date = raw.get("due_date")

        if method != PAYMENT_CREDIT:
            if credit_days is not None or due_date is not None:
                raise ValidationError(f"{method} payment cannot carry credit_days or due_date")
            return cls(method=method)

        if isinstance(credit_days, bool) or not isinstance(credit_days, int) or credit_days <= 0:
            raise ValidationError("credit payment requires a positive integer credit_days")

        if due_date is None:
            due_date = order_date + timedelta(days=credit_days)
        elif not isinstance(due_date, date):
            try:
                due_date = parse_iso_date(due_date)
            except ValueError as exc:
                raise ValidationError("due_date must be an ISO date (YYYY-MM-DD)") from exc

        return cls(method=method, credit_days=credit_days, due_date=due_date)

    def apply_to(self, order) -> None:
        order.payment_method = self.method
        order.credit_days = self.credit_days
        order.due_date = self.due_date
