# Overview: Daily human-readable identifiers for purchase orders and sales.

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..errors import SequenceExhausted, TransientConflict
from ..extensions import db
from ..models import DocumentSequence, PurchaseOrder, Sale
from ..time_utils import business_date

ORDER_DOCUMENT_TYPE = "PURCHASE_ORDER"
ORDER_PREFIX = "PO"
SALE_DOCUMENT_TYPE = "SALE"
SALE_PREFIX = ""

SEQUENCE_WIDTH = 4
MAX_SEQUENCE = 10 ** SEQUENCE_WIDTH - 1


def date_token(for_date: date) -> str:
    return for_date.strftime("%d%m%Y")


def format_identifier(prefix: str, for_date: date, number: int) -> str:
    return f"{prefix}{date_token(for_date)}{number:0{SEQUENCE_WIDTH}d}"


def parse_sequence(identifier: str, prefix: str, for_date: date) -> int | None:
    """Return the running number of `identifier` if it belongs to (prefix, date)."""
    head = f"{prefix}{date_token(for_date)}"
    if not identifier or not identifier.startswith(head):
        return None
    tail = identifier[len(head):]
    if len(tail) != SEQUENCE_WIDTH or not tail.isdigit():
        return None
    return int(tail)


def _highest_persisted(model, prefix: str, for_date: date) -> int:
    head = f"{prefix}{date_token(for_date)}"
    ids = (
        db.session.query(model.id)
        .filter(
            model.id.like(f"{head}%"),
            func.length(model.id) == len(head) + SEQUENCE_WIDTH,
        )
        .all()
    )
    numbers = [parse_sequence(row.id, prefix, for_date) for row in ids]
    return max((n for n in numbers if n is not None), default=0)


def next_identifier(*, document_type: str, prefix: str, model, for_date: date | None = None) -> str:
    """
    Allocate the next identifier for (document_type, date).

    Must run inside the caller's unit of work: the sequence bump and the row
    that uses the identifier commit or roll back together. The first
    allocation of a day seeds the counter from the highest id already
    persisted for that day, so identifiers stay unique across restarts.

    Raises:
        TransientConflict: another writer seeded the same day concurrently
            (the unit of work retries).
        SequenceExhausted: the daily range is used up.
    """
    if for_date is None:
        for_date = business_date(current_app.config.get("BUSINESS_TIMEZONE", "UTC"))

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.sequence_date == for_date,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    if result.rowcount:
        next_number = (
            db.session.query(DocumentSequence.next_number)
            .filter(
                DocumentSequence.document_type == document_type,
                DocumentSequence.sequence_date == for_date,
            )
            .scalar()
        )
        number = next_number - 1
    else:
        number = _highest_persisted(model, prefix, for_date) + 1
        db.session.add(
            DocumentSequence(
                document_type=document_type,
                sequence_date=for_date,
                next_number=number + 1,
            )
        )
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise TransientConflict(
                "Identifier sequence was seeded concurrently",
                details={"document_type": document_type, "date": for_date.isoformat()},
            ) from exc

    if number > MAX_SEQUENCE:
        raise SequenceExhausted(
            f"Daily identifier range exhausted for {document_type}",
            details={"document_type": document_type, "date": for_date.isoformat()},
        )

    return format_identifier(prefix, for_date, number)


def next_order_id(for_date: date | None = None) -> str:
    return next_identifier(
        document_type=ORDER_DOCUMENT_TYPE,
        prefix=ORDER_PREFIX,
        model=PurchaseOrder,
        for_date=for_date,
    )


def next_sale_id(for_date: date | None = None) -> str:
    return next_identifier(
        document_type=SALE_DOCUMENT_TYPE,
        prefix=SALE_PREFIX,
        model=Sale,
        for_date=for_date,
    )
