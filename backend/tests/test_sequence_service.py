"""
Identifier generation tests.

Verifies:
- PO ids are "PO" + DDMMYYYY + 4 digits, sale ids are DDMMYYYY + 4 digits
- Numbers run per day and restart at 0001 on a new day
- The first allocation of a day continues after ids already persisted
- The daily range is bounded
"""

from datetime import date

import pytest

from replenish.errors import SequenceExhausted
from replenish.models import DocumentSequence, PurchaseOrder
from replenish.services import sequence_service


DAY = date(2026, 10, 19)


class TestFormatting:

    def test_format_identifier(self):
        assert sequence_service.format_identifier("PO", DAY, 1) == "PO191020260001"
        assert sequence_service.format_identifier("", DAY, 42) == "191020260042"

    @pytest.mark.parametrize(
        "identifier,prefix,expected",
        [
            ("PO191020260007", "PO", 7),
            ("191020260123", "", 123),
            ("PO181020260007", "PO", None),
            ("PO19102026007", "PO", None),
            ("PO1910202600A7", "PO", None),
            ("", "PO", None),
        ],
    )
    def test_parse_sequence(self, identifier, prefix, expected):
        assert sequence_service.parse_sequence(identifier, prefix, DAY) == expected


class TestAllocation:

    def test_order_ids_run_per_day(self, db_session):
        first = sequence_service.next_order_id(DAY)
        second = sequence_service.next_order_id(DAY)
        db_session.commit()

        assert first == "PO191020260001"
        assert second == "PO191020260002"

    def test_new_day_restarts_at_one(self, db_session):
        sequence_service.next_order_id(DAY)
        sequence_service.next_order_id(DAY)
        next_day = sequence_service.next_order_id(date(2026, 10, 20))
        db_session.commit()

        assert next_day == "PO201020260001"

    def test_sale_ids_have_no_prefix_and_separate_counter(self, db_session):
        sequence_service.next_order_id(DAY)
        sale_id = sequence_service.next_sale_id(DAY)
        db_session.commit()

        assert sale_id == "191020260001"
        assert len(sale_id) == 12

    def test_first_allocation_continues_after_persisted_ids(self, db_session):
        db_session.add(PurchaseOrder(id="PO191020260007", created_by="seed"))
        db_session.add(PurchaseOrder(id="PO181020260050", created_by="seed"))
        db_session.commit()

        assert sequence_service.next_order_id(DAY) == "PO191020260008"
        db_session.commit()

    def test_default_date_is_business_date(self, app, db_session):
        from replenish.time_utils import business_date

        token = business_date("UTC").strftime("%d%m%Y")
        assert sequence_service.next_order_id() == f"PO{token}0001"
        db_session.commit()

    def test_daily_range_exhausted(self, db_session):
        db_session.add(DocumentSequence(
            document_type=sequence_service.ORDER_DOCUMENT_TYPE,
            sequence_date=DAY,
            next_number=sequence_service.MAX_SEQUENCE + 1,
        ))
        db_session.commit()

        with pytest.raises(SequenceExhausted) as excinfo:
            sequence_service.next_order_id(DAY)
        assert excinfo.value.retryable is False
        db_session.rollback()
