# Overview: Pytest coverage for reference number allocation and insert retries.

import threading
from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from posbooks.extensions import db
from posbooks.models import SalesInvoice
from posbooks.models.enums import InvoiceStatus
from posbooks.services import invoice_service
from posbooks.services.reference_service import (
    INVOICE_PREFIX,
    PROFORMA_PREFIX,
    ReferenceExhaustedError,
    allocate_reference,
    format_reference,
    parse_sequence,
    with_reference_retry,
)


def _invoice(db_session, store, customer, reference):
    invoice = SalesInvoice(
        org_id=store.org_id,
        store_id=store.id,
        customer_id=customer.id,
        reference_number=reference,
        invoice_date=date(2026, 1, 5),
        status=InvoiceStatus.DRAFT,
    )
    db_session.add(invoice)
    db_session.commit()
    return invoice


class TestFormatting:
    def test_format_pads_sequence(self):
        assert format_reference("INV", date(2026, 3, 14), 7) == "INV-20260314-0007"

    def test_format_keeps_long_sequences(self):
        assert format_reference("ST", date(2026, 3, 14), 12345) == "ST-20260314-12345"

    def test_parse_sequence(self):
        assert parse_sequence("INV", "INV-20260314-0042") == 42
        assert parse_sequence("INV", "PF-20260314-0042") is None
        assert parse_sequence("INV", "INV-garbage") is None
        assert parse_sequence("INV", None) is None


class TestAllocateReference:
    def test_first_reference_starts_at_one(self, db_session, org):
        ref = allocate_reference(org.id, INVOICE_PREFIX, today=date(2026, 2, 1))
        assert ref == "INV-20260201-0001"

    def test_sequence_is_global_and_ignores_date(self, db_session, org, store, customer):
        """The date segment is cosmetic; numbering continues across days."""
        _invoice(db_session, store, customer, "INV-20251231-0041")
        ref = allocate_reference(org.id, INVOICE_PREFIX, today=date(2026, 2, 1))
        assert ref == "INV-20260201-0042"

    def test_sequences_are_per_organization(self, db_session, org, other_org, store, customer):
        _invoice(db_session, store, customer, "INV-20260101-0009")
        assert allocate_reference(other_org.id, INVOICE_PREFIX, today=date(2026, 1, 2)) == "INV-20260102-0001"

    def test_prefixes_do_not_share_sequences(self, db_session, org, store, customer):
        _invoice(db_session, store, customer, "INV-20260101-0005")
        assert allocate_reference(org.id, PROFORMA_PREFIX, today=date(2026, 1, 2)) == "PF-20260102-0001"

    def test_existing_candidate_is_skipped(self, db_session, org, store, customer):
        """The highest-sorting reference can trail the real sequence; taken candidates are probed past."""
        _invoice(db_session, store, customer, "INV-20260105-0002")
        _invoice(db_session, store, customer, "INV-20260101-0003")
        ref = allocate_reference(org.id, INVOICE_PREFIX, today=date(2026, 1, 1))
        assert ref == "INV-20260101-0004"

    def test_org_id_required(self, db_session):
        with pytest.raises(ReferenceExhaustedError):
            allocate_reference(None, INVOICE_PREFIX)

    def test_unknown_prefix(self, db_session, org):
        with pytest.raises(ReferenceExhaustedError):
            allocate_reference(org.id, "ZZ")


class TestWithReferenceRetry:
    def _conflict(self):
        return IntegrityError(
            "INSERT INTO sales_invoices ...",
            {},
            Exception("UNIQUE constraint failed: sales_invoices.org_id, sales_invoices.reference_number"),
        )

    def test_retries_then_succeeds(self, app, db_session):
        calls = []

        def _op():
            calls.append(1)
            if len(calls) < 3:
                raise self._conflict()
            return "ok"

        assert with_reference_retry(_op, attempts=5, backoff_base=0) == "ok"
        assert len(calls) == 3

    def test_exhaustion_raises_reference_error(self, app, db_session):
        calls = []

        def _op():
            calls.append(1)
            raise self._conflict()

        with pytest.raises(ReferenceExhaustedError):
            with_reference_retry(_op, attempts=3, backoff_base=0)
        assert len(calls) == 3

    def test_other_integrity_errors_propagate(self, app, db_session):
        calls = []

        def _op():
            calls.append(1)
            raise IntegrityError("INSERT ...", {}, Exception("NOT NULL constraint failed: sales_invoices.store_id"))

        with pytest.raises(IntegrityError):
            with_reference_retry(_op, attempts=3, backoff_base=0)
        assert len(calls) == 1


class TestConcurrentAllocation:
    def test_parallel_creates_get_distinct_references(self, file_app, file_seed):
        payload = {
            "store_id": file_seed['store_id'],
            "customer_id": file_seed['customer_id'],
            "exchange_rate": "1",
            "lines": [{"product_id": file_seed['product_id'], "quantity": "1", "unit_price": "10"}],
        }
        workers = 6
        barrier = threading.Barrier(workers)
        references, errors = [], []

        def _create():
            with file_app.app_context():
                barrier.wait()
                try:
                    invoice = invoice_service.create_invoice(file_seed['org_id'], dict(payload))
                    references.append(invoice.reference_number)
                except Exception as exc:
                    errors.append(exc)
                finally:
                    db.session.remove()

        threads = [threading.Thread(target=_create) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=60)

        assert errors == []
        assert len(references) == workers
        assert len(set(references)) == workers
        sequences = sorted(parse_sequence(INVOICE_PREFIX, ref) for ref in references)
        assert sequences == list(range(1, workers + 1))
        with file_app.app_context():
            assert db.session.query(SalesInvoice).count() == workers
