# Overview: Pytest coverage for keeping sales transaction records in step with invoice lines.

from decimal import Decimal

from conftest import invoice_payload, line

from posbooks.models import SalesInvoice, SalesTransactionRecord
from posbooks.services import invoice_service
from posbooks.services.sales_transaction_service import (
    delete_invoice_records,
    records_for_invoice,
    sync_invoice_records,
)


def _two_line_invoice(org, store, customer, product_x, product_y, **overrides):
    return invoice_service.create_invoice(org.id, invoice_payload(store, customer, [
        line(product_x, "2", "50"),
        line(product_y, "1", "100"),
    ], **overrides))


class TestSync:
    def test_one_record_per_line(self, db_session, tenant, store, customer, product_x, product_y):
        invoice = _two_line_invoice(tenant, store, customer, product_x, product_y)

        records = records_for_invoice(invoice)

        assert [r.product_id for r in records] == [product_x.id, product_y.id]
        assert all(r.reference_number.startswith("ST-") for r in records)
        assert len({r.reference_number for r in records}) == 2
        assert records[0].total_amount == Decimal("100")
        assert records[0].invoice_reference == invoice.reference_number
        assert records[0].status == "draft"

    def test_positions_default_to_line_numbers(self, db_session, tenant, store, customer, product_x, product_y):
        invoice = _two_line_invoice(tenant, store, customer, product_x, product_y)

        assert [item.position for item in invoice.lines] == [1, 2]
        assert [r.position for r in records_for_invoice(invoice)] == [1, 2]

    def test_sent_positions_are_kept(self, db_session, tenant, store, customer, product_x, product_y):
        invoice = invoice_service.create_invoice(tenant.id, invoice_payload(store, customer, [
            line(product_x, "2", "50", position=10),
            line(product_y, "1", "100", position=20),
        ]))

        assert [item.position for item in invoice.lines] == [10, 20]

    def test_resync_is_idempotent(self, db_session, tenant, store, customer, product_x, product_y):
        invoice = _two_line_invoice(tenant, store, customer, product_x, product_y)
        before = [(r.id, r.reference_number) for r in records_for_invoice(invoice)]

        sync_invoice_records(invoice)
        db_session.commit()

        after = [(r.id, r.reference_number) for r in records_for_invoice(invoice)]
        assert after == before
        assert db_session.query(SalesTransactionRecord).count() == 2

    def test_removed_line_drops_its_record(self, db_session, tenant, store, customer, product_x, product_y):
        invoice = _two_line_invoice(tenant, store, customer, product_x, product_y)
        kept = records_for_invoice(invoice)[0]

        invoice_service.update_invoice(tenant.id, invoice.id, {"lines": [line(product_x, "3", "50")]})

        records = records_for_invoice(db_session.get(SalesInvoice, invoice.id))
        assert len(records) == 1
        assert records[0].id == kept.id
        assert records[0].quantity == Decimal("3")
        assert records[0].total_amount == Decimal("150")

    def test_paid_amount_spread_over_lines(self, db_session, tenant, store, customer, product_x, product_y):
        invoice = _two_line_invoice(tenant, store, customer, product_x, product_y, paid_amount="50")

        records = records_for_invoice(invoice)

        assert [r.paid_amount for r in records] == [Decimal("25"), Decimal("25")]
        assert sum(r.paid_amount for r in records) == Decimal("50")
        assert [r.balance_amount for r in records] == [Decimal("75"), Decimal("75")]

    def test_status_follows_invoice(self, db_session, tenant, store, customer, product_x, product_y):
        invoice = _two_line_invoice(tenant, store, customer, product_x, product_y)

        invoice_service.send_invoice(tenant.id, invoice.id)

        assert {r.status for r in records_for_invoice(invoice)} == {"sent"}


class TestDelete:
    def test_delete_records(self, db_session, tenant, store, customer, product_x, product_y):
        invoice = _two_line_invoice(tenant, store, customer, product_x, product_y)

        assert delete_invoice_records(invoice) == 2
        db_session.commit()
        assert records_for_invoice(invoice) == []

    def test_deleting_invoice_removes_records(self, db_session, tenant, store, customer, product_x, product_y):
        invoice = _two_line_invoice(tenant, store, customer, product_x, product_y)

        invoice_service.delete_invoice(tenant.id, invoice.id)

        assert db_session.query(SalesTransactionRecord).count() == 0
        assert db_session.query(SalesInvoice).count() == 0
