# Overview: Pytest coverage for invoice approval: ledger entries, balances, warnings and idempotency.

"""
Invoice posting tests.

Reference scenario (system currency, rate 1):
    Widget X  2 x 50 + tax 10 (VAT)  cost 4/unit, income 4000
    Spare Y   1 x 100 + tax 10 (VAT) cost 6/unit, income 4010
    subtotal 200, tax 20, total 220, nothing paid
"""

from datetime import date
from decimal import Decimal

import pytest
from conftest import invoice_payload, line

from posbooks.models import Customer, LedgerEntry, PriceHistory, ProductBatch, ProductStore, SalesInvoice, TaxCode
from posbooks.models.enums import EntryNature, InvoiceStatus, LedgerLineKind, PaymentStatus
from posbooks.services import invoice_service
from posbooks.services.invoice_service import PostingContextError
from posbooks.services.ledger_service import LedgerPostingError, group_difference
from posbooks.services.lifecycle_service import LifecycleError
from posbooks.services.sales_transaction_service import records_for_invoice
from posbooks.services.stock_service import BatchMismatch, StockValidationError
from posbooks.time_utils import utctoday


def _two_line_invoice(org, store, customer, product_x, product_y, vat, **overrides):
    payload = invoice_payload(store, customer, [
        line(product_x, "2", "50", tax_amount="10", sales_tax_id=vat.id),
        line(product_y, "1", "100", tax_amount="10", sales_tax_id=vat.id),
    ], **overrides)
    return invoice_service.create_invoice(org.id, payload, actor_id=7, actor_name="Test Clerk")


def _entries(db_session, result, kind=None):
    query = db_session.query(LedgerEntry).filter_by(posting_group_id=result.posting_group_id)
    if kind is not None:
        query = query.filter_by(kind=kind)
    return query.order_by(LedgerEntry.id).all()


def _bulk_quantity(db_session, product, store):
    return db_session.query(ProductStore).filter_by(product_id=product.id, store_id=store.id).one().quantity


class TestLedgerEntries:
    def test_two_line_tax_scenario(self, db_session, tenant, store, customer, accounts, product_x, product_y, vat):
        invoice = _two_line_invoice(tenant, store, customer, product_x, product_y, vat)

        result = invoice_service.approve_invoice(tenant.id, invoice.id, actor_id=7)

        entries = _entries(db_session, result)
        assert len(entries) == 8
        assert group_difference(entries) == Decimal("0")
        assert {e.posting_group_id for e in entries} == {result.posting_group_id}

        tax = _entries(db_session, result, LedgerLineKind.TAX)
        assert len(tax) == 1
        assert tax[0].account_id == accounts["tax"].id
        assert tax[0].nature == EntryNature.CREDIT
        assert tax[0].credit == Decimal("20")

        cogs = _entries(db_session, result, LedgerLineKind.COGS)
        inventory = _entries(db_session, result, LedgerLineKind.INVENTORY)
        assert [e.debit for e in cogs] == [Decimal("8"), Decimal("6")]
        assert [e.credit for e in inventory] == [Decimal("8"), Decimal("6")]

        revenue = {e.account_id: e.credit for e in _entries(db_session, result, LedgerLineKind.REVENUE)}
        assert revenue == {
            accounts["revenue_goods"].id: Decimal("100"),
            accounts["revenue_spares"].id: Decimal("100"),
        }

        receivable = _entries(db_session, result, LedgerLineKind.RECEIVABLE)
        assert len(receivable) == 1
        assert receivable[0].account_id == accounts["receivable"].id
        assert receivable[0].debit == Decimal("220")

        assert result.warnings == []

    def test_foreign_currency_uses_fixed_equivalents(
        self, db_session, tenant, store, customer, product_x, product_y, vat
    ):
        invoice = _two_line_invoice(tenant, store, customer, product_x, product_y, vat, exchange_rate="2")

        result = invoice_service.approve_invoice(tenant.id, invoice.id)

        entries = _entries(db_session, result)
        assert group_difference(entries) == Decimal("0")
        receivable = _entries(db_session, result, LedgerLineKind.RECEIVABLE)[0]
        assert receivable.debit == Decimal("220")
        assert receivable.debit_equivalent == Decimal("440")
        # average cost is a system-currency amount
        cogs = _entries(db_session, result, LedgerLineKind.COGS)[0]
        assert cogs.debit == Decimal("4")
        assert cogs.debit_equivalent == Decimal("8")
        revenue = _entries(db_session, result, LedgerLineKind.REVENUE)
        assert [e.credit_equivalent for e in revenue] == [Decimal("200"), Decimal("200")]

    def test_paid_invoice_debits_payment_account(
        self, db_session, tenant, store, customer, accounts, product_x, product_y, vat
    ):
        invoice = _two_line_invoice(
            tenant, store, customer, product_x, product_y, vat,
            paid_amount="220", payment_account_id=accounts["cash"].id,
        )
        assert invoice.payment_status == PaymentStatus.PAID

        result = invoice_service.approve_invoice(tenant.id, invoice.id)

        assert _entries(db_session, result, LedgerLineKind.RECEIVABLE) == []
        payment = _entries(db_session, result, LedgerLineKind.PAYMENT)
        assert len(payment) == 1
        assert payment[0].account_id == accounts["cash"].id
        assert payment[0].debit == Decimal("220")
        assert result.customer_updated is False
        assert group_difference(_entries(db_session, result)) == Decimal("0")

    def test_discount_posted_to_discount_account(
        self, db_session, tenant, store, customer, accounts, product_x, product_y, vat
    ):
        payload = invoice_payload(store, customer, [
            line(product_x, "2", "50", tax_amount="10", sales_tax_id=vat.id, discount_amount="10"),
            line(product_y, "1", "100", tax_amount="10", sales_tax_id=vat.id),
        ], discount_allowed_account_id=accounts["discount"].id)
        invoice = invoice_service.create_invoice(tenant.id, payload)
        assert invoice.total_amount == Decimal("210")

        result = invoice_service.approve_invoice(tenant.id, invoice.id)

        discount = _entries(db_session, result, LedgerLineKind.DISCOUNT)
        assert len(discount) == 1
        assert discount[0].debit == Decimal("10")
        assert group_difference(_entries(db_session, result)) == Decimal("0")

    def test_withholding_debited_to_its_tax_code_account(
        self, db_session, tenant, store, customer, accounts, product_x, vat
    ):
        wht = TaxCode(org_id=tenant.id, code="WHT5", name="Withholding 5%", rate=Decimal("5"),
                      is_wht=True, sales_tax_account_id=accounts["wht"].id)
        db_session.add(wht)
        db_session.commit()
        invoice = invoice_service.create_invoice(tenant.id, invoice_payload(store, customer, [
            line(product_x, "2", "50", tax_amount="10", sales_tax_id=vat.id, wht_amount="5", wht_tax_id=wht.id),
        ]))
        assert invoice.total_amount == Decimal("105")

        result = invoice_service.approve_invoice(tenant.id, invoice.id)

        withheld = _entries(db_session, result, LedgerLineKind.WHT)
        assert len(withheld) == 1
        assert withheld[0].account_id == accounts["wht"].id
        assert withheld[0].nature == EntryNature.DEBIT
        assert withheld[0].debit == Decimal("5")
        assert withheld[0].debit_equivalent == Decimal("5")
        assert _entries(db_session, result, LedgerLineKind.RECEIVABLE)[0].debit == Decimal("105")
        assert group_difference(_entries(db_session, result)) == Decimal("0")
        assert result.warnings == []


class TestLedgerWarnings:
    def test_tax_without_code_is_warned_not_posted(self, db_session, tenant, store, customer, product_x):
        invoice = invoice_service.create_invoice(tenant.id, invoice_payload(store, customer, [
            line(product_x, "2", "50", tax_amount="10"),
        ]))

        result = invoice_service.approve_invoice(tenant.id, invoice.id)

        assert result.invoice.status == InvoiceStatus.APPROVED
        assert _entries(db_session, result, LedgerLineKind.TAX) == []
        assert result.warnings == [
            "Tax Account: line 1 (Widget X) has amount 10.0000 but no tax code attached; not posted"
        ]
        # the skipped credit is the only difference in the group
        assert group_difference(_entries(db_session, result)) == Decimal("10")

    def test_discount_without_account_is_warned(self, db_session, tenant, store, customer, product_x):
        invoice = invoice_service.create_invoice(tenant.id, invoice_payload(store, customer, [
            line(product_x, "1", "50", discount_amount="5"),
        ]))

        result = invoice_service.approve_invoice(tenant.id, invoice.id)

        assert result.warnings == ["Discount Account: no discount allowed account; discount of 5.0000 not posted"]
        assert _entries(db_session, result, LedgerLineKind.DISCOUNT) == []
        assert group_difference(_entries(db_session, result)) == Decimal("-5")


class TestCriticalFailures:
    def test_missing_cogs_account_aborts_everything(self, db_session, tenant, store, customer, product_x):
        product_x.cogs_account_id = None
        db_session.commit()
        invoice = invoice_service.create_invoice(tenant.id, invoice_payload(store, customer, [
            line(product_x, "2", "50"),
        ]))

        with pytest.raises(LedgerPostingError) as exc_info:
            invoice_service.approve_invoice(tenant.id, invoice.id)

        assert str(exc_info.value).startswith("Critical General Ledger error:")
        assert "COGS account not found" in str(exc_info.value)
        assert db_session.get(SalesInvoice, invoice.id).status == InvoiceStatus.DRAFT
        assert db_session.query(LedgerEntry).count() == 0
        assert _bulk_quantity(db_session, product_x, store) == Decimal("100")

    def test_batch_mismatch_aborts_approval(self, db_session, tenant, store, customer, product_x, batch_b100):
        invoice = invoice_service.create_invoice(tenant.id, invoice_payload(store, customer, [
            line(product_x, "2", "50", batch_number="B100", expiry_date="2027-07-01"),
        ]))

        with pytest.raises(StockValidationError) as exc_info:
            invoice_service.approve_invoice(tenant.id, invoice.id)

        assert [type(p) for p in exc_info.value.problems] == [BatchMismatch]
        assert db_session.get(SalesInvoice, invoice.id).status == InvoiceStatus.DRAFT
        assert db_session.query(LedgerEntry).count() == 0
        assert _bulk_quantity(db_session, product_x, store) == Decimal("100")
        batch = db_session.get(ProductBatch, batch_b100.id)
        assert batch.current_quantity == Decimal("5")

    def test_missing_receivable_account(self, db_session, tenant, store, product_x):
        customer = Customer(org_id=tenant.id, full_name="No Account Co")
        db_session.add(customer)
        db_session.commit()
        invoice = invoice_service.create_invoice(tenant.id, invoice_payload(store, customer, [
            line(product_x, "1", "50"),
        ]))

        with pytest.raises(LedgerPostingError) as exc_info:
            invoice_service.approve_invoice(tenant.id, invoice.id)

        assert "Accounts Receivable account not found" in str(exc_info.value)

    def test_invoice_receivable_account_is_the_fallback(self, db_session, tenant, store, accounts, product_x):
        customer = Customer(org_id=tenant.id, full_name="Walk-in")
        db_session.add(customer)
        db_session.commit()
        invoice = invoice_service.create_invoice(tenant.id, invoice_payload(
            store, customer, [line(product_x, "1", "50")],
            receivable_account_id=accounts["receivable"].id,
        ))

        result = invoice_service.approve_invoice(tenant.id, invoice.id)

        assert _entries(db_session, result, LedgerLineKind.RECEIVABLE)[0].debit == Decimal("50")

    def test_date_outside_financial_year(self, db_session, tenant, store, customer, product_x):
        last_year = date(utctoday().year - 1, 6, 1)
        invoice = invoice_service.create_invoice(tenant.id, invoice_payload(
            store, customer, [line(product_x, "1", "50")], invoice_date=last_year.isoformat(),
        ))

        with pytest.raises(PostingContextError):
            invoice_service.approve_invoice(tenant.id, invoice.id)

    def test_cancelled_invoice_cannot_be_approved(self, db_session, tenant, store, customer, product_x):
        invoice = invoice_service.create_invoice(tenant.id, invoice_payload(
            store, customer, [line(product_x, "1", "50")],
        ))
        invoice_service.cancel_invoice(tenant.id, invoice.id, "customer changed mind")

        with pytest.raises(LifecycleError):
            invoice_service.approve_invoice(tenant.id, invoice.id)


class TestApprovalSideEffects:
    def test_customer_balances_grow_by_unpaid_part(
        self, db_session, tenant, store, customer, accounts, product_x, product_y, vat
    ):
        invoice = _two_line_invoice(
            tenant, store, customer, product_x, product_y, vat,
            paid_amount="20", payment_account_id=accounts["cash"].id,
        )

        result = invoice_service.approve_invoice(tenant.id, invoice.id)

        assert result.customer_updated is True
        refreshed = db_session.get(Customer, customer.id)
        assert refreshed.debt_balance == Decimal("200")
        assert refreshed.account_balance == Decimal("200")

    def test_price_history_only_for_changed_prices(
        self, db_session, tenant, store, customer, product_x, product_y, vat
    ):
        invoice = _two_line_invoice(tenant, store, customer, product_x, product_y, vat)

        invoice_service.approve_invoice(tenant.id, invoice.id)

        history = db_session.query(PriceHistory).all()
        assert len(history) == 1
        assert history[0].product_id == product_x.id
        assert history[0].old_selling_price == Decimal("45")
        assert history[0].new_selling_price == Decimal("50")

    def test_stock_movements_and_records(self, db_session, tenant, store, customer, product_x, product_y, vat):
        invoice = _two_line_invoice(tenant, store, customer, product_x, product_y, vat)

        result = invoice_service.approve_invoice(tenant.id, invoice.id)

        assert len(result.product_transactions) == 2
        assert _bulk_quantity(db_session, product_x, store) == Decimal("98")
        assert _bulk_quantity(db_session, product_y, store) == Decimal("99")
        records = records_for_invoice(result.invoice)
        assert len(records) == 2
        assert {r.status for r in records} == {"approved"}

    def test_approval_is_idempotent(self, db_session, tenant, store, customer, product_x, product_y, vat):
        invoice = _two_line_invoice(tenant, store, customer, product_x, product_y, vat)

        first = invoice_service.approve_invoice(tenant.id, invoice.id)
        second = invoice_service.approve_invoice(tenant.id, invoice.id)

        assert first.already_posted is False
        assert second.already_posted is True
        assert second.posting_group_id == first.posting_group_id
        assert len(second.ledger_entries) == 8
        assert db_session.query(LedgerEntry).count() == 8
        assert _bulk_quantity(db_session, product_x, store) == Decimal("98")
        refreshed = db_session.get(Customer, customer.id)
        assert refreshed.debt_balance == Decimal("220")

    def test_result_serializes(self, db_session, tenant, store, customer, product_x, product_y, vat):
        invoice = _two_line_invoice(tenant, store, customer, product_x, product_y, vat)

        data = invoice_service.approve_invoice(tenant.id, invoice.id).to_dict()

        assert data["invoice"]["status"] == "approved"
        assert data["invoice"]["posting_group_id"] == data["posting_group_id"]
        assert len(data["ledger_entries"]) == 8
        assert len(data["sales_transactions"]) == 2
