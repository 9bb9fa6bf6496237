# Overview: Service-layer operations for sales transaction records; keeps one reporting row per invoice line.

"""
Sales transaction records mirror the current lines of an invoice.

sync_invoice_records() is idempotent: running it twice against the same
invoice leaves exactly one record per line. Records are matched to lines by
(position, product) first, then by product alone; matched records are
updated in place, new lines get new records, and records left unmatched
are deleted.
"""

from __future__ import annotations

from ..extensions import db
from ..models import SalesTransactionRecord
from .currency_service import ZERO, allocate_proportionally, money, to_decimal
from .reference_service import SALES_TRANSACTION_PREFIX, allocate_reference


def _records_for(invoice) -> list[SalesTransactionRecord]:
    return (
        db.session.query(SalesTransactionRecord)
        .filter_by(org_id=invoice.org_id, sales_invoice_id=invoice.id)
        .order_by(SalesTransactionRecord.position, SalesTransactionRecord.id)
        .all()
    )


def _paid_shares(invoice) -> list:
    line_totals = [to_decimal(line.line_total) for line in invoice.lines]
    basis = sum(line_totals, ZERO)
    if basis <= 0:
        return [ZERO for _ in line_totals]
    return allocate_proportionally(line_totals, basis, invoice.paid_amount)


def _match(line, records: list[SalesTransactionRecord], used: set[int]):
    for record in records:
        if record.id not in used and record.position == line.position and record.product_id == line.product_id:
            return record
    for record in records:
        if record.id not in used and record.product_id == line.product_id:
            return record
    return None


def _apply(record: SalesTransactionRecord, invoice, line, paid, actor_id) -> None:
    product = line.product
    record.sales_invoice_line_id = line.id
    record.position = line.position
    record.invoice_reference = invoice.reference_number
    record.transaction_date = invoice.invoice_date
    record.due_date = invoice.due_date
    record.store_id = invoice.store_id
    record.customer_id = invoice.customer_id
    record.financial_year_id = invoice.financial_year_id
    record.product_id = line.product_id
    record.product_type = product.product_type.value if product is not None else None
    record.product_category_id = product.category_id if product is not None else None
    record.quantity = line.quantity
    record.unit_price = line.unit_price
    record.subtotal = line.line_subtotal
    record.discount_amount = line.discount_amount
    record.tax_amount = line.tax_amount
    record.wht_amount = line.wht_amount
    record.total_amount = line.line_total
    record.paid_amount = money(paid)
    record.balance_amount = money(to_decimal(line.line_total) - to_decimal(paid))
    record.equivalent_amount = line.equivalent_amount
    record.currency_id = invoice.currency_id
    record.system_currency_id = invoice.system_currency_id
    record.exchange_rate = invoice.exchange_rate
    record.status = invoice.status.value
    record.updated_by = actor_id


def sync_invoice_records(invoice, *, actor_id: int | None = None) -> list[SalesTransactionRecord]:
    """
    Bring the invoice's records in line with its current lines.

    New records take ST references; the caller owns the transaction and
    should wrap the unit of work in with_reference_retry.
    """
    existing = _records_for(invoice)
    used: set[int] = set()
    synced: list[SalesTransactionRecord] = []

    for line, paid in zip(invoice.lines, _paid_shares(invoice)):
        record = _match(line, existing, used)
        if record is None:
            record = SalesTransactionRecord(
                org_id=invoice.org_id,
                sales_invoice_id=invoice.id,
                reference_number=allocate_reference(invoice.org_id, SALES_TRANSACTION_PREFIX),
                created_by=actor_id,
            )
            _apply(record, invoice, line, paid, actor_id)
            db.session.add(record)
            # flushed one at a time so the next allocation sees this reference
            db.session.flush()
        else:
            used.add(record.id)
            _apply(record, invoice, line, paid, actor_id)
        synced.append(record)

    for record in existing:
        if record.id not in used:
            db.session.delete(record)

    db.session.flush()
    return synced


def delete_invoice_records(invoice) -> int:
    """Remove every record of an invoice. Returns how many were deleted."""
    records = _records_for(invoice)
    for record in records:
        db.session.delete(record)
    db.session.flush()
    return len(records)


def records_for_invoice(invoice) -> list[SalesTransactionRecord]:
    return _records_for(invoice)
