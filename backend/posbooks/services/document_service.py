# Overview: Shared header and line handling for sales invoices and proformas; computes totals once at write time.

"""
Document write helpers shared by invoice_service and proforma_service.

Totals are computed here, once, when a document is written:
    line_subtotal = quantity * unit_price
    line_total    = line_subtotal - discount + tax
    total         = subtotal - discount + tax - wht
    balance       = total - paid
    equivalent    = total * exchange_rate
Posting never recomputes them.
"""

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import Currency, Customer, FinancialYear, Product, Store, TaxCode
from ..models.enums import PaymentStatus
from ..validation import ValidationError, parse_decimal, parse_int, parse_lines
from .currency_service import ZERO, document_equivalent, money, to_decimal


HEADER_ACCOUNT_FIELDS = ("receivable_account_id", "discount_allowed_account_id")


def system_currency(org_id: int) -> Currency | None:
    return db.session.query(Currency).filter_by(org_id=org_id, is_default=True).first()


def active_financial_year(org_id: int) -> FinancialYear | None:
    return (
        db.session.query(FinancialYear)
        .filter_by(org_id=org_id, is_active=True)
        .order_by(FinancialYear.start_date.desc())
        .first()
    )


def _require_in_org(model, object_id: int | None, org_id: int, label: str):
    if object_id is None:
        return None
    obj = db.session.query(model).filter_by(id=object_id, org_id=org_id).first()
    if obj is None:
        raise ValidationError(f"{label} {object_id} not found")
    return obj


def apply_header(document, payload: dict, org_id: int, *, creating: bool) -> None:
    """Copy header fields from a parsed payload onto a document."""
    if creating or "store_id" in payload:
        store_id = parse_int(payload.get("store_id"), "store_id", required=True)
        _require_in_org(Store, store_id, org_id, "Store")
        document.store_id = store_id

    if creating or "customer_id" in payload:
        customer_id = parse_int(payload.get("customer_id"), "customer_id", required=True)
        _require_in_org(Customer, customer_id, org_id, "Customer")
        document.customer_id = customer_id

    if creating or "currency_id" in payload:
        currency_id = parse_int(payload.get("currency_id"), "currency_id")
        _require_in_org(Currency, currency_id, org_id, "Currency")
        system = system_currency(org_id)
        document.system_currency_id = system.id if system else None
        document.currency_id = currency_id or document.system_currency_id

    if creating or "exchange_rate" in payload:
        rate = parse_decimal(payload.get("exchange_rate"), "exchange_rate", default="1")
        if rate <= 0:
            raise ValidationError("exchange_rate must be greater than zero")
        document.exchange_rate = rate

    for field in HEADER_ACCOUNT_FIELDS:
        if field in payload:
            setattr(document, field, parse_int(payload.get(field), field))

    for field in ("notes", "terms_conditions"):
        if field in payload:
            setattr(document, field, payload.get(field))

    if creating:
        financial_year = active_financial_year(org_id)
        document.financial_year_id = financial_year.id if financial_year else None


def build_lines(line_cls, raw_lines, org_id: int) -> list:
    """Validate raw lines and turn them into unsaved line objects."""
    parsed = parse_lines(raw_lines)
    lines = []
    for data in parsed:
        _require_in_org(Product, data["product_id"], org_id, "Product")
        _require_in_org(TaxCode, data["sales_tax_id"], org_id, "Tax code")
        _require_in_org(TaxCode, data["wht_tax_id"], org_id, "WHT tax code")
        lines.append(line_cls(org_id=org_id, **data))
    return lines


def copy_lines(source_lines, line_cls, *, keep_stock_details: bool = True) -> list:
    """Clone lines onto another document type (proforma -> invoice, template -> child)."""
    copies = []
    for line in source_lines:
        copies.append(line_cls(
            org_id=line.org_id,
            position=line.position,
            product_id=line.product_id,
            quantity=line.quantity,
            unit_price=line.unit_price,
            discount_amount=line.discount_amount,
            tax_amount=line.tax_amount,
            sales_tax_id=line.sales_tax_id,
            wht_amount=line.wht_amount,
            wht_tax_id=line.wht_tax_id,
            line_subtotal=line.line_subtotal,
            line_total=line.line_total,
            equivalent_amount=line.equivalent_amount,
            batch_number=line.batch_number if keep_stock_details else None,
            expiry_date=line.expiry_date if keep_stock_details else None,
            serial_numbers=list(line.serial_numbers) if keep_stock_details and line.serial_numbers else None,
            notes=line.notes,
        ))
    return copies


def payment_status_for(total, paid) -> PaymentStatus:
    total = to_decimal(total)
    paid = to_decimal(paid)
    if paid <= 0:
        return PaymentStatus.UNPAID
    if paid >= total:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIAL


def compute_totals(document, paid_amount=None) -> None:
    """
    Fill line and header amounts from quantities, prices and line
    discount/tax/wht. paid_amount None keeps the current paid amount.
    """
    rate = to_decimal(document.exchange_rate) or Decimal("1")

    subtotal = discount = tax = wht = ZERO
    for line in document.lines:
        line.line_subtotal = money(to_decimal(line.quantity) * to_decimal(line.unit_price))
        line.line_total = money(line.line_subtotal - to_decimal(line.discount_amount) + to_decimal(line.tax_amount))
        line.equivalent_amount = document_equivalent(line.line_total, rate)
        subtotal += line.line_subtotal
        discount += to_decimal(line.discount_amount)
        tax += to_decimal(line.tax_amount)
        wht += to_decimal(line.wht_amount)

    document.subtotal = money(subtotal)
    document.discount_amount = money(discount)
    document.tax_amount = money(tax)
    document.wht_amount = money(wht)
    document.total_amount = money(subtotal - discount + tax - wht)

    if paid_amount is not None:
        paid = money(paid_amount)
        if paid < 0:
            raise ValidationError("paid_amount must not be negative")
        document.paid_amount = paid
    paid = to_decimal(document.paid_amount)
    if paid > document.total_amount:
        raise ValidationError(
            f"paid_amount {money(paid)} exceeds total_amount {document.total_amount}"
        )
    document.balance_amount = money(document.total_amount - paid)
    document.equivalent_amount = document_equivalent(document.total_amount, rate)
    if hasattr(document, "payment_status"):
        document.payment_status = payment_status_for(document.total_amount, paid)


def scoped_get(model, document_id: int, org_id: int):
    return db.session.query(model).filter_by(id=document_id, org_id=org_id).first()
