# Overview: Service-layer operations for sales invoices; CRUD, lifecycle actions and the approval (posting) orchestrator.

"""
Sales invoice service.

approve_invoice() is the single place that decides commit vs. rollback for a
posting. Every sub-step returns a StepOutcome; critical problems raise and
unwind the whole unit of work, warnings are collected on the PostingResult.

Posting order inside one transaction:
    1. eager stock validation (every problem, one error)
    2. stock allocation under row locks
    3. ledger entries
    4. customer balances
    5. loyalty (savepoint, never fatal)
    6. price history
    7. sales transaction records
"""

from __future__ import annotations

import uuid
from datetime import timedelta

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Customer, PriceHistory, SalesInvoice, SalesInvoiceLine
from ..models.enums import InvoiceStatus, LedgerSource, PaymentStatus, RecurringPeriod, ScheduledType
from ..time_utils import as_calendar_date, utcnow, utctoday
from ..validation import NotFoundError, ValidationError, parse_date, parse_enum, parse_int
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .currency_service import equivalent, to_decimal
from .document_service import (
    active_financial_year,
    apply_header,
    build_lines,
    compute_totals,
    scoped_get,
    system_currency,
)
from .ledger_service import LedgerPostingError, entries_for_group, post_invoice_entries
from .lifecycle_service import (
    LifecycleError,
    flag_overdue_invoices,
    require_invoice_draft,
    require_invoice_transition,
)
from .loyalty_service import accrue_for_invoice
from .outcome import PostingContext, PostingResult, StepOutcome
from .reference_service import INVOICE_PREFIX, allocate_reference, with_reference_retry
from .sales_transaction_service import delete_invoice_records, sync_invoice_records
from .stock_service import allocate_invoice_stock, movements_for, validate_invoice_stock


class PostingContextError(ValueError):
    """The invoice cannot be posted in its current context (year, currency, customer, lines)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


SCHEDULE_FIELDS = (
    "scheduled_type",
    "recurring_period",
    "scheduled_date",
    "recurring_day_of_week",
    "recurring_date",
    "recurring_month",
    "start_time",
    "end_time",
)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
MONTHS = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)


def _parse_hhmm(value, field: str) -> str | None:
    if value in (None, ""):
        return None
    text = str(value).strip()
    parts = text.split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts):
        raise ValidationError(f"{field} must be HH:MM")
    hour, minute = int(parts[0]), int(parts[1])
    if hour > 23 or minute > 59:
        raise ValidationError(f"{field} must be HH:MM")
    return f"{hour:02d}:{minute:02d}"


def _apply_schedule(invoice: SalesInvoice, payload: dict) -> None:
    if not any(field in payload for field in SCHEDULE_FIELDS):
        return
    invoice.scheduled_type = parse_enum(
        ScheduledType, payload.get("scheduled_type"), "scheduled_type", default=ScheduledType.NOT_SCHEDULED
    )
    invoice.recurring_period = parse_enum(RecurringPeriod, payload.get("recurring_period"), "recurring_period")
    invoice.scheduled_date = parse_date(payload.get("scheduled_date"), "scheduled_date")

    day_of_week = payload.get("recurring_day_of_week")
    if day_of_week:
        day_of_week = str(day_of_week).strip().lower()
        if day_of_week not in WEEKDAYS:
            raise ValidationError(f"recurring_day_of_week must be one of: {', '.join(WEEKDAYS)}")
    invoice.recurring_day_of_week = day_of_week or None

    recurring_date = parse_int(payload.get("recurring_date"), "recurring_date")
    if recurring_date is not None and not 1 <= recurring_date <= 31:
        raise ValidationError("recurring_date must be between 1 and 31")
    invoice.recurring_date = recurring_date

    month = payload.get("recurring_month")
    if month:
        month = str(month).strip().lower()
        if month not in MONTHS:
            raise ValidationError(f"recurring_month must be one of: {', '.join(MONTHS)}")
    invoice.recurring_month = month or None

    invoice.start_time = _parse_hhmm(payload.get("start_time"), "start_time")
    invoice.end_time = _parse_hhmm(payload.get("end_time"), "end_time")

    if invoice.scheduled_type == ScheduledType.RECURRING and invoice.recurring_period is None:
        raise ValidationError("recurring_period is required for recurring invoices")
    if invoice.scheduled_type == ScheduledType.ONE_TIME and invoice.scheduled_date is None:
        raise ValidationError("scheduled_date is required for one-time scheduled invoices")


def _apply_invoice_fields(invoice: SalesInvoice, payload: dict, org_id: int, *, creating: bool) -> None:
    apply_header(invoice, payload, org_id, creating=creating)

    if creating or "invoice_date" in payload:
        invoice.invoice_date = parse_date(payload.get("invoice_date"), "invoice_date") or utctoday()
    if creating or "due_date" in payload:
        due_date = parse_date(payload.get("due_date"), "due_date")
        if due_date is None:
            due_days = current_app.config.get("DEFAULT_INVOICE_DUE_DAYS", 30)
            due_date = invoice.invoice_date + timedelta(days=due_days)
        invoice.due_date = due_date
    if "payment_account_id" in payload:
        invoice.payment_account_id = parse_int(payload.get("payment_account_id"), "payment_account_id")

    _apply_schedule(invoice, payload)


def get_invoice(org_id: int, invoice_id: int) -> SalesInvoice:
    flag_overdue_invoices(org_id)
    invoice = scoped_get(SalesInvoice, invoice_id, org_id)
    if invoice is None:
        raise NotFoundError("Sales invoice not found")
    db.session.commit()
    return invoice


def list_invoices(
    org_id: int,
    *,
    status=None,
    customer_id: int | None = None,
    store_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[SalesInvoice], int]:
    flag_overdue_invoices(org_id)
    db.session.commit()

    query = db.session.query(SalesInvoice).filter(SalesInvoice.org_id == org_id)
    if status:
        query = query.filter(SalesInvoice.status == InvoiceStatus.parse(status))
    if customer_id:
        query = query.filter(SalesInvoice.customer_id == customer_id)
    if store_id:
        query = query.filter(SalesInvoice.store_id == store_id)

    total = query.count()
    rows = (
        query.order_by(SalesInvoice.invoice_date.desc(), SalesInvoice.id.desc())
        .limit(min(max(limit, 1), 500))
        .offset(max(offset, 0))
        .all()
    )
    return rows, total


def create_invoice(
    org_id: int,
    payload: dict,
    *,
    actor_id: int | None = None,
    actor_name: str | None = None,
) -> SalesInvoice:
    """Create a draft invoice with its lines and sales transaction records."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    def _op():
        invoice = SalesInvoice(
            org_id=org_id,
            status=InvoiceStatus.DRAFT,
            created_by=actor_id,
            created_by_name=actor_name,
        )
        _apply_invoice_fields(invoice, payload, org_id, creating=True)
        invoice.lines = build_lines(SalesInvoiceLine, payload.get("lines"), org_id)
        compute_totals(invoice, payload.get("paid_amount", 0))
        invoice.reference_number = allocate_reference(org_id, INVOICE_PREFIX)

        db.session.add(invoice)
        db.session.flush()
        sync_invoice_records(invoice, actor_id=actor_id)
        db.session.commit()
        return invoice

    return with_reference_retry(_op)


def update_invoice(org_id: int, invoice_id: int, payload: dict, *, actor_id: int | None = None) -> SalesInvoice:
    """Structural edit of a draft invoice. Lines, when sent, replace the current set."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    def _op():
        invoice = lock_for_update(
            db.session.query(SalesInvoice).filter_by(id=invoice_id, org_id=org_id)
        ).first()
        if invoice is None:
            raise NotFoundError("Sales invoice not found")
        require_invoice_draft(invoice)

        _apply_invoice_fields(invoice, payload, org_id, creating=False)
        if "lines" in payload:
            invoice.lines = build_lines(SalesInvoiceLine, payload.get("lines"), org_id)
        compute_totals(invoice, payload.get("paid_amount"))
        invoice.updated_by = actor_id

        db.session.flush()
        sync_invoice_records(invoice, actor_id=actor_id)
        db.session.commit()
        return invoice

    try:
        return with_reference_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def delete_invoice(org_id: int, invoice_id: int) -> None:
    invoice = scoped_get(SalesInvoice, invoice_id, org_id)
    if invoice is None:
        raise NotFoundError("Sales invoice not found")
    require_invoice_draft(invoice)

    try:
        delete_invoice_records(invoice)
        # generated children outlive their template
        db.session.execute(
            update(SalesInvoice)
            .where(SalesInvoice.parent_invoice_id == invoice.id)
            .values(parent_invoice_id=None)
            .execution_options(synchronize_session=False)
        )
        db.session.delete(invoice)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _status_change(org_id: int, invoice_id: int, to_status, apply, *, actor_id: int | None) -> SalesInvoice:
    def _op():
        invoice = lock_for_update(
            db.session.query(SalesInvoice).filter_by(id=invoice_id, org_id=org_id)
        ).first()
        if invoice is None:
            raise NotFoundError("Sales invoice not found")
        require_invoice_transition(invoice, to_status)
        invoice.status = to_status
        invoice.updated_by = actor_id
        apply(invoice)
        sync_invoice_records(invoice, actor_id=actor_id)
        db.session.commit()
        return invoice

    try:
        return with_reference_retry(_op)
    except Exception:
        db.session.rollback()
        raise


def send_invoice(org_id: int, invoice_id: int, *, actor_id: int | None = None) -> SalesInvoice:
    def _apply(invoice):
        invoice.sent_by = actor_id
        invoice.sent_at = utcnow()
    return _status_change(org_id, invoice_id, InvoiceStatus.SENT, _apply, actor_id=actor_id)


def reject_invoice(org_id: int, invoice_id: int, reason: str | None, *, actor_id: int | None = None) -> SalesInvoice:
    if not reason or not str(reason).strip():
        raise ValidationError("rejection_reason is required")

    def _apply(invoice):
        invoice.rejected_by = actor_id
        invoice.rejected_at = utcnow()
        invoice.rejection_reason = str(reason).strip()
    return _status_change(org_id, invoice_id, InvoiceStatus.REJECTED, _apply, actor_id=actor_id)


def cancel_invoice(org_id: int, invoice_id: int, reason: str | None, *, actor_id: int | None = None) -> SalesInvoice:
    if not reason or not str(reason).strip():
        raise ValidationError("cancellation_reason is required")

    def _apply(invoice):
        # a settled sale is reversed by a refund, not a cancellation
        if invoice.payment_status == PaymentStatus.PAID:
            raise LifecycleError(
                "Cannot cancel a paid invoice",
                {"invoice_id": invoice.id, "payment_status": invoice.payment_status.value},
            )
        invoice.cancelled_by = actor_id
        invoice.cancelled_at = utcnow()
        invoice.cancellation_reason = str(reason).strip()
    return _status_change(org_id, invoice_id, InvoiceStatus.CANCELLED, _apply, actor_id=actor_id)


# ---------------------------------------------------------------------------
# Posting
# ---------------------------------------------------------------------------

def build_posting_context(invoice: SalesInvoice, *, actor_id=None, actor_name=None) -> PostingContext:
    """Resolve everything the posting needs once, or refuse to post."""
    financial_year = active_financial_year(invoice.org_id)
    if financial_year is None:
        raise PostingContextError("No active financial year found for this organization")

    currency = system_currency(invoice.org_id)
    if currency is None:
        raise PostingContextError("No system default currency configured for this organization")

    if invoice.customer is None:
        raise PostingContextError("Invoice has no customer", details={"invoice_id": invoice.id})

    if not invoice.lines:
        raise PostingContextError("Invoice has no lines", details={"invoice_id": invoice.id})

    if to_decimal(invoice.exchange_rate) <= 0:
        raise PostingContextError("Invoice exchange_rate must be greater than zero")

    invoice_date = as_calendar_date(invoice.invoice_date)
    if not financial_year.contains(invoice_date):
        raise PostingContextError(
            f"Invoice date {invoice_date.isoformat()} is outside the active financial year "
            f"{financial_year.name} ({financial_year.start_date.isoformat()} to {financial_year.end_date.isoformat()})",
            details={"invoice_date": invoice_date.isoformat(), "financial_year_id": financial_year.id},
        )

    return PostingContext(
        org_id=invoice.org_id,
        financial_year=financial_year,
        system_currency=currency,
        source=LedgerSource.SALES_INVOICE,
        posting_group_id=str(uuid.uuid4()),
        posting_date=invoice_date,
        actor_id=actor_id,
        actor_name=actor_name,
        balance_tolerance=current_app.config.get("BALANCE_TOLERANCE", "0.01"),
    )


def _update_customer_balances(invoice: SalesInvoice) -> bool:
    """Debt and account balance grow by the unpaid part, in system currency."""
    balance = to_decimal(invoice.balance_amount)
    if balance <= 0:
        return False
    amount = equivalent(balance, invoice.exchange_rate, invoice.total_amount, invoice.equivalent_amount)
    db.session.execute(
        update(Customer)
        .where(Customer.id == invoice.customer_id, Customer.org_id == invoice.org_id)
        .values(
            debt_balance=Customer.debt_balance + amount,
            account_balance=Customer.account_balance + amount,
        )
        .execution_options(synchronize_session=False)
    )
    return True


def _record_price_history(invoice: SalesInvoice, ctx: PostingContext) -> StepOutcome:
    outcome = StepOutcome("Price History")
    for line in invoice.lines:
        product = line.product
        if product is None:
            outcome.warn("Price History", f"line {line.position} has no product")
            continue
        old_price = to_decimal(product.selling_price)
        new_price = to_decimal(line.unit_price)
        if new_price <= 0 or new_price == old_price:
            continue
        entry = PriceHistory(
            org_id=invoice.org_id,
            product_id=product.id,
            source=ctx.source,
            source_id=invoice.id,
            reference_number=invoice.reference_number,
            old_selling_price=old_price,
            new_selling_price=new_price,
            quantity=line.quantity,
            currency_id=invoice.currency_id,
            exchange_rate=invoice.exchange_rate,
            created_by=ctx.actor_id,
        )
        db.session.add(entry)
        outcome.records.append(entry)
    db.session.flush()
    return outcome


def post_invoice(invoice: SalesInvoice, ctx: PostingContext) -> PostingResult:
    """Apply every posting effect to the session. Raises on anything critical."""
    result = PostingResult(invoice=invoice, posting_group_id=ctx.posting_group_id)

    validate_invoice_stock(invoice)
    stock = allocate_invoice_stock(invoice, actor_id=ctx.actor_id, validated=True)
    result.stock_updates = stock.records
    result.product_transactions = movements_for(invoice)
    result.absorb(stock)

    ledger = post_invoice_entries(invoice, ctx)
    if not ledger.ok:
        raise LedgerPostingError(
            "Critical General Ledger error: " + "; ".join(ledger.critical),
            details={"errors": ledger.critical},
        )
    result.ledger_entries = ledger.records
    result.absorb(ledger)

    result.customer_updated = _update_customer_balances(invoice)

    loyalty = accrue_for_invoice(invoice, ctx)
    result.loyalty_transactions = loyalty.records
    result.absorb(loyalty)

    prices = _record_price_history(invoice, ctx)
    result.price_history = prices.records
    result.absorb(prices)

    invoice.status = InvoiceStatus.APPROVED
    invoice.posting_group_id = ctx.posting_group_id
    invoice.approved_by = ctx.actor_id
    invoice.approved_at = utcnow()
    invoice.updated_by = ctx.actor_id

    result.sales_transactions = sync_invoice_records(invoice, actor_id=ctx.actor_id)
    return result


def approve_invoice(
    org_id: int,
    invoice_id: int,
    *,
    actor_id: int | None = None,
    actor_name: str | None = None,
) -> PostingResult:
    """
    Approve and post an invoice exactly once.

    Approving an already-posted invoice returns its existing posting with
    already_posted=True and changes nothing.
    """
    def _op():
        begin_write_transaction()
        invoice = lock_for_update(
            db.session.query(SalesInvoice).filter_by(id=invoice_id, org_id=org_id)
        ).first()
        if invoice is None:
            raise NotFoundError("Sales invoice not found")

        if invoice.status == InvoiceStatus.APPROVED and invoice.posting_group_id:
            result = PostingResult(
                invoice=invoice,
                posting_group_id=invoice.posting_group_id,
                already_posted=True,
                ledger_entries=entries_for_group(org_id, invoice.posting_group_id),
            )
            db.session.commit()
            return result

        require_invoice_transition(invoice, InvoiceStatus.APPROVED)
        ctx = build_posting_context(invoice, actor_id=actor_id, actor_name=actor_name)
        result = post_invoice(invoice, ctx)
        db.session.commit()

        current_app.logger.info(
            "Posted invoice %s (group %s, %s entries, %s warnings)",
            invoice.reference_number,
            ctx.posting_group_id,
            len(result.ledger_entries),
            len(result.warnings),
        )
        return result

    try:
        return with_reference_retry(lambda: run_with_retry(_op))
    except Exception:
        db.session.rollback()
        raise
