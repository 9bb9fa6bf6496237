# Overview: Service-layer operations for scheduled invoices; generates draft children from recurring and one-time templates.

"""
Scheduled invoice generation.

Templates are sales invoices with scheduled_type recurring or one_time whose
status is not cancelled/rejected and which are not themselves generated
children. Each run works out the most recent due date on or before today;
after downtime that means exactly one child for the latest missed date, not
one per missed period.

Units of work:
- one per template: guard check, child insert and commit together
- one deadline per organization: templates left when it passes are skipped
  and logged, the next run picks them up. A template's lock wait is capped
  by the time left, so one blocked row cannot hold the run past it.
"""

from __future__ import annotations

import calendar
import time
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy.exc import OperationalError

from ..extensions import db
from ..models import Organization, SalesInvoice, SalesInvoiceLine
from ..models.enums import InvoiceStatus, PaymentStatus, RecurringPeriod, ScheduledType
from ..time_utils import as_calendar_date, utcnow
from .concurrency import begin_write_transaction, lock_for_update
from .document_service import active_financial_year, copy_lines
from .reference_service import INVOICE_PREFIX, allocate_reference, with_reference_retry
from .sales_transaction_service import sync_invoice_records


WEEKDAY_INDEX = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

MONTH_INDEX = {name.lower(): index for index, name in enumerate(calendar.month_name) if name}


class SchedulerError(ValueError):
    """A template cannot produce a child invoice."""
    pass


def _clamped(year: int, month: int, day: int) -> date:
    # a template for the 31st falls on the last day of shorter months
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def _minutes(hhmm: str) -> int:
    hour, minute = hhmm.split(":")
    return int(hour) * 60 + int(minute)


def within_time_window(template: SalesInvoice, now: datetime) -> bool:
    if not (template.start_time and template.end_time):
        return True
    current = now.hour * 60 + now.minute
    return _minutes(template.start_time) <= current <= _minutes(template.end_time)


def most_recent_due_date(template: SalesInvoice, today: date) -> date | None:
    """Latest date on or before today the template was due, or None."""
    if template.scheduled_type == ScheduledType.ONE_TIME:
        scheduled = as_calendar_date(template.scheduled_date)
        return scheduled if scheduled == today else None

    if template.scheduled_type != ScheduledType.RECURRING or template.recurring_period is None:
        return None

    period = template.recurring_period
    due = None
    if period == RecurringPeriod.DAILY:
        due = today
    elif period == RecurringPeriod.WEEKLY:
        target = WEEKDAY_INDEX.get((template.recurring_day_of_week or "").lower())
        if target is None:
            return None
        due = today - timedelta(days=(today.weekday() - target) % 7)
    elif period == RecurringPeriod.MONTHLY:
        if not template.recurring_date:
            return None
        due = _clamped(today.year, today.month, template.recurring_date)
        if due > today:
            year, month = (today.year, today.month - 1) if today.month > 1 else (today.year - 1, 12)
            due = _clamped(year, month, template.recurring_date)
    elif period == RecurringPeriod.YEARLY:
        month = MONTH_INDEX.get((template.recurring_month or "").lower())
        if not template.recurring_date or month is None:
            return None
        due = _clamped(today.year, month, template.recurring_date)
        if due > today:
            due = _clamped(today.year - 1, month, template.recurring_date)

    created_on = as_calendar_date(template.invoice_date)
    if due is not None and created_on is not None and due < created_on:
        return None
    return due


def should_generate(template: SalesInvoice, now: datetime) -> date | None:
    """Due date to generate for at this moment, or None."""
    if not within_time_window(template, now):
        return None
    return most_recent_due_date(template, now.date())


def child_exists(template: SalesInvoice, due: date) -> bool:
    return (
        db.session.query(SalesInvoice.id)
        .filter(
            SalesInvoice.org_id == template.org_id,
            SalesInvoice.parent_invoice_id == template.id,
            SalesInvoice.invoice_date >= due,
        )
        .first()
        is not None
    )


def _template_ids(org_id: int) -> list[int]:
    rows = (
        db.session.query(SalesInvoice.id)
        .filter(
            SalesInvoice.org_id == org_id,
            SalesInvoice.scheduled_type.in_([ScheduledType.RECURRING, ScheduledType.ONE_TIME]),
            SalesInvoice.status.notin_([InvoiceStatus.CANCELLED, InvoiceStatus.REJECTED]),
            SalesInvoice.parent_invoice_id.is_(None),
        )
        .order_by(SalesInvoice.id)
        .all()
    )
    return [row[0] for row in rows]


def create_child_invoice(template: SalesInvoice, due: date) -> SalesInvoice:
    """
    Draft copy of a template dated on its due date.

    Financial fields carry over verbatim; batch, serial and expiry data do
    not, they belong to the stock actually sold and are entered on approval.
    """
    financial_year = active_financial_year(template.org_id)
    if financial_year is None:
        raise SchedulerError("Active financial year not found")

    due_date = None
    if template.due_date and template.invoice_date:
        due_date = due + (as_calendar_date(template.due_date) - as_calendar_date(template.invoice_date))
    else:
        due_date = due + timedelta(days=current_app.config.get("DEFAULT_INVOICE_DUE_DAYS", 30))

    marker = f"[Auto-generated from {template.reference_number}]"
    child = SalesInvoice(
        org_id=template.org_id,
        reference_number=allocate_reference(template.org_id, INVOICE_PREFIX),
        invoice_date=due,
        due_date=due_date,
        store_id=template.store_id,
        customer_id=template.customer_id,
        currency_id=template.currency_id,
        system_currency_id=template.system_currency_id,
        exchange_rate=template.exchange_rate,
        financial_year_id=financial_year.id,
        receivable_account_id=template.receivable_account_id,
        discount_allowed_account_id=template.discount_allowed_account_id,
        payment_account_id=template.payment_account_id,
        subtotal=template.subtotal,
        discount_amount=template.discount_amount,
        tax_amount=template.tax_amount,
        wht_amount=template.wht_amount,
        total_amount=template.total_amount,
        paid_amount=0,
        balance_amount=template.total_amount,
        equivalent_amount=template.equivalent_amount,
        status=InvoiceStatus.DRAFT,
        payment_status=PaymentStatus.UNPAID,
        scheduled_type=ScheduledType.NOT_SCHEDULED,
        parent_invoice_id=template.id,
        notes=f"{template.notes}\n{marker}" if template.notes else marker,
        terms_conditions=template.terms_conditions,
        created_by=template.created_by,
        created_by_name=template.created_by_name,
        updated_by=template.created_by,
    )
    child.lines = copy_lines(template.lines, SalesInvoiceLine, keep_stock_details=False)
    db.session.add(child)
    db.session.flush()
    sync_invoice_records(child, actor_id=template.created_by)
    return child


def _time_left(deadline: float | None) -> float | None:
    if deadline is None:
        return None
    return max(deadline - time.monotonic(), 0.0)


def generate_for_template(template_id: int, now: datetime, *, deadline: float | None = None) -> SalesInvoice | None:
    """
    One template, one unit of work. Returns the child or None when nothing was due.

    With a deadline, waiting on locks held by other writers stops when it
    passes and the database's OperationalError propagates.
    """
    def _op():
        begin_write_transaction(lock_timeout=_time_left(deadline))
        template = lock_for_update(db.session.query(SalesInvoice).filter_by(id=template_id)).first()
        if template is None:
            db.session.rollback()
            return None
        due = should_generate(template, now)
        if due is None or child_exists(template, due):
            db.session.rollback()
            return None
        child = create_child_invoice(template, due)
        db.session.commit()
        return child

    return with_reference_retry(_op)


def _skip_remaining(summary: dict, org_id: int, remaining: list[int]) -> None:
    summary["skipped"] += len(remaining)
    current_app.logger.warning(
        "Scheduler deadline passed for org %s; skipping templates %s", org_id, remaining
    )


def generate_for_organization(org_id: int, now: datetime, *, deadline: float | None = None) -> dict:
    summary = {"generated": 0, "errors": 0, "skipped": 0}
    template_ids = _template_ids(org_id)
    db.session.rollback()

    for index, template_id in enumerate(template_ids):
        if deadline is not None and time.monotonic() > deadline:
            _skip_remaining(summary, org_id, template_ids[index:])
            break
        try:
            child = generate_for_template(template_id, now, deadline=deadline)
        except OperationalError:
            db.session.rollback()
            if deadline is not None and time.monotonic() >= deadline:
                _skip_remaining(summary, org_id, template_ids[index:])
                break
            summary["errors"] += 1
            current_app.logger.exception("Failed to generate invoice from template %s (org %s)", template_id, org_id)
            continue
        except Exception:
            db.session.rollback()
            summary["errors"] += 1
            current_app.logger.exception("Failed to generate invoice from template %s (org %s)", template_id, org_id)
            continue
        if child is not None:
            summary["generated"] += 1
            current_app.logger.info(
                "Generated invoice %s from template %s", child.reference_number, template_id
            )
    return summary


def generate_scheduled_invoices(now: datetime | None = None) -> dict:
    """
    Hourly entry point: every active organization, every template.
    One organization's failure never stops the others.
    """
    now = now or utcnow()
    timeout = current_app.config.get("SCHEDULER_TENANT_TIMEOUT_SECONDS", 300)
    totals = {"generated": 0, "errors": 0, "skipped": 0, "organizations": 0}

    org_ids = [row[0] for row in db.session.query(Organization.id).filter_by(is_active=True).order_by(Organization.id).all()]
    db.session.rollback()

    for org_id in org_ids:
        totals["organizations"] += 1
        deadline = time.monotonic() + timeout if timeout else None
        try:
            summary = generate_for_organization(org_id, now, deadline=deadline)
        except Exception:
            db.session.rollback()
            totals["errors"] += 1
            current_app.logger.exception("Scheduled invoice run failed for org %s", org_id)
            continue
        for key in ("generated", "errors", "skipped"):
            totals[key] += summary[key]

    current_app.logger.info(
        "Scheduled invoice run at %s: %s generated, %s errors, %s skipped across %s organizations",
        now.isoformat(timespec="minutes"),
        totals["generated"],
        totals["errors"],
        totals["skipped"],
        totals["organizations"],
    )
    return totals
