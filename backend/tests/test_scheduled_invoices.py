# Overview: Pytest coverage for generating draft invoices from recurring and one-time templates.

import time
from datetime import date, datetime

from conftest import invoice_payload, line

from posbooks.extensions import db
from posbooks.models import FinancialYear, SalesInvoice, SalesTransactionRecord
from posbooks.models.enums import InvoiceStatus, PaymentStatus, RecurringPeriod, ScheduledType
from posbooks.services import invoice_service
from posbooks.services.scheduled_invoice_service import (
    generate_for_organization,
    generate_for_template,
    generate_scheduled_invoices,
    most_recent_due_date,
    within_time_window,
)


def _template(org, store, customer, product, **schedule):
    payload = invoice_payload(store, customer, [
        line(product, "2", "50", batch_number="B100", expiry_date="2027-06-30"),
    ], invoice_date="2026-01-01", due_date="2026-01-15", notes="Monthly service", **schedule)
    return invoice_service.create_invoice(org.id, payload, actor_id=7, actor_name="Scheduler Owner")


def _weekly(org, store, customer, product):
    return _template(org, store, customer, product,
                     scheduled_type="recurring", recurring_period="weekly", recurring_day_of_week="monday")


def _children(db_session, template):
    return (
        db_session.query(SalesInvoice)
        .filter_by(parent_invoice_id=template.id)
        .order_by(SalesInvoice.invoice_date)
        .all()
    )


class TestDueDates:
    def _recurring(self, period, **fields):
        return SalesInvoice(
            scheduled_type=ScheduledType.RECURRING,
            recurring_period=period,
            invoice_date=date(2026, 1, 1),
            **fields,
        )

    def test_weekly_picks_latest_matching_weekday(self, app):
        template = self._recurring(RecurringPeriod.WEEKLY, recurring_day_of_week="monday")
        assert most_recent_due_date(template, date(2026, 1, 21)) == date(2026, 1, 19)
        assert most_recent_due_date(template, date(2026, 1, 19)) == date(2026, 1, 19)

    def test_monthly_clamps_to_month_end(self, app):
        template = self._recurring(RecurringPeriod.MONTHLY, recurring_date=31)
        assert most_recent_due_date(template, date(2026, 2, 15)) == date(2026, 1, 31)
        assert most_recent_due_date(template, date(2026, 3, 1)) == date(2026, 2, 28)

    def test_yearly(self, app):
        template = self._recurring(RecurringPeriod.YEARLY, recurring_date=29, recurring_month="february")
        template.invoice_date = date(2024, 1, 1)
        assert most_recent_due_date(template, date(2026, 3, 1)) == date(2026, 2, 28)
        assert most_recent_due_date(template, date(2026, 2, 1)) == date(2025, 2, 28)

    def test_nothing_due_before_template_date(self, app):
        template = self._recurring(RecurringPeriod.DAILY)
        assert most_recent_due_date(template, date(2025, 12, 31)) is None

    def test_one_time_only_on_its_day(self, app):
        template = SalesInvoice(
            scheduled_type=ScheduledType.ONE_TIME,
            scheduled_date=date(2026, 3, 10),
            invoice_date=date(2026, 3, 1),
        )
        assert most_recent_due_date(template, date(2026, 3, 10)) == date(2026, 3, 10)
        assert most_recent_due_date(template, date(2026, 3, 11)) is None

    def test_not_scheduled(self, app):
        assert most_recent_due_date(SalesInvoice(scheduled_type=ScheduledType.NOT_SCHEDULED), date(2026, 3, 1)) is None


class TestTimeWindow:
    def test_inclusive_bounds(self, app):
        template = SalesInvoice(start_time="09:00", end_time="17:00")
        assert not within_time_window(template, datetime(2026, 1, 5, 8, 59))
        assert within_time_window(template, datetime(2026, 1, 5, 9, 0))
        assert within_time_window(template, datetime(2026, 1, 5, 17, 0))
        assert not within_time_window(template, datetime(2026, 1, 5, 17, 1))

    def test_no_window_means_any_time(self, app):
        assert within_time_window(SalesInvoice(), datetime(2026, 1, 5, 3, 0))

    def test_outside_window_generates_nothing(self, db_session, tenant, store, customer, product_x):
        template = _template(tenant, store, customer, product_x,
                             scheduled_type="recurring", recurring_period="daily",
                             start_time="09:00", end_time="17:00")

        assert generate_for_template(template.id, datetime(2026, 1, 21, 20, 0)) is None
        assert _children(db_session, template) == []


class TestGeneration:
    def test_catch_up_generates_one_child(self, db_session, tenant, store, customer, product_x):
        """Three Mondays passed since the template; only the latest gets a child."""
        template = _weekly(tenant, store, customer, product_x)

        summary = generate_for_organization(tenant.id, datetime(2026, 1, 21, 10, 0))

        assert summary == {"generated": 1, "errors": 0, "skipped": 0}
        children = _children(db_session, template)
        assert [c.invoice_date for c in children] == [date(2026, 1, 19)]

    def test_rerun_is_guarded(self, db_session, tenant, store, customer, product_x):
        template = _weekly(tenant, store, customer, product_x)
        now = datetime(2026, 1, 21, 10, 0)

        generate_for_organization(tenant.id, now)
        summary = generate_for_organization(tenant.id, now)

        assert summary["generated"] == 0
        assert len(_children(db_session, template)) == 1

    def test_next_period_generates_again(self, db_session, tenant, store, customer, product_x):
        template = _weekly(tenant, store, customer, product_x)

        generate_for_organization(tenant.id, datetime(2026, 1, 21, 10, 0))
        generate_for_organization(tenant.id, datetime(2026, 1, 26, 10, 0))

        assert [c.invoice_date for c in _children(db_session, template)] == [date(2026, 1, 19), date(2026, 1, 26)]

    def test_child_is_clean_draft(self, db_session, tenant, store, customer, product_x):
        template = _weekly(tenant, store, customer, product_x)

        child = generate_for_template(template.id, datetime(2026, 1, 21, 10, 0))

        child = db_session.get(SalesInvoice, child.id)
        assert child.status == InvoiceStatus.DRAFT
        assert child.payment_status == PaymentStatus.UNPAID
        assert child.parent_invoice_id == template.id
        assert child.scheduled_type == ScheduledType.NOT_SCHEDULED
        assert child.reference_number != template.reference_number
        assert child.paid_amount == 0
        assert child.total_amount == template.total_amount
        assert child.due_date == date(2026, 2, 2)
        assert child.notes == f"Monthly service\n[Auto-generated from {template.reference_number}]"
        assert child.created_by == 7
        assert [(ln.batch_number, ln.expiry_date, ln.serial_numbers) for ln in child.lines] == [(None, None, None)]
        assert db_session.query(SalesTransactionRecord).filter_by(sales_invoice_id=child.id).count() == 1

    def test_one_time_template(self, db_session, tenant, store, customer, product_x):
        template = _template(tenant, store, customer, product_x,
                             scheduled_type="one_time", scheduled_date="2026-03-10")

        assert generate_for_template(template.id, datetime(2026, 3, 9, 10, 0)) is None
        assert generate_for_template(template.id, datetime(2026, 3, 10, 10, 0)) is not None
        assert generate_for_template(template.id, datetime(2026, 3, 10, 11, 0)) is None

    def test_cancelled_templates_are_ignored(self, db_session, tenant, store, customer, product_x):
        template = _weekly(tenant, store, customer, product_x)
        invoice_service.cancel_invoice(tenant.id, template.id, "customer left")

        summary = generate_for_organization(tenant.id, datetime(2026, 1, 21, 10, 0))

        assert summary["generated"] == 0

    def test_deadline_skips_remaining_templates(self, db_session, tenant, store, customer, product_x):
        _weekly(tenant, store, customer, product_x)
        _weekly(tenant, store, customer, product_x)

        summary = generate_for_organization(tenant.id, datetime(2026, 1, 21, 10, 0), deadline=time.monotonic() - 1)

        assert summary == {"generated": 0, "errors": 0, "skipped": 2}
        assert db_session.query(SalesInvoice).filter(SalesInvoice.parent_invoice_id.isnot(None)).count() == 0

    def test_failure_is_counted_not_raised(self, db_session, tenant, store, customer, product_x, financial_year):
        _weekly(tenant, store, customer, product_x)
        db_session.get(FinancialYear, financial_year.id).is_active = False
        db_session.commit()

        summary = generate_for_organization(tenant.id, datetime(2026, 1, 21, 10, 0))

        assert summary == {"generated": 0, "errors": 1, "skipped": 0}


class TestScheduledRun:
    def test_every_active_organization(self, db_session, tenant, other_org, store, customer, product_x):
        _weekly(tenant, store, customer, product_x)

        totals = generate_scheduled_invoices(datetime(2026, 1, 21, 10, 0))

        assert totals["organizations"] == 2
        assert totals["generated"] == 1
        assert totals["errors"] == 0


class TestLockWait:
    def test_blocked_template_is_skipped_at_deadline(self, file_app, file_seed):
        now = datetime(2026, 1, 21, 10, 0)
        with file_app.app_context():
            template = invoice_service.create_invoice(file_seed['org_id'], {
                "store_id": file_seed['store_id'],
                "customer_id": file_seed['customer_id'],
                "invoice_date": "2026-01-01",
                "exchange_rate": "1",
                "scheduled_type": "recurring",
                "recurring_period": "weekly",
                "recurring_day_of_week": "monday",
                "lines": [{"product_id": file_seed['product_id'], "quantity": "1", "unit_price": "10"}],
            })
            template_id = template.id

            # another writer holds the database write lock
            blocker = db.engine.raw_connection()
            blocker.cursor().execute("BEGIN IMMEDIATE")
            try:
                started = time.monotonic()
                summary = generate_for_organization(file_seed['org_id'], now, deadline=started + 0.5)
                waited = time.monotonic() - started
            finally:
                blocker.rollback()
                blocker.close()

            assert summary == {"generated": 0, "errors": 0, "skipped": 1}
            # the connection's own busy timeout is 30s
            assert waited < 5

            summary = generate_for_organization(file_seed['org_id'], now)
            assert summary == {"generated": 1, "errors": 0, "skipped": 0}
            assert db.session.query(SalesInvoice).filter_by(parent_invoice_id=template_id).count() == 1
