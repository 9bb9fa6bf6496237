# Overview: Pytest coverage for the bootstrap, scheduler and loyalty CLI commands.

from conftest import invoice_payload, line

from posbooks.models import Account, Currency, FinancialYear, LoyaltyTransaction, Organization, SalesInvoice, Store, TaxCode
from posbooks.services import invoice_service
from posbooks.time_utils import utctoday


class TestSystemInit:
    def test_seeds_tenant(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=['system', 'init', '--org', 'CLI Org', '--org-code', 'CLI', '--currency', 'eur'])

        assert result.exit_code == 0, result.output
        assert 'DONE Tenant ready.' in result.output
        org = db_session.query(Organization).filter_by(code='CLI').one()
        assert org.name == 'CLI Org'
        assert db_session.query(Store).filter_by(org_id=org.id).count() == 1
        assert db_session.query(Currency).filter_by(org_id=org.id, is_default=True).one().code == 'EUR'
        assert db_session.query(FinancialYear).filter_by(org_id=org.id, is_active=True).one().contains(utctoday())
        assert db_session.query(Account).filter_by(org_id=org.id).count() == 8
        assert db_session.query(TaxCode).filter_by(org_id=org.id, code='VAT').count() == 1

    def test_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        runner.invoke(args=['system', 'init', '--org-code', 'CLI'])
        result = runner.invoke(args=['system', 'init', '--org-code', 'CLI'])

        assert result.exit_code == 0, result.output
        assert 'Using existing organization' in result.output
        assert 'Created account' not in result.output
        assert db_session.query(Organization).filter_by(code='CLI').count() == 1
        assert db_session.query(Account).count() == 8


class TestSchedulerRunOnce:
    def test_generates_due_children(self, app, db_session, tenant, store, customer, product_x):
        template = invoice_service.create_invoice(tenant.id, invoice_payload(
            store, customer, [line(product_x, "1", "50")],
            invoice_date="2026-01-01",
            scheduled_type="recurring",
            recurring_period="weekly",
            recurring_day_of_week="monday",
        ))

        result = app.test_cli_runner().invoke(args=['scheduler', 'run-once', '--at', '2026-01-21T10:00'])

        assert result.exit_code == 0, result.output
        assert 'DONE 1 generated, 0 errors, 0 skipped across 1 organizations' in result.output
        assert db_session.query(SalesInvoice).filter_by(parent_invoice_id=template.id).count() == 1


class TestBirthdayBonuses:
    def test_awards_for_given_date(self, app, db_session, tenant, loyalty_customer):
        today = utctoday().isoformat()

        result = app.test_cli_runner().invoke(args=['loyalty', 'birthday-bonuses', '--date', today])

        assert result.exit_code == 0, result.output
        assert f'DONE 1 birthday bonuses awarded for {today}' in result.output
        assert db_session.query(LoyaltyTransaction).count() == 1
