# Overview: Flask CLI command groups for bootstrap, scheduled invoice generation and loyalty sweeps.

# backend/posbooks/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "posbooks:create_app".
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--org "Org Name"] [--org-code DEFAULT] [--currency USD]
#   Idempotent: organization, main store, system currency, current financial year,
#   starter chart of accounts and a sales tax code.
#
# Scheduled invoices:
# - python -m flask scheduler run-once [--at 2026-01-05T09:00]
#   Generate due children from recurring/one-time templates for every active org.
# - python -m flask scheduler serve
#   Long-running loop; runs every SCHEDULER_INTERVAL_MINUTES (hourly by default).
#
# Loyalty:
# - python -m flask loyalty birthday-bonuses [--date 2026-03-14]
#   Award birthday bonuses to eligible loyalty customers of every active org.

import logging
import time
from datetime import date

import click
import schedule
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Account, Currency, FinancialYear, Organization, Store, TaxCode
from .models.enums import AccountType
from .services.loyalty_service import award_birthday_bonuses
from .services.scheduled_invoice_service import generate_scheduled_invoices
from .time_utils import as_calendar_date, parse_iso_datetime, utctoday


STARTER_ACCOUNTS = [
    ("1000", "Cash on Hand", AccountType.ASSET),
    ("1100", "Accounts Receivable", AccountType.ASSET),
    ("1200", "Inventory", AccountType.ASSET),
    ("1300", "Withholding Tax Receivable", AccountType.ASSET),
    ("2100", "Sales Tax Payable", AccountType.LIABILITY),
    ("4000", "Sales Revenue", AccountType.INCOME),
    ("5000", "Cost of Goods Sold", AccountType.EXPENSE),
    ("5100", "Discount Allowed", AccountType.EXPENSE),
]


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@click.option('--currency', 'currency_code', default='USD', help='System currency code')
@with_appcontext
def init_system(org_name, org_code, currency_code):
    """
    Seed a tenant so invoices can be posted: organization, store, system
    currency, active financial year for the current calendar year, starter
    chart of accounts and a sales tax code. Safe to run repeatedly.
    """
    click.echo("START Initializing posbooks tenant...")

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    store = db.session.query(Store).filter_by(org_id=org.id).first()
    if not store:
        store = Store(org_id=org.id, name="Main Store", code="MAIN")
        db.session.add(store)
        click.echo("PASS Created store: Main Store")

    currency = db.session.query(Currency).filter_by(org_id=org.id, is_default=True).first()
    if not currency:
        currency = Currency(org_id=org.id, code=currency_code.upper(), name=currency_code.upper(), is_default=True)
        db.session.add(currency)
        click.echo(f"PASS Created system currency: {currency.code}")

    today = utctoday()
    year = db.session.query(FinancialYear).filter_by(org_id=org.id, is_active=True).first()
    if not year:
        year = FinancialYear(
            org_id=org.id,
            name=f"FY {today.year}",
            start_date=date(today.year, 1, 1),
            end_date=date(today.year, 12, 31),
            is_active=True,
        )
        db.session.add(year)
        click.echo(f"PASS Created financial year: {year.name}")

    accounts = {}
    for code, name, account_type in STARTER_ACCOUNTS:
        account = db.session.query(Account).filter_by(org_id=org.id, code=code).first()
        if not account:
            account = Account(org_id=org.id, code=code, name=name, account_type=account_type)
            db.session.add(account)
            click.echo(f"PASS Created account {code} {name}")
        accounts[code] = account
    db.session.flush()

    if not db.session.query(TaxCode).filter_by(org_id=org.id, code="VAT").first():
        db.session.add(TaxCode(
            org_id=org.id,
            code="VAT",
            name="Sales Tax",
            rate=0,
            is_wht=False,
            sales_tax_account_id=accounts["2100"].id,
        ))
        click.echo("PASS Created tax code VAT (set its rate before use)")

    db.session.commit()
    click.echo("DONE Tenant ready.")


@click.group('scheduler')
def scheduler_group():
    """Scheduled invoice generation."""


@scheduler_group.command('run-once')
@click.option('--at', 'at', default=None, help='ISO-8601 datetime to evaluate schedules at (UTC)')
@with_appcontext
def run_once(at):
    """Generate every invoice due now from scheduled templates."""
    now = parse_iso_datetime(at) if at else None
    totals = generate_scheduled_invoices(now)
    click.echo(
        f"DONE {totals['generated']} generated, {totals['errors']} errors, "
        f"{totals['skipped']} skipped across {totals['organizations']} organizations"
    )


def _configure_loop_logging():
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    # Disable noisy loggers
    logging.getLogger('sqlalchemy').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('sqlalchemy.pool').setLevel(logging.WARNING)
    current_app.logger.addHandler(console_handler)
    current_app.logger.setLevel(logging.INFO)


@scheduler_group.command('serve')
@with_appcontext
def serve():
    """Run the generator on a fixed interval until interrupted."""
    _configure_loop_logging()
    interval = current_app.config.get("SCHEDULER_INTERVAL_MINUTES", 60)
    app = current_app._get_current_object()

    def run_generator():
        with app.app_context():
            try:
                generate_scheduled_invoices()
            except Exception:
                app.logger.exception("Scheduled invoice run failed")
            finally:
                db.session.remove()

    app.logger.info("Scheduler started; running every %s minutes", interval)
    run_generator()
    schedule.every(interval).minutes.do(run_generator)

    while True:
        schedule.run_pending()
        time.sleep(30)


@click.group('loyalty')
def loyalty_group():
    """Loyalty program maintenance."""


@loyalty_group.command('birthday-bonuses')
@click.option('--date', 'on_date', default=None, help='Day to evaluate birthdays for (YYYY-MM-DD)')
@with_appcontext
def birthday_bonuses(on_date):
    """Award birthday bonuses for one day across all active organizations."""
    day = as_calendar_date(on_date) if on_date else utctoday()
    awarded = award_birthday_bonuses(day)
    click.echo(f"DONE {awarded} birthday bonuses awarded for {day.isoformat()}")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(scheduler_group)
    app.cli.add_command(loyalty_group)
