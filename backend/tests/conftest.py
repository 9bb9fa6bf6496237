"""
Pytest fixtures for posbooks backend tests.

Provides an in-memory database, a tenant with a starter chart of accounts,
stocked products, customers and loyalty profiles, plus payload helpers for
creating invoices and proformas.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from posbooks import create_app
from posbooks.extensions import db
from posbooks.models import (
    Account, Currency, Customer, FinancialYear, LoyaltyConfig, Organization,
    Product, ProductBatch, ProductSerialNumber, ProductStore, Store, TaxCode,
)
from posbooks.models.enums import AccountType, GainRateType, ProductType
from posbooks.time_utils import utctoday


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'REFERENCE_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def file_app(tmp_path):
    """App on a file database; each thread gets its own connection."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'posbooks.sqlite3'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30}},
        'REFERENCE_RETRY_ATTEMPTS': 25,
        'REFERENCE_RETRY_BACKOFF': 0.01,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()
        db.engine.dispose()


@pytest.fixture(scope='function')
def file_seed(file_app):
    """Ids of a postable tenant in file_app's database."""
    today = utctoday()
    with file_app.app_context():
        org = Organization(name="Threaded Co", code="THR", is_active=True)
        db.session.add(org)
        db.session.flush()
        store = Store(org_id=org.id, name="Main Store", code="MAIN")
        customer = Customer(org_id=org.id, full_name="Walk-in")
        product = Product(org_id=org.id, code="P-1", name="Widget",
                          average_cost=Decimal("4"), selling_price=Decimal("10"))
        db.session.add_all([
            store, customer, product,
            Currency(org_id=org.id, code="USD", name="US Dollar", symbol="$", is_default=True),
            FinancialYear(org_id=org.id, name=f"FY {today.year}", start_date=date(today.year, 1, 1),
                          end_date=date(today.year, 12, 31), is_active=True),
        ])
        db.session.commit()
        return {'org_id': org.id, 'store_id': store.id,
                'customer_id': customer.id, 'product_id': product.id}


@pytest.fixture(scope='function')
def org(db_session):
    org = Organization(name="Acme Trading", code="ACME", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def other_org(db_session):
    org = Organization(name="Beta Supplies", code="BETA", is_active=True)
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def store(db_session, org):
    store = Store(org_id=org.id, name="Main Store", code="MAIN")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def currency(db_session, org):
    """System (default) currency of the tenant."""
    currency = Currency(org_id=org.id, code="USD", name="US Dollar", symbol="$", is_default=True)
    db_session.add(currency)
    db_session.commit()
    return currency


@pytest.fixture(scope='function')
def financial_year(db_session, org):
    """Active financial year covering the current calendar year."""
    today = utctoday()
    year = FinancialYear(
        org_id=org.id,
        name=f"FY {today.year}",
        start_date=date(today.year, 1, 1),
        end_date=date(today.year, 12, 31),
        is_active=True,
    )
    db_session.add(year)
    db_session.commit()
    return year


@pytest.fixture(scope='function')
def accounts(db_session, org):
    """Starter chart of accounts keyed by a short name."""
    rows = {
        "cash": ("1000", "Cash on Hand", AccountType.ASSET),
        "receivable": ("1100", "Accounts Receivable", AccountType.ASSET),
        "inventory": ("1200", "Inventory", AccountType.ASSET),
        "wht": ("1300", "Withholding Tax Receivable", AccountType.ASSET),
        "tax": ("2100", "Sales Tax Payable", AccountType.LIABILITY),
        "revenue_goods": ("4000", "Sales Revenue - Goods", AccountType.INCOME),
        "revenue_spares": ("4010", "Sales Revenue - Spares", AccountType.INCOME),
        "cogs": ("5000", "Cost of Goods Sold", AccountType.EXPENSE),
        "discount": ("5100", "Discount Allowed", AccountType.EXPENSE),
    }
    created = {}
    for key, (code, name, account_type) in rows.items():
        account = Account(org_id=org.id, code=code, name=name, account_type=account_type)
        db_session.add(account)
        created[key] = account
    db_session.commit()
    return created


@pytest.fixture(scope='function')
def vat(db_session, org, accounts):
    tax = TaxCode(
        org_id=org.id,
        code="VAT",
        name="Sales Tax",
        rate=Decimal("10"),
        is_wht=False,
        sales_tax_account_id=accounts["tax"].id,
    )
    db_session.add(tax)
    db_session.commit()
    return tax


def make_product(db_session, org, store, accounts, *, code, name, average_cost="4", selling_price="45",
                 income_key="revenue_goods", quantity="100", product_type=ProductType.GOODS):
    """Product with its own accounts and bulk stock in the given store."""
    product = Product(
        org_id=org.id,
        code=code,
        name=name,
        product_type=product_type,
        average_cost=Decimal(average_cost),
        selling_price=Decimal(selling_price),
        cogs_account_id=accounts["cogs"].id,
        asset_account_id=accounts["inventory"].id,
        income_account_id=accounts[income_key].id,
    )
    db_session.add(product)
    db_session.flush()
    if product_type == ProductType.GOODS:
        db_session.add(ProductStore(
            org_id=org.id, product_id=product.id, store_id=store.id, quantity=Decimal(quantity)
        ))
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_x(db_session, org, store, accounts):
    return make_product(db_session, org, store, accounts, code="X-100", name="Widget X",
                        average_cost="4", selling_price="45", income_key="revenue_goods")


@pytest.fixture(scope='function')
def product_y(db_session, org, store, accounts):
    return make_product(db_session, org, store, accounts, code="Y-200", name="Spare Y",
                        average_cost="6", selling_price="100", income_key="revenue_spares")


@pytest.fixture(scope='function')
def batch_b100(db_session, org, store, product_x):
    batch = ProductBatch(
        org_id=org.id,
        product_id=product_x.id,
        store_id=store.id,
        batch_number="B100",
        expiry_date=date(2027, 6, 30),
        current_quantity=Decimal("5"),
    )
    db_session.add(batch)
    db_session.commit()
    return batch


@pytest.fixture(scope='function')
def serials_x(db_session, org, store, product_x):
    units = []
    for serial in ("SN-1", "SN-2", "SN-3"):
        unit = ProductSerialNumber(
            org_id=org.id, product_id=product_x.id, store_id=store.id, serial_number=serial
        )
        db_session.add(unit)
        units.append(unit)
    db_session.commit()
    return units


@pytest.fixture(scope='function')
def customer(db_session, org, accounts):
    customer = Customer(
        org_id=org.id,
        code="C-001",
        full_name="Jane Buyer",
        default_receivable_account_id=accounts["receivable"].id,
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def loyalty_config(db_session, org):
    """1% of the system-currency subtotal, 50 welcome points, 10 birthday points."""
    config = LoyaltyConfig(
        org_id=org.id,
        name="Standard",
        code="STD",
        welcome_bonus_points=50,
        birthday_bonus_points=10,
        gain_rate_lower_limit=Decimal("0"),
        gain_rate_upper_limit=Decimal("1000000"),
        gain_rate_type=GainRateType.PERCENTAGE,
        gain_rate_value=Decimal("1"),
    )
    db_session.add(config)
    db_session.commit()
    return config


@pytest.fixture(scope='function')
def loyalty_customer(db_session, org, accounts, loyalty_config):
    """Loyalty member whose birthday is today (leap-safe year)."""
    customer = Customer(
        org_id=org.id,
        code="C-LOYAL",
        full_name="Larry Loyal",
        birthday=utctoday().replace(year=2000),
        default_receivable_account_id=accounts["receivable"].id,
        loyalty_card_number="CARD-0001",
        loyalty_config_id=loyalty_config.id,
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def tenant(org, store, currency, financial_year, accounts, vat):
    """A tenant that can post invoices."""
    return org


@pytest.fixture(scope='function')
def headers(org):
    return {'X-Org-Id': str(org.id), 'X-User-Id': '7', 'X-User-Name': 'Test Clerk'}


def line(product, quantity="1", unit_price="10", **extra) -> dict:
    data = {"product_id": product.id, "quantity": quantity, "unit_price": unit_price}
    data.update(extra)
    return data


def invoice_payload(store, customer, lines, **overrides) -> dict:
    payload = {
        "store_id": store.id,
        "customer_id": customer.id,
        "invoice_date": utctoday().isoformat(),
        "exchange_rate": "1",
        "lines": lines,
    }
    payload.update(overrides)
    return payload


def proforma_payload(store, customer, lines, **overrides) -> dict:
    today = utctoday()
    payload = {
        "store_id": store.id,
        "customer_id": customer.id,
        "proforma_date": today.isoformat(),
        "valid_until": (today + timedelta(days=30)).isoformat(),
        "lines": lines,
    }
    payload.update(overrides)
    return payload
