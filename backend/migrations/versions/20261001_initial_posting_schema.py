"""Initial posting schema: tenancy, chart of accounts, inventory, loyalty, documents

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _money(name, nullable=False, default="0"):
    return sa.Column(name, sa.Numeric(18, 4), nullable=nullable, server_default=sa.text(default))


def _rate(name):
    return sa.Column(name, sa.Numeric(18, 6), nullable=False, server_default=sa.text("1"))


def _now(name):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False)


def _document_header_columns():
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("reference_number", sa.String(64), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("currency_id", sa.Integer(), nullable=True),
        sa.Column("system_currency_id", sa.Integer(), nullable=True),
        sa.Column("financial_year_id", sa.Integer(), nullable=True),
        sa.Column("receivable_account_id", sa.Integer(), nullable=True),
        sa.Column("discount_allowed_account_id", sa.Integer(), nullable=True),
        _rate("exchange_rate"),
        _money("subtotal"),
        _money("discount_amount"),
        _money("tax_amount"),
        _money("wht_amount"),
        _money("total_amount"),
        _money("paid_amount"),
        _money("balance_amount"),
        _money("equivalent_amount"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("terms_conditions", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_by_name", sa.String(255), nullable=True),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        sa.Column("sent_by", sa.Integer(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_by", sa.Integer(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.String(255), nullable=True),
        _now("created_at"),
        _now("updated_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["currency_id"], ["currencies.id"]),
        sa.ForeignKeyConstraint(["system_currency_id"], ["currencies.id"]),
        sa.ForeignKeyConstraint(["financial_year_id"], ["financial_years.id"]),
        sa.ForeignKeyConstraint(["receivable_account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["discount_allowed_account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
    ]


def _document_line_columns():
    return [
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("sales_tax_id", sa.Integer(), nullable=True),
        sa.Column("wht_tax_id", sa.Integer(), nullable=True),
        _money("quantity"),
        _money("unit_price"),
        _money("discount_amount"),
        _money("tax_amount"),
        _money("wht_amount"),
        _money("line_subtotal"),
        _money("line_total"),
        _money("equivalent_amount"),
        sa.Column("batch_number", sa.String(64), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("serial_numbers", sa.JSON(), nullable=True),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["sales_tax_id"], ["tax_codes.id"]),
        sa.ForeignKeyConstraint(["wht_tax_id"], ["tax_codes.id"]),
        sa.PrimaryKeyConstraint("id"),
    ]


def upgrade():
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _now("created_at"),
        _now("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("organizations", schema=None) as batch_op:
        batch_op.create_index("ix_organizations_code", ["code"], unique=True)
        batch_op.create_index("ix_organizations_is_active", ["is_active"], unique=False)

    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _now("created_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "name", name="uq_stores_org_name"),
        sa.UniqueConstraint("org_id", "code", name="uq_stores_org_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stores", schema=None) as batch_op:
        batch_op.create_index("ix_stores_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_stores_code", ["code"], unique=False)

    op.create_table(
        "currencies",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(8), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("symbol", sa.String(8), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "code", name="uq_currencies_org_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("currencies", schema=None) as batch_op:
        batch_op.create_index("ix_currencies_org_id", ["org_id"], unique=False)

    op.create_table(
        "financial_years",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "name", name="uq_financial_years_org_name"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("financial_years", schema=None) as batch_op:
        batch_op.create_index("ix_financial_years_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_financial_years_is_active", ["is_active"], unique=False)

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("account_type", sa.String(16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "code", name="uq_accounts_org_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("accounts", schema=None) as batch_op:
        batch_op.create_index("ix_accounts_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_accounts_account_type", ["account_type"], unique=False)

    op.create_table(
        "tax_codes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(32), nullable=False),
        sa.Column("name", sa.String(128), nullable=True),
        sa.Column("rate", sa.Numeric(9, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("is_wht", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("sales_tax_account_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["sales_tax_account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "code", name="uq_tax_codes_org_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("tax_codes", schema=None) as batch_op:
        batch_op.create_index("ix_tax_codes_org_id", ["org_id"], unique=False)

    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("financial_year_id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("posting_group_id", sa.String(36), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("source_id", sa.Integer(), nullable=False),
        sa.Column("reference_number", sa.String(64), nullable=True),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("nature", sa.String(8), nullable=False),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("currency_id", sa.Integer(), nullable=True),
        _rate("exchange_rate"),
        _money("debit"),
        _money("credit"),
        _money("debit_equivalent"),
        _money("credit_equivalent"),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _now("created_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["financial_year_id"], ["financial_years.id"]),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["currency_id"], ["currencies.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ledger_entries", schema=None) as batch_op:
        batch_op.create_index("ix_ledger_entries_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_ledger_entries_financial_year_id", ["financial_year_id"], unique=False)
        batch_op.create_index("ix_ledger_entries_account_id", ["account_id"], unique=False)
        batch_op.create_index("ix_ledger_entries_org_group", ["org_id", "posting_group_id"], unique=False)
        batch_op.create_index("ix_ledger_entries_source", ["source", "source_id"], unique=False)

    op.create_table(
        "product_categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("cogs_account_id", sa.Integer(), nullable=True),
        sa.Column("asset_account_id", sa.Integer(), nullable=True),
        sa.Column("income_account_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["cogs_account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["asset_account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["income_account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "name", name="uq_product_categories_org_name"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("product_categories", schema=None) as batch_op:
        batch_op.create_index("ix_product_categories_org_id", ["org_id"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("code", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("product_type", sa.String(16), nullable=False, server_default="goods"),
        sa.Column("unit", sa.String(16), nullable=True),
        _money("average_cost"),
        _money("selling_price"),
        sa.Column("cogs_account_id", sa.Integer(), nullable=True),
        sa.Column("asset_account_id", sa.Integer(), nullable=True),
        sa.Column("income_account_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _now("created_at"),
        _now("updated_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["category_id"], ["product_categories.id"]),
        sa.ForeignKeyConstraint(["cogs_account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["asset_account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["income_account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "code", name="uq_products_org_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_products_category_id", ["category_id"], unique=False)
        batch_op.create_index("ix_products_org_name", ["org_id", "name"], unique=False)

    op.create_table(
        "product_stores",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        _money("quantity"),
        _now("updated_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "store_id", name="uq_product_stores_product_store"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("product_stores", schema=None) as batch_op:
        batch_op.create_index("ix_product_stores_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_product_stores_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_product_stores_store_id", ["store_id"], unique=False)

    op.create_table(
        "product_batches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("batch_number", sa.String(64), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        _money("current_quantity"),
        _money("total_sold"),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "store_id", "batch_number", name="uq_product_batches_product_store_batch"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("product_batches", schema=None) as batch_op:
        batch_op.create_index("ix_product_batches_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_product_batches_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_product_batches_store_id", ["store_id"], unique=False)

    op.create_table(
        "product_serial_numbers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("serial_number", sa.String(128), nullable=False),
        sa.Column("current_quantity", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("sold_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sales_invoice_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "store_id", "serial_number", name="uq_product_serials_product_store_serial"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("product_serial_numbers", schema=None) as batch_op:
        batch_op.create_index("ix_product_serial_numbers_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_product_serial_numbers_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_product_serial_numbers_store_id", ["store_id"], unique=False)

    op.create_table(
        "product_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("source_id", sa.Integer(), nullable=False),
        sa.Column("reference_number", sa.String(64), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        _money("quantity_out"),
        _money("unit_price"),
        _money("unit_price_equivalent"),
        _money("average_cost"),
        sa.Column("batch_number", sa.String(64), nullable=True),
        sa.Column("serial_numbers", sa.JSON(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _now("created_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("product_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_product_transactions_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_product_transactions_product_store", ["product_id", "store_id"], unique=False)
        batch_op.create_index("ix_product_transactions_source", ["source", "source_id"], unique=False)

    op.create_table(
        "price_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(32), nullable=False),
        sa.Column("source_id", sa.Integer(), nullable=False),
        sa.Column("reference_number", sa.String(64), nullable=True),
        _money("old_selling_price"),
        _money("new_selling_price"),
        _money("quantity"),
        sa.Column("currency_id", sa.Integer(), nullable=True),
        _rate("exchange_rate"),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _now("created_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["currency_id"], ["currencies.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("price_history", schema=None) as batch_op:
        batch_op.create_index("ix_price_history_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_price_history_product_id", ["product_id"], unique=False)

    op.create_table(
        "loyalty_configs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("code", sa.String(20), nullable=False),
        sa.Column("allow_gaining_cash_sales", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("allow_gaining_credit_sales", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("welcome_bonus_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("birthday_bonus_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _money("gain_rate_lower_limit"),
        _money("gain_rate_upper_limit", default="999999999"),
        sa.Column("gain_rate_type", sa.String(16), nullable=False, server_default="percentage"),
        _money("gain_rate_value", default="1"),
        sa.Column("points_per_currency_unit", sa.Numeric(10, 4), nullable=True),
        sa.Column("points_percentage", sa.Numeric(10, 4), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "code", name="uq_loyalty_configs_org_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("loyalty_configs", schema=None) as batch_op:
        batch_op.create_index("ix_loyalty_configs_org_id", ["org_id"], unique=False)

    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("birthday", sa.Date(), nullable=True),
        sa.Column("default_receivable_account_id", sa.Integer(), nullable=True),
        _money("account_balance"),
        _money("debt_balance"),
        _money("deposit_balance"),
        sa.Column("loyalty_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("loyalty_card_number", sa.String(32), nullable=True),
        sa.Column("loyalty_config_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _now("created_at"),
        _now("updated_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["default_receivable_account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["loyalty_config_id"], ["loyalty_configs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "code", name="uq_customers_org_code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("customers", schema=None) as batch_op:
        batch_op.create_index("ix_customers_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_customers_org_active", ["org_id", "is_active"], unique=False)
        batch_op.create_index("ix_customers_is_active", ["is_active"], unique=False)
        batch_op.create_index("ix_customers_loyalty_config_id", ["loyalty_config_id"], unique=False)

    op.create_table(
        "loyalty_cards",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("card_number", sa.String(32), nullable=False),
        sa.Column("loyalty_config_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=True),
        sa.Column("current_points", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_points_earned", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_points_redeemed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _now("issued_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["loyalty_config_id"], ["loyalty_configs.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "card_number", name="uq_loyalty_cards_org_number"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("loyalty_cards", schema=None) as batch_op:
        batch_op.create_index("ix_loyalty_cards_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_loyalty_cards_customer_id", ["customer_id"], unique=False)

    op.create_table(
        "proforma_invoices",
        *_document_header_columns(),
        sa.Column("proforma_date", sa.Date(), nullable=False),
        sa.Column("valid_until", sa.Date(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("is_converted", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("accepted_by", sa.Integer(), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("converted_by", sa.Integer(), nullable=True),
        sa.Column("converted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("org_id", "reference_number", name="uq_proforma_invoices_org_reference"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("proforma_invoices", schema=None) as batch_op:
        batch_op.create_index("ix_proforma_invoices_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_proforma_invoices_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_proforma_invoices_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_proforma_invoices_financial_year_id", ["financial_year_id"], unique=False)
        batch_op.create_index("ix_proforma_invoices_status", ["status"], unique=False)
        batch_op.create_index("ix_proforma_invoices_org_status", ["org_id", "status"], unique=False)

    op.create_table(
        "proforma_invoice_lines",
        *_document_line_columns(),
        sa.Column("proforma_invoice_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["proforma_invoice_id"], ["proforma_invoices.id"]),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("proforma_invoice_lines", schema=None) as batch_op:
        batch_op.create_index("ix_proforma_invoice_lines_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_proforma_invoice_lines_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_proforma_invoice_lines_proforma_invoice_id", ["proforma_invoice_id"], unique=False)

    op.create_table(
        "sales_invoices",
        *_document_header_columns(),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="unpaid"),
        sa.Column("payment_account_id", sa.Integer(), nullable=True),
        sa.Column("proforma_invoice_id", sa.Integer(), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(255), nullable=True),
        sa.Column("posting_group_id", sa.String(36), nullable=True),
        sa.Column("scheduled_type", sa.String(16), nullable=False, server_default="not_scheduled"),
        sa.Column("recurring_period", sa.String(16), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("recurring_day_of_week", sa.String(10), nullable=True),
        sa.Column("recurring_date", sa.Integer(), nullable=True),
        sa.Column("recurring_month", sa.String(10), nullable=True),
        sa.Column("start_time", sa.String(5), nullable=True),
        sa.Column("end_time", sa.String(5), nullable=True),
        sa.Column("parent_invoice_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["payment_account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["proforma_invoice_id"], ["proforma_invoices.id"]),
        sa.ForeignKeyConstraint(["parent_invoice_id"], ["sales_invoices.id"]),
        sa.UniqueConstraint("org_id", "reference_number", name="uq_sales_invoices_org_reference"),
        sa.UniqueConstraint("proforma_invoice_id", name="uq_sales_invoices_proforma"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales_invoices", schema=None) as batch_op:
        batch_op.create_index("ix_sales_invoices_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_sales_invoices_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_sales_invoices_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_sales_invoices_financial_year_id", ["financial_year_id"], unique=False)
        batch_op.create_index("ix_sales_invoices_status", ["status"], unique=False)
        batch_op.create_index("ix_sales_invoices_posting_group_id", ["posting_group_id"], unique=False)
        batch_op.create_index("ix_sales_invoices_org_status_date", ["org_id", "status", "invoice_date"], unique=False)
        batch_op.create_index("ix_sales_invoices_parent_date", ["parent_invoice_id", "invoice_date"], unique=False)

    op.create_table(
        "sales_invoice_lines",
        *_document_line_columns(),
        sa.Column("sales_invoice_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["sales_invoice_id"], ["sales_invoices.id"]),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales_invoice_lines", schema=None) as batch_op:
        batch_op.create_index("ix_sales_invoice_lines_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_sales_invoice_lines_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_sales_invoice_lines_sales_invoice_id", ["sales_invoice_id"], unique=False)

    op.create_table(
        "sales_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("reference_number", sa.String(64), nullable=False),
        sa.Column("sales_invoice_id", sa.Integer(), nullable=False),
        sa.Column("sales_invoice_line_id", sa.Integer(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("invoice_reference", sa.String(64), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("store_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("financial_year_id", sa.Integer(), nullable=True),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("product_type", sa.String(16), nullable=True),
        sa.Column("product_category_id", sa.Integer(), nullable=True),
        _money("quantity"),
        _money("unit_price"),
        _money("subtotal"),
        _money("discount_amount"),
        _money("tax_amount"),
        _money("wht_amount"),
        _money("total_amount"),
        _money("paid_amount"),
        _money("balance_amount"),
        _money("equivalent_amount"),
        sa.Column("currency_id", sa.Integer(), nullable=True),
        sa.Column("system_currency_id", sa.Integer(), nullable=True),
        _rate("exchange_rate"),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("updated_by", sa.Integer(), nullable=True),
        _now("created_at"),
        _now("updated_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["sales_invoice_id"], ["sales_invoices.id"]),
        sa.ForeignKeyConstraint(["sales_invoice_line_id"], ["sales_invoice_lines.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["financial_year_id"], ["financial_years.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["product_category_id"], ["product_categories.id"]),
        sa.ForeignKeyConstraint(["currency_id"], ["currencies.id"]),
        sa.ForeignKeyConstraint(["system_currency_id"], ["currencies.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "reference_number", name="uq_sales_transactions_org_reference"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("sales_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_sales_transactions_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_sales_transactions_invoice", ["sales_invoice_id", "position"], unique=False)

    op.create_table(
        "loyalty_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("loyalty_card_id", sa.Integer(), nullable=True),
        sa.Column("loyalty_config_id", sa.Integer(), nullable=True),
        sa.Column("sales_invoice_id", sa.Integer(), nullable=True),
        sa.Column("store_id", sa.Integer(), nullable=True),
        sa.Column("financial_year_id", sa.Integer(), nullable=True),
        sa.Column("transaction_type", sa.String(16), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("points_balance_before", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("points_balance_after", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reference_number", sa.String(64), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        _money("amount"),
        sa.Column("currency_id", sa.Integer(), nullable=True),
        _rate("exchange_rate"),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        _now("created_at"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"]),
        sa.ForeignKeyConstraint(["loyalty_card_id"], ["loyalty_cards.id"]),
        sa.ForeignKeyConstraint(["loyalty_config_id"], ["loyalty_configs.id"]),
        sa.ForeignKeyConstraint(["sales_invoice_id"], ["sales_invoices.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["financial_year_id"], ["financial_years.id"]),
        sa.ForeignKeyConstraint(["currency_id"], ["currencies.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("loyalty_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_loyalty_transactions_org_id", ["org_id"], unique=False)
        batch_op.create_index("ix_loyalty_transactions_customer_id", ["customer_id"], unique=False)
        batch_op.create_index("ix_loyalty_transactions_sales_invoice_id", ["sales_invoice_id"], unique=False)
        batch_op.create_index("ix_loyalty_transactions_transaction_type", ["transaction_type"], unique=False)
        batch_op.create_index(
            "ix_loyalty_txns_customer_type_date",
            ["customer_id", "transaction_type", "transaction_date"],
            unique=False,
        )


def downgrade():
    for table in (
        "loyalty_transactions",
        "sales_transactions",
        "sales_invoice_lines",
        "sales_invoices",
        "proforma_invoice_lines",
        "proforma_invoices",
        "loyalty_cards",
        "customers",
        "loyalty_configs",
        "price_history",
        "product_transactions",
        "product_serial_numbers",
        "product_batches",
        "product_stores",
        "products",
        "product_categories",
        "ledger_entries",
        "tax_codes",
        "accounts",
        "financial_years",
        "currencies",
        "stores",
        "organizations",
    ):
        op.drop_table(table)
