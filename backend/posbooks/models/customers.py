# Overview: SQLAlchemy models for customers and loyalty programs.

from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from .columns import money_column, rate_column
from .enums import GainRateType, LoyaltyTransactionType, enum_type


class Customer(db.Model):
    """
    Customer master data for receivables and loyalty.

    MULTI-TENANT: Customers are scoped to organizations via org_id.

    Balances (system currency) and loyalty_points are denormalized running
    totals. They are only ever changed with SQL increments so concurrent
    postings against the same customer cannot lose updates.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_customers_org_code"),
        db.Index("ix_customers_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    code = db.Column(db.String(32), nullable=True)
    full_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    birthday = db.Column(db.Date, nullable=True)

    default_receivable_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)

    account_balance = money_column()
    debt_balance = money_column()
    deposit_balance = money_column()
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)

    # Loyalty membership (card row is materialized on first qualifying posting)
    loyalty_card_number = db.Column(db.String(32), nullable=True)
    loyalty_config_id = db.Column(db.Integer, db.ForeignKey("loyalty_configs.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    default_receivable_account = db.relationship("Account", foreign_keys=[default_receivable_account_id])
    loyalty_config = db.relationship("LoyaltyConfig")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "code": self.code,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "birthday": to_iso_date(self.birthday),
            "default_receivable_account_id": self.default_receivable_account_id,
            "account_balance": self.account_balance,
            "debt_balance": self.debt_balance,
            "deposit_balance": self.deposit_balance,
            "loyalty_points": self.loyalty_points,
            "loyalty_card_number": self.loyalty_card_number,
            "loyalty_config_id": self.loyalty_config_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class LoyaltyConfig(db.Model):
    """
    Loyalty profile: sale-type gates, bonuses and the earn band.

    Earn rules:
    - system-currency subtotal must sit inside [gain_rate_lower_limit, gain_rate_upper_limit]
    - PERCENTAGE: floor(amount * gain_rate_value / 100)
    - FIXED: floor(gain_rate_value) per document
    - points_per_currency_unit / points_percentage are older single-field
      rates, consulted only when the structured rate yields zero
    """
    __tablename__ = "loyalty_configs"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_loyalty_configs_org_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    code = db.Column(db.String(20), nullable=False)

    allow_gaining_cash_sales = db.Column(db.Boolean, nullable=False, default=True)
    allow_gaining_credit_sales = db.Column(db.Boolean, nullable=False, default=True)

    welcome_bonus_points = db.Column(db.Integer, nullable=False, default=0)
    birthday_bonus_points = db.Column(db.Integer, nullable=False, default=0)

    gain_rate_lower_limit = money_column()
    gain_rate_upper_limit = money_column(default=999999999)
    gain_rate_type = db.Column(enum_type(GainRateType), nullable=False, default=GainRateType.PERCENTAGE)
    gain_rate_value = money_column(default=1)

    points_per_currency_unit = db.Column(db.Numeric(10, 4, asdecimal=True), nullable=True)
    points_percentage = db.Column(db.Numeric(10, 4, asdecimal=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "code": self.code,
            "allow_gaining_cash_sales": self.allow_gaining_cash_sales,
            "allow_gaining_credit_sales": self.allow_gaining_credit_sales,
            "welcome_bonus_points": self.welcome_bonus_points,
            "birthday_bonus_points": self.birthday_bonus_points,
            "gain_rate_lower_limit": self.gain_rate_lower_limit,
            "gain_rate_upper_limit": self.gain_rate_upper_limit,
            "gain_rate_type": self.gain_rate_type.value,
            "gain_rate_value": self.gain_rate_value,
            "points_per_currency_unit": self.points_per_currency_unit,
            "points_percentage": self.points_percentage,
            "is_active": self.is_active,
        }


class LoyaltyCard(db.Model):
    """Materialized loyalty card; one per card number per organization."""
    __tablename__ = "loyalty_cards"
    __table_args__ = (
        db.UniqueConstraint("org_id", "card_number", name="uq_loyalty_cards_org_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    card_number = db.Column(db.String(32), nullable=False)
    loyalty_config_id = db.Column(db.Integer, db.ForeignKey("loyalty_configs.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)

    current_points = db.Column(db.Integer, nullable=False, default=0)
    total_points_earned = db.Column(db.Integer, nullable=False, default=0)
    total_points_redeemed = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    issued_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "card_number": self.card_number,
            "loyalty_config_id": self.loyalty_config_id,
            "customer_id": self.customer_id,
            "current_points": self.current_points,
            "total_points_earned": self.total_points_earned,
            "total_points_redeemed": self.total_points_redeemed,
            "is_active": self.is_active,
            "issued_at": to_utc_z(self.issued_at),
        }


class LoyaltyTransaction(db.Model):
    """
    Append-only ledger of loyalty point events.

    IMMUTABLE: Records are never updated or deleted. points_balance_before /
    points_balance_after snapshot the customer's total around the event.
    """
    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        db.Index("ix_loyalty_txns_customer_type_date", "customer_id", "transaction_type", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    loyalty_card_id = db.Column(db.Integer, db.ForeignKey("loyalty_cards.id"), nullable=True)
    loyalty_config_id = db.Column(db.Integer, db.ForeignKey("loyalty_configs.id"), nullable=True)
    sales_invoice_id = db.Column(db.Integer, db.ForeignKey("sales_invoices.id"), nullable=True, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True)
    financial_year_id = db.Column(db.Integer, db.ForeignKey("financial_years.id"), nullable=True)

    transaction_type = db.Column(enum_type(LoyaltyTransactionType), nullable=False, index=True)
    points = db.Column(db.Integer, nullable=False)
    points_balance_before = db.Column(db.Integer, nullable=False, default=0)
    points_balance_after = db.Column(db.Integer, nullable=False, default=0)

    reference_number = db.Column(db.String(64), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    amount = money_column()
    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=True)
    exchange_rate = rate_column()
    transaction_date = db.Column(db.Date, nullable=False)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "customer_id": self.customer_id,
            "loyalty_card_id": self.loyalty_card_id,
            "loyalty_config_id": self.loyalty_config_id,
            "sales_invoice_id": self.sales_invoice_id,
            "transaction_type": self.transaction_type.value,
            "points": self.points,
            "points_balance_before": self.points_balance_before,
            "points_balance_after": self.points_balance_after,
            "reference_number": self.reference_number,
            "description": self.description,
            "amount": self.amount,
            "transaction_date": to_iso_date(self.transaction_date),
            "created_at": to_utc_z(self.created_at),
        }
