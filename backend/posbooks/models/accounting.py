# Overview: SQLAlchemy models for the chart of accounts, tax codes and ledger entries.

from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from .columns import money_column, rate_column
from .enums import AccountType, EntryNature, LedgerLineKind, LedgerSource, enum_type


class Account(db.Model):
    """Chart of accounts row. Codes are unique per organization."""
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_accounts_org_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=False)
    account_type = db.Column(enum_type(AccountType), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "code": self.code,
            "name": self.name,
            "account_type": self.account_type.value if self.account_type else None,
            "is_active": self.is_active,
        }


class TaxCode(db.Model):
    """
    Sales tax or withholding tax code.

    Tax is credited to sales_tax_account_id; withholding (is_wht=True) is
    debited to the same column's account.
    """
    __tablename__ = "tax_codes"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_tax_codes_org_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(128), nullable=True)
    rate = db.Column(db.Numeric(9, 4, asdecimal=True), nullable=False, default=0)
    is_wht = db.Column(db.Boolean, nullable=False, default=False)
    sales_tax_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)

    sales_tax_account = db.relationship("Account", foreign_keys=[sales_tax_account_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "code": self.code,
            "name": self.name,
            "rate": self.rate,
            "is_wht": self.is_wht,
            "sales_tax_account_id": self.sales_tax_account_id,
        }


class LedgerEntry(db.Model):
    """
    Append-only general ledger row.

    One row per (account, document, nature). Debit/credit are in the document
    currency; the *_equivalent columns hold the system-currency amounts.
    Every row written by one posting shares posting_group_id.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_entries_org_group", "org_id", "posting_group_id"),
        db.Index("ix_ledger_entries_source", "source", "source_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    financial_year_id = db.Column(db.Integer, db.ForeignKey("financial_years.id"), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    posting_group_id = db.Column(db.String(36), nullable=False)
    source = db.Column(enum_type(LedgerSource, length=32), nullable=False)
    source_id = db.Column(db.Integer, nullable=False)
    reference_number = db.Column(db.String(64), nullable=True)
    kind = db.Column(enum_type(LedgerLineKind), nullable=False)
    nature = db.Column(enum_type(EntryNature, length=8), nullable=False)

    entry_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=True)
    exchange_rate = rate_column()
    debit = money_column()
    credit = money_column()
    debit_equivalent = money_column()
    credit_equivalent = money_column()

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("Account")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "financial_year_id": self.financial_year_id,
            "account_id": self.account_id,
            "posting_group_id": self.posting_group_id,
            "source": self.source.value,
            "source_id": self.source_id,
            "reference_number": self.reference_number,
            "kind": self.kind.value,
            "nature": self.nature.value,
            "entry_date": to_iso_date(self.entry_date),
            "description": self.description,
            "currency_id": self.currency_id,
            "exchange_rate": self.exchange_rate,
            "debit": self.debit,
            "credit": self.credit,
            "debit_equivalent": self.debit_equivalent,
            "credit_equivalent": self.credit_equivalent,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
