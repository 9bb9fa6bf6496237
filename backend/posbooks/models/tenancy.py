# Overview: SQLAlchemy models for organizations, stores, currencies and financial years.

from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date


class Organization(db.Model):
    """
    Multi-tenant root: Every tenant is an Organization.

    All stores, customers, documents and ledger rows belong to exactly one
    organization (org_id). No data may cross organization boundaries.
    """
    __tablename__ = "organizations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)  # Short code for lookups

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Organization id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Store(db.Model):
    """
    Store within an organization.

    Store names and codes are unique within an organization, not globally.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_stores_org_name"),
        db.UniqueConstraint("org_id", "code", name="uq_stores_org_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("stores", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Currency(db.Model):
    """
    Tenant currency. Exactly one row per tenant should carry is_default=True:
    that is the system currency every equivalent amount is expressed in.
    """
    __tablename__ = "currencies"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_currencies_org_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    code = db.Column(db.String(8), nullable=False)
    name = db.Column(db.String(64), nullable=False)
    symbol = db.Column(db.String(8), nullable=True)
    is_default = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "code": self.code,
            "name": self.name,
            "symbol": self.symbol,
            "is_default": self.is_default,
        }


class FinancialYear(db.Model):
    """
    Tenant financial year. The date range is immutable once persisted;
    every posted document must fall inside the active year's range.
    """
    __tablename__ = "financial_years"
    __table_args__ = (
        db.UniqueConstraint("org_id", "name", name="uq_financial_years_org_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=False, index=True)

    @validates("start_date", "end_date")
    def _freeze_range(self, key, value):
        current = getattr(self, key)
        if self.id is not None and current is not None and current != value:
            raise ValueError("Financial year date range is immutable")
        return value

    def contains(self, day) -> bool:
        return self.start_date <= day <= self.end_date

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "is_active": self.is_active,
        }
