# Overview: SQLAlchemy models for sales invoices, proformas and sales transaction records.

from __future__ import annotations

from sqlalchemy.orm import declared_attr

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date
from .columns import money_column, quantity_column, rate_column
from .enums import (
    InvoiceStatus,
    PaymentStatus,
    ProformaStatus,
    RecurringPeriod,
    ScheduledType,
    enum_type,
)


class DocumentHeaderMixin:
    """
    Columns shared by sales invoices and proforma invoices.

    Amounts are in the document currency; equivalent_amount is the total in
    the system currency, fixed once at write time:
      total_amount  = subtotal - discount_amount + tax_amount - wht_amount
      balance_amount = total_amount - paid_amount
      equivalent_amount = total_amount * exchange_rate
    """

    id = db.Column(db.Integer, primary_key=True)
    reference_number = db.Column(db.String(64), nullable=False)

    @declared_attr
    def org_id(cls):
        return db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    @declared_attr
    def store_id(cls):
        return db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    @declared_attr
    def customer_id(cls):
        return db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    @declared_attr
    def currency_id(cls):
        return db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=True)

    @declared_attr
    def system_currency_id(cls):
        return db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=True)

    @declared_attr
    def financial_year_id(cls):
        return db.Column(db.Integer, db.ForeignKey("financial_years.id"), nullable=True, index=True)

    @declared_attr
    def receivable_account_id(cls):
        return db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)

    @declared_attr
    def discount_allowed_account_id(cls):
        return db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)

    exchange_rate = rate_column()
    subtotal = money_column()
    discount_amount = money_column()
    tax_amount = money_column()
    wht_amount = money_column()
    total_amount = money_column()
    paid_amount = money_column()
    balance_amount = money_column()
    equivalent_amount = money_column()

    notes = db.Column(db.Text, nullable=True)
    terms_conditions = db.Column(db.Text, nullable=True)

    # Audit
    created_by = db.Column(db.Integer, nullable=True)
    created_by_name = db.Column(db.String(255), nullable=True)
    updated_by = db.Column(db.Integer, nullable=True)
    sent_by = db.Column(db.Integer, nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by = db.Column(db.Integer, nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @declared_attr
    def customer(cls):
        return db.relationship("Customer")

    @declared_attr
    def store(cls):
        return db.relationship("Store")

    def _header_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "reference_number": self.reference_number,
            "store_id": self.store_id,
            "customer_id": self.customer_id,
            "currency_id": self.currency_id,
            "system_currency_id": self.system_currency_id,
            "financial_year_id": self.financial_year_id,
            "exchange_rate": self.exchange_rate,
            "subtotal": self.subtotal,
            "discount_amount": self.discount_amount,
            "tax_amount": self.tax_amount,
            "wht_amount": self.wht_amount,
            "total_amount": self.total_amount,
            "paid_amount": self.paid_amount,
            "balance_amount": self.balance_amount,
            "equivalent_amount": self.equivalent_amount,
            "receivable_account_id": self.receivable_account_id,
            "discount_allowed_account_id": self.discount_allowed_account_id,
            "notes": self.notes,
            "terms_conditions": self.terms_conditions,
            "created_by": self.created_by,
            "created_by_name": self.created_by_name,
            "updated_by": self.updated_by,
            "sent_by": self.sent_by,
            "sent_at": to_utc_z(self.sent_at),
            "rejected_by": self.rejected_by,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class DocumentLineMixin:
    """
    Columns shared by invoice lines.

    line_subtotal = quantity * unit_price
    line_total = line_subtotal - discount_amount + tax_amount
    equivalent_amount = line_total in the system currency
    """

    id = db.Column(db.Integer, primary_key=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    @declared_attr
    def org_id(cls):
        return db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    @declared_attr
    def product_id(cls):
        return db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    @declared_attr
    def sales_tax_id(cls):
        return db.Column(db.Integer, db.ForeignKey("tax_codes.id"), nullable=True)

    @declared_attr
    def wht_tax_id(cls):
        return db.Column(db.Integer, db.ForeignKey("tax_codes.id"), nullable=True)

    quantity = quantity_column()
    unit_price = money_column()
    discount_amount = money_column()
    tax_amount = money_column()
    wht_amount = money_column()
    line_subtotal = money_column()
    line_total = money_column()
    equivalent_amount = money_column()

    batch_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    serial_numbers = db.Column(db.JSON, nullable=True)

    notes = db.Column(db.String(255), nullable=True)

    @declared_attr
    def product(cls):
        return db.relationship("Product")

    @declared_attr
    def sales_tax(cls):
        return db.relationship("TaxCode", foreign_keys=f"{cls.__name__}.sales_tax_id")

    @declared_attr
    def wht_tax(cls):
        return db.relationship("TaxCode", foreign_keys=f"{cls.__name__}.wht_tax_id")

    def _line_dict(self) -> dict:
        return {
            "id": self.id,
            "position": self.position,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "discount_amount": self.discount_amount,
            "tax_amount": self.tax_amount,
            "sales_tax_id": self.sales_tax_id,
            "wht_amount": self.wht_amount,
            "wht_tax_id": self.wht_tax_id,
            "line_subtotal": self.line_subtotal,
            "line_total": self.line_total,
            "equivalent_amount": self.equivalent_amount,
            "batch_number": self.batch_number,
            "expiry_date": to_iso_date(self.expiry_date),
            "serial_numbers": list(self.serial_numbers or []),
            "notes": self.notes,
        }


class SalesInvoice(DocumentHeaderMixin, db.Model):
    """
    Sales invoice document.

    LIFECYCLE: draft -> sent -> approved (posting), with rejected/cancelled
    exits and overdue flagged on read. Ledger and stock effects are applied
    exactly once, at approval; posting_group_id is set when that happens.

    Scheduled templates are ordinary invoices with scheduled_type
    recurring/one_time; generated children point back via parent_invoice_id.
    """
    __tablename__ = "sales_invoices"
    __table_args__ = (
        db.UniqueConstraint("org_id", "reference_number", name="uq_sales_invoices_org_reference"),
        db.UniqueConstraint("proforma_invoice_id", name="uq_sales_invoices_proforma"),
        db.Index("ix_sales_invoices_org_status_date", "org_id", "status", "invoice_date"),
        db.Index("ix_sales_invoices_parent_date", "parent_invoice_id", "invoice_date"),
        {"sqlite_autoincrement": True},
    )

    invoice_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)

    status = db.Column(enum_type(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT, index=True)
    payment_status = db.Column(enum_type(PaymentStatus), nullable=False, default=PaymentStatus.UNPAID)

    # Cash/bank account debited for paid_amount at posting
    payment_account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=True)

    proforma_invoice_id = db.Column(db.Integer, db.ForeignKey("proforma_invoices.id"), nullable=True)

    approved_by = db.Column(db.Integer, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.Integer, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)
    posting_group_id = db.Column(db.String(36), nullable=True, index=True)

    # Scheduling (templates only)
    scheduled_type = db.Column(enum_type(ScheduledType), nullable=False, default=ScheduledType.NOT_SCHEDULED)
    recurring_period = db.Column(enum_type(RecurringPeriod), nullable=True)
    scheduled_date = db.Column(db.Date, nullable=True)
    recurring_day_of_week = db.Column(db.String(10), nullable=True)  # monday..sunday
    recurring_date = db.Column(db.Integer, nullable=True)  # 1..31
    recurring_month = db.Column(db.String(10), nullable=True)  # january..december
    start_time = db.Column(db.String(5), nullable=True)  # HH:MM
    end_time = db.Column(db.String(5), nullable=True)  # HH:MM
    parent_invoice_id = db.Column(db.Integer, db.ForeignKey("sales_invoices.id"), nullable=True)

    lines = db.relationship(
        "SalesInvoiceLine",
        backref="invoice",
        order_by="SalesInvoiceLine.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    parent_invoice = db.relationship("SalesInvoice", remote_side="SalesInvoice.id")
    proforma_invoice = db.relationship("ProformaInvoice", foreign_keys=[proforma_invoice_id])

    @property
    def is_template(self) -> bool:
        return self.scheduled_type in (ScheduledType.RECURRING, ScheduledType.ONE_TIME)

    def __repr__(self) -> str:
        return f"<SalesInvoice id={self.id} ref={self.reference_number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = self._header_dict()
        data.update({
            "invoice_date": to_iso_date(self.invoice_date),
            "due_date": to_iso_date(self.due_date),
            "status": self.status.value,
            "payment_status": self.payment_status.value,
            "payment_account_id": self.payment_account_id,
            "proforma_invoice_id": self.proforma_invoice_id,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "cancelled_by": self.cancelled_by,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancellation_reason": self.cancellation_reason,
            "posting_group_id": self.posting_group_id,
            "scheduled_type": self.scheduled_type.value,
            "recurring_period": self.recurring_period.value if self.recurring_period else None,
            "scheduled_date": to_iso_date(self.scheduled_date),
            "recurring_day_of_week": self.recurring_day_of_week,
            "recurring_date": self.recurring_date,
            "recurring_month": self.recurring_month,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "parent_invoice_id": self.parent_invoice_id,
        })
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SalesInvoiceLine(DocumentLineMixin, db.Model):
    __tablename__ = "sales_invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    sales_invoice_id = db.Column(db.Integer, db.ForeignKey("sales_invoices.id"), nullable=False, index=True)

    def to_dict(self) -> dict:
        data = self._line_dict()
        data["sales_invoice_id"] = self.sales_invoice_id
        return data


class ProformaInvoice(DocumentHeaderMixin, db.Model):
    """
    Proforma (quotation) document.

    LIFECYCLE: draft -> sent -> accepted/rejected/expired, expired -> draft
    (reopen), sent/accepted -> converted (one-way, at most once).
    """
    __tablename__ = "proforma_invoices"
    __table_args__ = (
        db.UniqueConstraint("org_id", "reference_number", name="uq_proforma_invoices_org_reference"),
        db.Index("ix_proforma_invoices_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    proforma_date = db.Column(db.Date, nullable=False)
    valid_until = db.Column(db.Date, nullable=True)

    status = db.Column(enum_type(ProformaStatus), nullable=False, default=ProformaStatus.DRAFT, index=True)
    is_converted = db.Column(db.Boolean, nullable=False, default=False)

    accepted_by = db.Column(db.Integer, nullable=True)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    converted_by = db.Column(db.Integer, nullable=True)
    converted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    lines = db.relationship(
        "ProformaInvoiceLine",
        backref="proforma",
        order_by="ProformaInvoiceLine.position",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def to_dict(self, include_lines: bool = True) -> dict:
        data = self._header_dict()
        data.update({
            "proforma_date": to_iso_date(self.proforma_date),
            "valid_until": to_iso_date(self.valid_until),
            "status": self.status.value,
            "is_converted": self.is_converted,
            "accepted_by": self.accepted_by,
            "accepted_at": to_utc_z(self.accepted_at),
            "converted_by": self.converted_by,
            "converted_at": to_utc_z(self.converted_at),
        })
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class ProformaInvoiceLine(DocumentLineMixin, db.Model):
    __tablename__ = "proforma_invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    proforma_invoice_id = db.Column(db.Integer, db.ForeignKey("proforma_invoices.id"), nullable=False, index=True)

    def to_dict(self) -> dict:
        data = self._line_dict()
        data["proforma_invoice_id"] = self.proforma_invoice_id
        return data


class SalesTransactionRecord(db.Model):
    """
    Denormalized reporting row, exactly one per current invoice line.

    Header paid/balance are spread across lines by each line's share of the
    summed line totals.
    """
    __tablename__ = "sales_transactions"
    __table_args__ = (
        db.UniqueConstraint("org_id", "reference_number", name="uq_sales_transactions_org_reference"),
        db.Index("ix_sales_transactions_invoice", "sales_invoice_id", "position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    reference_number = db.Column(db.String(64), nullable=False)

    sales_invoice_id = db.Column(db.Integer, db.ForeignKey("sales_invoices.id"), nullable=False)
    sales_invoice_line_id = db.Column(db.Integer, db.ForeignKey("sales_invoice_lines.id", ondelete="SET NULL"), nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    invoice_reference = db.Column(db.String(64), nullable=True)

    transaction_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    financial_year_id = db.Column(db.Integer, db.ForeignKey("financial_years.id"), nullable=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_type = db.Column(db.String(16), nullable=True)
    product_category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=True)

    quantity = quantity_column()
    unit_price = money_column()
    subtotal = money_column()
    discount_amount = money_column()
    tax_amount = money_column()
    wht_amount = money_column()
    total_amount = money_column()
    paid_amount = money_column()
    balance_amount = money_column()
    equivalent_amount = money_column()

    currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=True)
    system_currency_id = db.Column(db.Integer, db.ForeignKey("currencies.id"), nullable=True)
    exchange_rate = rate_column()

    status = db.Column(db.String(16), nullable=False)

    created_by = db.Column(db.Integer, nullable=True)
    updated_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "reference_number": self.reference_number,
            "sales_invoice_id": self.sales_invoice_id,
            "sales_invoice_line_id": self.sales_invoice_line_id,
            "position": self.position,
            "invoice_reference": self.invoice_reference,
            "transaction_date": to_iso_date(self.transaction_date),
            "due_date": to_iso_date(self.due_date),
            "store_id": self.store_id,
            "customer_id": self.customer_id,
            "product_id": self.product_id,
            "product_type": self.product_type,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "subtotal": self.subtotal,
            "discount_amount": self.discount_amount,
            "tax_amount": self.tax_amount,
            "wht_amount": self.wht_amount,
            "total_amount": self.total_amount,
            "paid_amount": self.paid_amount,
            "balance_amount": self.balance_amount,
            "equivalent_amount": self.equivalent_amount,
            "currency_id": self.currency_id,
            "exchange_rate": self.exchange_rate,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
