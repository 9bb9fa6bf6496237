# Overview: Closed enumerations persisted as short strings.

"""
Closed enumerations for every discriminator the engine branches on.

Values are persisted as short strings (non-native enum) so they survive
SQLite and PostgreSQL alike; anything outside the enum is rejected on write.
"""

from __future__ import annotations

import enum

from ..extensions import db


class StrEnum(str, enum.Enum):
    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value):
        """Validate a boundary value (str or member) into a member."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise ValueError(f"Invalid {cls.__name__} '{value}'. Must be one of: {allowed}") from None


class AccountType(StrEnum):
    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    INCOME = "income"
    EXPENSE = "expense"


class EntryNature(StrEnum):
    DEBIT = "debit"
    CREDIT = "credit"


class LedgerSource(StrEnum):
    """What produced a ledger entry (replaces looked-up transaction type rows)."""
    SALES_INVOICE = "sales_invoice"


class LedgerLineKind(StrEnum):
    COGS = "cogs"
    INVENTORY = "inventory"
    RECEIVABLE = "receivable"
    PAYMENT = "payment"
    REVENUE = "revenue"
    DISCOUNT = "discount"
    TAX = "tax"
    WHT = "wht"


class ProductType(StrEnum):
    GOODS = "goods"
    SERVICES = "services"


class LotStatus(StrEnum):
    ACTIVE = "active"
    SOLD = "sold"
    EXPIRED = "expired"


class SerialStatus(StrEnum):
    ACTIVE = "active"
    SOLD = "sold"
    RETURNED = "returned"
    DAMAGED = "damaged"


class InvoiceStatus(StrEnum):
    DRAFT = "draft"
    SENT = "sent"
    OVERDUE = "overdue"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class PaymentStatus(StrEnum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class ProformaStatus(StrEnum):
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CONVERTED = "converted"


class ScheduledType(StrEnum):
    NOT_SCHEDULED = "not_scheduled"
    ONE_TIME = "one_time"
    RECURRING = "recurring"


class RecurringPeriod(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class GainRateType(StrEnum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class LoyaltyTransactionType(StrEnum):
    EARN = "earn"
    WELCOME_BONUS = "welcome_bonus"
    BIRTHDAY_BONUS = "birthday_bonus"
    REDEEM = "redeem"


def enum_type(enum_cls: type[StrEnum], length: int = 16):
    return db.Enum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda cls: [m.value for m in cls],
        validate_strings=True,
    )
