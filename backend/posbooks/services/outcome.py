# Overview: Result objects passed between posting sub-steps and the approval orchestrator.

"""
Explicit results threaded through the posting sub-steps.

Each sub-step returns a StepOutcome; the approval orchestrator aggregates
them into one PostingResult and alone decides commit vs. rollback.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from ..extensions import db
from ..models import Account


@dataclass
class StepOutcome:
    step: str
    records: list[Any] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    critical: list[str] = field(default_factory=list)
    # debit minus credit equivalents of entries skipped with a warning
    unposted: Decimal = Decimal("0")

    def warn(self, prefix: str, message: str) -> None:
        self.warnings.append(f"{prefix}: {message}")

    def fail(self, message: str) -> None:
        self.critical.append(message)

    @property
    def ok(self) -> bool:
        return not self.critical


@dataclass
class PostingResult:
    """What one approval produced, for the calling handler."""
    invoice: Any
    posting_group_id: str | None = None
    already_posted: bool = False
    ledger_entries: list[Any] = field(default_factory=list)
    customer_updated: bool = False
    loyalty_transactions: list[Any] = field(default_factory=list)
    stock_updates: list[dict] = field(default_factory=list)
    product_transactions: list[Any] = field(default_factory=list)
    price_history: list[Any] = field(default_factory=list)
    sales_transactions: list[Any] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def absorb(self, outcome: StepOutcome) -> None:
        self.warnings.extend(outcome.warnings)

    def to_dict(self) -> dict:
        return {
            "invoice": self.invoice.to_dict(),
            "posting_group_id": self.posting_group_id,
            "already_posted": self.already_posted,
            "ledger_entries": [e.to_dict() for e in self.ledger_entries],
            "customer_updated": self.customer_updated,
            "loyalty_transactions": [t.to_dict() for t in self.loyalty_transactions],
            "stock_updates": self.stock_updates,
            "product_transactions": [t.to_dict() for t in self.product_transactions],
            "price_history": [p.to_dict() for p in self.price_history],
            "sales_transactions": [r.to_dict() for r in self.sales_transactions],
            "warnings": list(self.warnings),
        }


@dataclass
class AccountLookup:
    """Explicit result of an account lookup; callers branch on found."""
    account_id: int | None
    account: Any = None

    @property
    def found(self) -> bool:
        return self.account is not None


@dataclass
class PostingContext:
    """
    Everything one posting unit of work needs, resolved once by the
    orchestrator and passed down to each sub-step.
    """
    org_id: int
    financial_year: Any
    system_currency: Any
    source: Any
    posting_group_id: str
    posting_date: Any
    actor_id: int | None = None
    actor_name: str | None = None
    balance_tolerance: Any = None
    _accounts: dict = field(default_factory=dict, repr=False)

    def resolve_account(self, account_id: int | None) -> AccountLookup:
        if not account_id:
            return AccountLookup(None)
        if account_id not in self._accounts:
            self._accounts[account_id] = (
                db.session.query(Account)
                .filter_by(id=account_id, org_id=self.org_id)
                .first()
            )
        return AccountLookup(account_id, self._accounts[account_id])
