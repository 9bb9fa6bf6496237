# Overview: Service-layer operations for ledger posting; builds balanced entry sets for invoices.

"""
Ledger posting for approved sales invoices.

Invariants:
- Append-only: entries are never updated or deleted.
- Entries are written inside the same DB transaction as the posting they record.
- Every entry of one posting shares posting_group_id.
- Debit and credit equivalents of a posting group balance, except for optional
  entries skipped with their own warning. Any other difference is reported as
  a "Balance:" warning.

Critical (posting aborts): missing COGS, inventory, receivable or payment
account, or no income account at all. Optional (warning only): discount
account, the account of a specific tax/WHT code.
"""

from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal

from ..extensions import db
from ..models import LedgerEntry
from ..models.enums import EntryNature, LedgerLineKind
from .currency_service import (
    ZERO,
    allocate_equivalents,
    allocate_proportionally,
    equivalent,
    money,
    to_decimal,
    to_document_currency,
)
from .outcome import PostingContext, StepOutcome


class LedgerPostingError(ValueError):
    """Raised when a posting cannot produce a complete entry set."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _entry(ctx: PostingContext, invoice, account, kind, nature, amount, amount_equivalent, description):
    amount = money(amount)
    amount_equivalent = money(amount_equivalent)
    is_debit = nature == EntryNature.DEBIT
    return LedgerEntry(
        org_id=ctx.org_id,
        financial_year_id=ctx.financial_year.id,
        account_id=account.id,
        posting_group_id=ctx.posting_group_id,
        source=ctx.source,
        source_id=invoice.id,
        reference_number=invoice.reference_number,
        kind=kind,
        nature=nature,
        entry_date=invoice.invoice_date,
        description=description,
        currency_id=invoice.currency_id,
        exchange_rate=invoice.exchange_rate,
        debit=amount if is_debit else ZERO,
        credit=ZERO if is_debit else amount,
        debit_equivalent=amount_equivalent if is_debit else ZERO,
        credit_equivalent=ZERO if is_debit else amount_equivalent,
        created_by=ctx.actor_id,
    )


def _line_name(line) -> str:
    return line.product.name if line.product is not None else f"product {line.product_id}"


def _cost_accounts(ctx: PostingContext, product):
    category = product.category
    cogs_id = (category.cogs_account_id if category else None) or product.cogs_account_id
    asset_id = (category.asset_account_id if category else None) or product.asset_account_id
    return ctx.resolve_account(cogs_id), ctx.resolve_account(asset_id)


def _income_account(ctx: PostingContext, product):
    category = product.category
    income_id = (category.income_account_id if category else None) or product.income_account_id
    return ctx.resolve_account(income_id)


def _post_cost_of_sales(ctx, invoice, outcome, entries):
    rate = to_decimal(invoice.exchange_rate)
    for line in invoice.lines:
        product = line.product
        if product is None or product.is_service:
            continue
        cost = money(to_decimal(line.quantity) * to_decimal(product.average_cost))
        if cost <= 0:
            continue

        cogs, inventory = _cost_accounts(ctx, product)
        if not cogs.found:
            outcome.fail(f"COGS account not found for line {line.position} ({_line_name(line)})")
        if not inventory.found:
            outcome.fail(f"Inventory account not found for line {line.position} ({_line_name(line)})")
        if not (cogs.found and inventory.found):
            continue

        document_cost = to_document_currency(cost, rate)
        entries.append(_entry(
            ctx, invoice, cogs.account, LedgerLineKind.COGS, EntryNature.DEBIT, document_cost, cost,
            f"COGS for {_line_name(line)} - Invoice {invoice.reference_number}",
        ))
        entries.append(_entry(
            ctx, invoice, inventory.account, LedgerLineKind.INVENTORY, EntryNature.CREDIT, document_cost, cost,
            f"Inventory for {_line_name(line)} - Invoice {invoice.reference_number}",
        ))


def _header_equivalent(invoice, amount):
    return equivalent(amount, invoice.exchange_rate, invoice.total_amount, invoice.equivalent_amount)


def _post_settlement(ctx, invoice, outcome, entries):
    total = to_decimal(invoice.total_amount)
    paid = to_decimal(invoice.paid_amount)
    balance = total - paid

    customer = invoice.customer
    receivable_id = (customer.default_receivable_account_id if customer else None) or invoice.receivable_account_id
    receivable = ctx.resolve_account(receivable_id)
    if not receivable.found:
        outcome.fail(
            "Accounts Receivable account not found. Set default_receivable_account_id "
            "on the customer or receivable_account_id on the invoice"
        )
    elif balance > 0:
        entries.append(_entry(
            ctx, invoice, receivable.account, LedgerLineKind.RECEIVABLE, EntryNature.DEBIT,
            balance, _header_equivalent(invoice, balance),
            f"Sales Invoice {invoice.reference_number} - {customer.full_name if customer else ''}".rstrip(" -"),
        ))

    if paid > 0:
        payment = ctx.resolve_account(invoice.payment_account_id)
        if not payment.found:
            outcome.fail("Payment account not found for the paid portion of the invoice")
        else:
            entries.append(_entry(
                ctx, invoice, payment.account, LedgerLineKind.PAYMENT, EntryNature.DEBIT,
                paid, _header_equivalent(invoice, paid),
                f"Payment received - Invoice {invoice.reference_number}",
            ))


def _post_revenue(ctx, invoice, outcome, entries):
    by_account: OrderedDict[int, list] = OrderedDict()
    for line in invoice.lines:
        if line.product is None:
            continue
        income = _income_account(ctx, line.product)
        if not income.found:
            outcome.warn(
                "Income Account",
                f"no income account for line {line.position} ({_line_name(line)}); "
                "its revenue is carried by the other income accounts",
            )
            continue
        slot = by_account.setdefault(income.account.id, [income.account, ZERO])
        slot[1] += to_decimal(line.line_subtotal)

    if not by_account:
        outcome.fail("No income accounts found. Set income_account_id on the product category or product")
        return

    subtotal = to_decimal(invoice.subtotal)
    line_subtotals = [amount for _, amount in by_account.values()]
    basis = sum(line_subtotals, ZERO)
    if basis > 0 and subtotal > 0:
        revenue = allocate_proportionally(line_subtotals, basis, subtotal)
    else:
        revenue = [money(a) for a in line_subtotals]
    revenue_equivalents = allocate_equivalents(
        revenue, invoice.total_amount, invoice.equivalent_amount, invoice.exchange_rate
    )

    for (account, _), amount, amount_equivalent in zip(by_account.values(), revenue, revenue_equivalents):
        if amount <= 0:
            continue
        entries.append(_entry(
            ctx, invoice, account, LedgerLineKind.REVENUE, EntryNature.CREDIT, amount, amount_equivalent,
            f"Sales Revenue ({account.code}) - Invoice {invoice.reference_number}",
        ))


def _post_discount(ctx, invoice, outcome, entries):
    discount = to_decimal(invoice.discount_amount)
    if discount <= 0:
        return
    lookup = ctx.resolve_account(invoice.discount_allowed_account_id)
    if not lookup.found:
        outcome.warn("Discount Account", f"no discount allowed account; discount of {money(discount)} not posted")
        outcome.unposted += _header_equivalent(invoice, discount)
        return
    entries.append(_entry(
        ctx, invoice, lookup.account, LedgerLineKind.DISCOUNT, EntryNature.DEBIT,
        discount, _header_equivalent(invoice, discount),
        f"Discount Allowed - Invoice {invoice.reference_number}",
    ))


def _unposted_tax(invoice, amount, wht: bool):
    # withholding is a debit, sales tax a credit
    amount_equivalent = _header_equivalent(invoice, amount)
    return amount_equivalent if wht else -amount_equivalent


def _post_tax_kind(ctx, invoice, outcome, entries, *, wht: bool):
    """Tax (credit) or withholding (debit), grouped by the tax code's account."""
    label = "WHT Account" if wht else "Tax Account"
    kind = LedgerLineKind.WHT if wht else LedgerLineKind.TAX
    nature = EntryNature.DEBIT if wht else EntryNature.CREDIT
    header_amount = to_decimal(invoice.wht_amount if wht else invoice.tax_amount)

    grouped: OrderedDict[int, list] = OrderedDict()
    line_sum = ZERO
    for line in invoice.lines:
        amount = to_decimal(line.wht_amount if wht else line.tax_amount)
        tax_code_id = line.wht_tax_id if wht else line.sales_tax_id
        tax_code = line.wht_tax if wht else line.sales_tax
        line_sum += amount
        if amount <= 0:
            continue
        if not tax_code_id:
            outcome.warn(
                label,
                f"line {line.position} ({_line_name(line)}) has amount {money(amount)} "
                "but no tax code attached; not posted",
            )
            outcome.unposted += _unposted_tax(invoice, amount, wht)
            continue
        lookup = ctx.resolve_account(tax_code.sales_tax_account_id if tax_code else None)
        if not lookup.found:
            code = tax_code.code if tax_code else tax_code_id
            outcome.warn(label, f"tax code {code} has no account; {money(amount)} not posted")
            outcome.unposted += _unposted_tax(invoice, amount, wht)
            continue
        slot = grouped.setdefault(lookup.account.id, [lookup.account, ZERO])
        slot[1] += amount

    if money(line_sum) != money(header_amount):
        outcome.warn(
            "Tax Totals",
            f"{'WHT' if wht else 'tax'} on header {money(header_amount)} does not match lines {money(line_sum)}",
        )
        outcome.unposted += _unposted_tax(invoice, header_amount - line_sum, wht)

    for account, amount in grouped.values():
        entries.append(_entry(
            ctx, invoice, account, kind, nature, amount, _header_equivalent(invoice, amount),
            f"{'Withholding Tax' if wht else 'Sales Tax'} ({account.code}) - Invoice {invoice.reference_number}",
        ))


def group_difference(entries) -> Decimal:
    """Debit minus credit equivalents of an entry set."""
    debits = sum((to_decimal(e.debit_equivalent) for e in entries), ZERO)
    credits = sum((to_decimal(e.credit_equivalent) for e in entries), ZERO)
    return money(debits - credits)


def post_invoice_entries(invoice, ctx: PostingContext) -> StepOutcome:
    """
    Build the full entry set for an invoice and add it to the session.

    Nothing is added when a critical problem is found; the outcome carries
    the critical messages and the orchestrator aborts the unit of work.
    """
    outcome = StepOutcome("General Ledger")
    entries: list[LedgerEntry] = []

    _post_cost_of_sales(ctx, invoice, outcome, entries)
    _post_settlement(ctx, invoice, outcome, entries)
    _post_revenue(ctx, invoice, outcome, entries)
    _post_discount(ctx, invoice, outcome, entries)
    _post_tax_kind(ctx, invoice, outcome, entries, wht=False)
    _post_tax_kind(ctx, invoice, outcome, entries, wht=True)

    if not outcome.ok:
        return outcome

    tolerance = to_decimal(ctx.balance_tolerance or "0.01")
    difference = group_difference(entries) + outcome.unposted
    if abs(difference) > tolerance:
        outcome.warn(
            "Balance",
            f"posting group {ctx.posting_group_id} is out of balance by {difference} (debits - credits)",
        )

    db.session.add_all(entries)
    db.session.flush()
    outcome.records.extend(entries)
    return outcome


def entries_for_group(org_id: int, posting_group_id: str) -> list[LedgerEntry]:
    return (
        db.session.query(LedgerEntry)
        .filter_by(org_id=org_id, posting_group_id=posting_group_id)
        .order_by(LedgerEntry.id)
        .all()
    )
