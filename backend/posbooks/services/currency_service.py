# Overview: Service-layer helpers for system-currency equivalents and money rounding.

"""
System-currency equivalents.

exchange_rate converts document currency -> system currency. Components of
a total whose equivalent is already fixed are valued proportionally against
that equivalent so they add back up to it; direct multiplication is the
fallback only when there is no enclosing total.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

FOURPLACES = Decimal("0.0001")
ZERO = Decimal("0")


class CurrencyError(ValueError):
    """Raised for unusable amounts or exchange rates."""
    pass


def to_decimal(value, field: str = "amount") -> Decimal:
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise CurrencyError(f"{field} must be numeric") from None


def money(value) -> Decimal:
    """Quantize to 4 decimal places, half-up."""
    return to_decimal(value).quantize(FOURPLACES, rounding=ROUND_HALF_UP)


def _rate(rate) -> Decimal:
    rate = to_decimal(rate, "exchange_rate")
    if rate <= 0:
        raise CurrencyError("exchange_rate must be greater than zero")
    return rate


def equivalent(amount, rate, total=None, total_equivalent=None) -> Decimal:
    """
    System-currency value of a document-currency amount.

    (amount / total) * total_equivalent when a positive total/equivalent
    pair is supplied, otherwise amount * rate.
    """
    amount = to_decimal(amount)
    total = to_decimal(total) if total is not None else None
    total_equivalent = to_decimal(total_equivalent) if total_equivalent is not None else None

    if total is not None and total_equivalent is not None and total > 0 and total_equivalent > 0:
        return money(amount / total * total_equivalent)
    return money(amount * _rate(rate))


def document_equivalent(total, rate) -> Decimal:
    """Equivalent fixed on a document header at write time."""
    return money(to_decimal(total) * _rate(rate))


def to_document_currency(system_amount, rate) -> Decimal:
    """Reverse direction, e.g. a system-currency cost shown on a document."""
    return money(to_decimal(system_amount) / _rate(rate))


def allocate_proportionally(amounts, basis, target) -> list[Decimal]:
    """
    Split target across amounts in proportion to amount / basis.

    When the amounts add up to basis, the last share absorbs the rounding
    remainder so the shares add up to target exactly.
    """
    amounts = [to_decimal(a) for a in amounts]
    basis = to_decimal(basis)
    target = to_decimal(target)
    if basis == 0:
        return [ZERO for _ in amounts]
    results = [money(a / basis * target) for a in amounts]
    if results and sum(amounts, ZERO) == basis:
        results[-1] = money(results[-1] + money(target) - sum(results, ZERO))
    return results


def allocate_equivalents(amounts, total, total_equivalent, rate) -> list[Decimal]:
    """
    Proportional equivalents for components of one total, falling back to
    amount * rate when there is no usable total/equivalent pair.
    """
    total = to_decimal(total)
    total_equivalent = to_decimal(total_equivalent)
    if total > 0 and total_equivalent > 0:
        return allocate_proportionally(amounts, total, total_equivalent)
    return [equivalent(a, rate) for a in amounts]
