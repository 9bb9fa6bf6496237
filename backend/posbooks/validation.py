# Overview: Input validation helpers that normalize JSON payloads for document services.

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from .time_utils import as_calendar_date


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., converting a proforma twice)."""


class NotFoundError(ValueError):
    """404-level: the document does not exist in the caller's organization."""


def parse_int(value: Any, field: str, *, required: bool = False) -> int | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer")


def parse_decimal(value: Any, field: str, *, default: str | None = "0", minimum: Decimal | None = None) -> Decimal | None:
    if value is None or value == "":
        return Decimal(default) if default is not None else None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be numeric")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be numeric") from None
    if not result.is_finite():
        raise ValidationError(f"{field} must be numeric")
    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return result


def parse_date(value: Any, field: str, *, required: bool = False) -> date | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    try:
        return as_calendar_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date") from None


def parse_enum(enum_cls, value: Any, field: str, *, default=None):
    if value is None or value == "":
        return default
    try:
        return enum_cls.parse(value)
    except ValueError as exc:
        raise ValidationError(f"{field}: {exc}") from None


def parse_serials(value: Any, field: str = "serial_numbers") -> list[str] | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list of strings")
    serials = [str(s).strip() for s in value if str(s).strip()]
    return serials or None


def parse_lines(raw_lines: Any) -> list[dict]:
    """
    Normalize document lines. Amounts are Decimals; position defaults to the
    line's 1-based number when the client does not send one.
    """
    if not isinstance(raw_lines, list) or not raw_lines:
        raise ValidationError("lines must be a non-empty list")

    lines = []
    for index, raw in enumerate(raw_lines):
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{index}] must be an object")
        prefix = f"lines[{index}]"
        quantity = parse_decimal(raw.get("quantity"), f"{prefix}.quantity", default=None)
        if quantity is None or quantity <= 0:
            raise ValidationError(f"{prefix}.quantity must be greater than zero")
        lines.append({
            "position": parse_int(raw.get("position"), f"{prefix}.position") if raw.get("position") is not None else index + 1,
            "product_id": parse_int(raw.get("product_id"), f"{prefix}.product_id", required=True),
            "quantity": quantity,
            "unit_price": parse_decimal(raw.get("unit_price"), f"{prefix}.unit_price", minimum=Decimal("0")),
            "discount_amount": parse_decimal(raw.get("discount_amount"), f"{prefix}.discount_amount", minimum=Decimal("0")),
            "tax_amount": parse_decimal(raw.get("tax_amount"), f"{prefix}.tax_amount", minimum=Decimal("0")),
            "sales_tax_id": parse_int(raw.get("sales_tax_id"), f"{prefix}.sales_tax_id"),
            "wht_amount": parse_decimal(raw.get("wht_amount"), f"{prefix}.wht_amount", minimum=Decimal("0")),
            "wht_tax_id": parse_int(raw.get("wht_tax_id"), f"{prefix}.wht_tax_id"),
            "batch_number": (str(raw["batch_number"]).strip() or None) if raw.get("batch_number") else None,
            "expiry_date": parse_date(raw.get("expiry_date"), f"{prefix}.expiry_date"),
            "serial_numbers": parse_serials(raw.get("serial_numbers"), f"{prefix}.serial_numbers"),
            "notes": raw.get("notes"),
        })
    return lines
