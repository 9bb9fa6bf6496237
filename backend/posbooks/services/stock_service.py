# Overview: Service-layer operations for stock allocation; validates and decrements inventory.

"""
Stock allocation for posted invoice lines.

Three mechanisms are drawn down per line: bulk quantity (ProductStore),
batch lots (ProductBatch) and serialized units (ProductSerialNumber).
Service products carry no stock and are skipped.

Checks run twice: find_stock_problems() collects every problem up front so
the caller gets one complete list, then allocate_invoice_stock() repeats
them under row locks at decrement time. A failure in the locked pass after
a clean eager pass means another writer got there first.
"""

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..models import (
    ProductBatch,
    ProductSerialNumber,
    ProductStore,
    ProductTransaction,
)
from ..models.enums import LedgerSource, LotStatus, SerialStatus
from ..time_utils import as_calendar_date, utcnow
from .concurrency import lock_for_update
from .currency_service import equivalent, to_decimal
from .outcome import StepOutcome


class StockError(ValueError):
    """Base class for stock allocation failures."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class InsufficientStock(StockError):
    pass


class StockRecordMissing(StockError):
    pass


class BatchNotFound(StockError):
    pass


class BatchMismatch(StockError):
    pass


class InsufficientBatchStock(StockError):
    pass


class SerialNotFound(StockError):
    pass


class SerialNotActive(StockError):
    pass


class SerialAlreadyConsumed(StockError):
    pass


class StockValidationError(StockError):
    """Every problem found by the eager pass, raised as one error."""
    def __init__(self, problems: list[StockError]):
        self.problems = problems
        summary = "; ".join(str(p) for p in problems)
        super().__init__(
            f"Stock validation failed: {summary}",
            details={
                "problems": [
                    {"error": type(p).__name__, "message": str(p), **p.details}
                    for p in problems
                ]
            },
        )


class ConcurrentStockConflict(StockError):
    """Stock changed between the eager check and the locked decrement."""
    pass


def _stock_lines(invoice):
    return [line for line in invoice.lines if line.product is not None and not line.product.is_service]


def _line_label(line) -> str:
    product = line.product
    name = product.name if product is not None else f"product {line.product_id}"
    return f"line {line.position} ({name})"


def _serials(line) -> list[str]:
    return [str(s).strip() for s in (line.serial_numbers or []) if str(s).strip()]


def _check_bulk(row, line, required: Decimal, store_id: int) -> StockError | None:
    if row is None:
        return StockRecordMissing(
            f"No stock record for {_line_label(line)} in store {store_id}",
            details={"product_id": line.product_id, "store_id": store_id},
        )
    available = to_decimal(row.quantity)
    if available < required:
        return InsufficientStock(
            f"Insufficient stock for {_line_label(line)}: available {available}, required {required}",
            details={
                "product_id": line.product_id,
                "store_id": store_id,
                "available": str(available),
                "required": str(required),
            },
        )
    return None


def _check_batch(batch, line, required: Decimal) -> StockError | None:
    batch_number = line.batch_number.strip()
    if batch is None:
        return BatchNotFound(
            f"Batch {batch_number} not found for {_line_label(line)}",
            details={"product_id": line.product_id, "batch_number": batch_number},
        )
    stored = as_calendar_date(batch.expiry_date)
    wanted = as_calendar_date(line.expiry_date)
    if stored != wanted:
        return BatchMismatch(
            f"Batch {batch_number} expiry mismatch for {_line_label(line)}: "
            f"stored {stored.isoformat() if stored else None}, line {wanted.isoformat() if wanted else None}",
            details={
                "product_id": line.product_id,
                "batch_number": batch_number,
                "stored_expiry_date": stored.isoformat() if stored else None,
                "line_expiry_date": wanted.isoformat() if wanted else None,
            },
        )
    available = to_decimal(batch.current_quantity)
    if available < required:
        return InsufficientBatchStock(
            f"Insufficient quantity in batch {batch_number}: available {available}, required {required}",
            details={
                "product_id": line.product_id,
                "batch_number": batch_number,
                "available": str(available),
                "required": str(required),
            },
        )
    return None


def _check_serial(unit, line, serial: str, seen: set) -> StockError | None:
    details = {"product_id": line.product_id, "serial_number": serial}
    if unit is None:
        return SerialNotFound(f"Serial number {serial} not found for {_line_label(line)}", details=details)
    if unit.status != SerialStatus.ACTIVE:
        return SerialNotActive(
            f"Serial number {serial} is not active (status {unit.status.value})", details=details
        )
    if (unit.current_quantity or 0) <= 0 or (line.product_id, serial) in seen:
        return SerialAlreadyConsumed(f"Serial number {serial} has already been sold", details=details)
    return None


def _bulk_query(product_id: int, store_id: int):
    return db.session.query(ProductStore).filter_by(product_id=product_id, store_id=store_id)


def _batch_query(product_id: int, store_id: int, batch_number: str):
    return db.session.query(ProductBatch).filter_by(
        product_id=product_id, store_id=store_id, batch_number=batch_number
    )


def _serial_query(product_id: int, store_id: int, serial: str):
    return db.session.query(ProductSerialNumber).filter_by(
        product_id=product_id, store_id=store_id, serial_number=serial
    )


def find_stock_problems(invoice) -> list[StockError]:
    """Run every stock check without changing anything."""
    problems: list[StockError] = []
    store_id = invoice.store_id
    reserved_bulk: dict[int, Decimal] = {}
    reserved_batch: dict[tuple[int, str], Decimal] = {}
    seen_serials: set[tuple[int, str]] = set()

    for line in _stock_lines(invoice):
        quantity = to_decimal(line.quantity)

        required = reserved_bulk.get(line.product_id, Decimal("0")) + quantity
        reserved_bulk[line.product_id] = required
        problem = _check_bulk(_bulk_query(line.product_id, store_id).first(), line, required, store_id)
        if problem:
            problems.append(problem)

        if line.batch_number and line.batch_number.strip():
            key = (line.product_id, line.batch_number.strip())
            batch_required = reserved_batch.get(key, Decimal("0")) + quantity
            reserved_batch[key] = batch_required
            batch = _batch_query(line.product_id, store_id, key[1]).first()
            problem = _check_batch(batch, line, batch_required)
            if problem:
                problems.append(problem)

        for serial in _serials(line):
            unit = _serial_query(line.product_id, store_id, serial).first()
            problem = _check_serial(unit, line, serial, seen_serials)
            if problem:
                problems.append(problem)
            seen_serials.add((line.product_id, serial))

    return problems


def validate_invoice_stock(invoice) -> None:
    problems = find_stock_problems(invoice)
    if problems:
        raise StockValidationError(problems)


def _conflict(error: StockError, validated: bool) -> StockError:
    if not validated:
        return error
    conflict = ConcurrentStockConflict(
        f"Stock changed while posting: {error}",
        details={"cause": type(error).__name__, **error.details},
    )
    conflict.__cause__ = error
    return conflict


def allocate_invoice_stock(invoice, *, actor_id: int | None = None, validated: bool = True) -> StepOutcome:
    """
    Decrement stock for every goods line under row locks and write one
    ProductTransaction per line.

    validated=True means find_stock_problems() already came back clean for
    this invoice, so any failure here is reported as ConcurrentStockConflict.
    """
    outcome = StepOutcome("Stock")
    store_id = invoice.store_id
    now = utcnow()

    for line in _stock_lines(invoice):
        quantity = to_decimal(line.quantity)

        row = lock_for_update(_bulk_query(line.product_id, store_id)).first()
        problem = _check_bulk(row, line, quantity, store_id)
        if problem:
            raise _conflict(problem, validated)
        before = to_decimal(row.quantity)
        row.quantity = before - quantity
        outcome.records.append({
            "kind": "bulk",
            "product_id": line.product_id,
            "store_id": store_id,
            "quantity_before": str(before),
            "quantity_after": str(row.quantity),
        })

        batch_number = line.batch_number.strip() if line.batch_number else None
        if batch_number:
            batch = lock_for_update(_batch_query(line.product_id, store_id, batch_number)).first()
            problem = _check_batch(batch, line, quantity)
            if problem:
                raise _conflict(problem, validated)
            batch.current_quantity = to_decimal(batch.current_quantity) - quantity
            batch.total_sold = to_decimal(batch.total_sold) + quantity
            if batch.current_quantity <= 0:
                batch.status = LotStatus.SOLD
            outcome.records.append({
                "kind": "batch",
                "product_id": line.product_id,
                "store_id": store_id,
                "batch_number": batch_number,
                "quantity_after": str(batch.current_quantity),
                "status": batch.status.value,
            })

        serials = _serials(line)
        for serial in serials:
            unit = lock_for_update(_serial_query(line.product_id, store_id, serial)).first()
            problem = _check_serial(unit, line, serial, set())
            if problem:
                raise _conflict(problem, validated)
            unit.current_quantity = 0
            unit.status = SerialStatus.SOLD
            unit.sold_at = now
            unit.sales_invoice_id = invoice.id
            outcome.records.append({
                "kind": "serial",
                "product_id": line.product_id,
                "store_id": store_id,
                "serial_number": serial,
                "status": unit.status.value,
            })

        db.session.add(ProductTransaction(
            org_id=invoice.org_id,
            product_id=line.product_id,
            store_id=store_id,
            source=LedgerSource.SALES_INVOICE,
            source_id=invoice.id,
            reference_number=invoice.reference_number,
            transaction_date=invoice.invoice_date,
            quantity_out=quantity,
            unit_price=line.unit_price,
            unit_price_equivalent=equivalent(line.unit_price, invoice.exchange_rate),
            average_cost=line.product.average_cost or 0,
            batch_number=batch_number,
            serial_numbers=serials or None,
            created_by=actor_id,
        ))

    db.session.flush()
    return outcome


def movements_for(invoice) -> list[ProductTransaction]:
    return (
        db.session.query(ProductTransaction)
        .filter_by(source=LedgerSource.SALES_INVOICE, source_id=invoice.id)
        .order_by(ProductTransaction.id)
        .all()
    )
