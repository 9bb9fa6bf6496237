# Overview: Service-layer operations for reference numbers; allocation and insert retry.

"""
Human-readable reference numbers: {PREFIX}-{YYYYMMDD}-{SEQ4}.

The sequence is global per organization and never resets; the date segment
is cosmetic. Uniqueness comes from the existence recheck here plus the
(org_id, reference_number) unique constraint and with_reference_retry at
the insert site, never from the read alone.
"""

from __future__ import annotations

import re
from datetime import date

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import ProformaInvoice, SalesInvoice, SalesTransactionRecord
from ..time_utils import utctoday
from .concurrency import is_reference_conflict, run_with_retry


INVOICE_PREFIX = "INV"
PROFORMA_PREFIX = "PF"
SALES_TRANSACTION_PREFIX = "ST"

PREFIX_MODELS = {
    INVOICE_PREFIX: SalesInvoice,
    PROFORMA_PREFIX: ProformaInvoice,
    SALES_TRANSACTION_PREFIX: SalesTransactionRecord,
}

MAX_PROBES = 100


class ReferenceExhaustedError(Exception):
    """Raised when no free reference could be produced or inserted."""
    pass


def format_reference(prefix: str, day: date, sequence: int) -> str:
    return f"{prefix}-{day.strftime('%Y%m%d')}-{sequence:04d}"


def parse_sequence(prefix: str, reference: str | None) -> int | None:
    if not reference:
        return None
    match = re.match(rf"^{re.escape(prefix)}-\d{{8}}-(\d+)$", reference)
    if not match:
        return None
    return int(match.group(1))


def allocate_reference(
    org_id: int,
    prefix: str,
    *,
    model=None,
    column=None,
    today: date | None = None,
) -> str:
    """
    Produce the next free reference for an organization.

    model/column default to the document table registered for the prefix;
    any (model, column) pair with an org_id works.
    """
    if not org_id:
        raise ReferenceExhaustedError("org_id is required to allocate a reference")
    if model is None:
        model = PREFIX_MODELS.get(prefix)
        if model is None:
            raise ReferenceExhaustedError(f"No document table registered for prefix '{prefix}'")
    if column is None:
        column = model.reference_number
    today = today or utctoday()

    last = (
        db.session.query(column)
        .filter(model.org_id == org_id, column.like(f"{prefix}-%"))
        .order_by(column.desc())
        .first()
    )
    last_sequence = parse_sequence(prefix, last[0] if last else None)
    sequence = (last_sequence or 0) + 1

    for _ in range(MAX_PROBES):
        candidate = format_reference(prefix, today, sequence)
        taken = (
            db.session.query(model.id)
            .filter(model.org_id == org_id, column == candidate)
            .first()
        )
        if not taken:
            return candidate
        sequence += 1

    raise ReferenceExhaustedError(
        f"Failed to generate unique {prefix} reference after {MAX_PROBES} attempts"
    )


def with_reference_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Run a whole allocate-then-insert attempt, retrying when the insert loses
    a race on a reference unique constraint.

    func must allocate its reference inside each call and commit; the session
    is rolled back between attempts. Other integrity errors propagate as-is.
    """
    if attempts is None:
        attempts = current_app.config.get("REFERENCE_RETRY_ATTEMPTS", 5)
    if backoff_base is None:
        backoff_base = current_app.config.get("REFERENCE_RETRY_BACKOFF", 0.05)

    try:
        return run_with_retry(
            func,
            attempts=attempts,
            backoff_base=backoff_base,
            retry_on=(IntegrityError,),
            should_retry=is_reference_conflict,
            jitter=True,
        )
    except IntegrityError as exc:
        if is_reference_conflict(exc):
            current_app.logger.warning("Reference allocation exhausted after %s attempts", attempts)
            raise ReferenceExhaustedError(
                f"Could not insert a unique reference after {attempts} attempts"
            ) from exc
        raise
