# Overview: Service-layer operations for proforma invoices; CRUD, lifecycle actions and conversion to sales invoices.

"""
Proforma (quotation) service.

Conversion creates a draft sales invoice from the proforma's header and
lines and marks the proforma converted. A proforma converts at most once:
the unique proforma_invoice_id link on sales_invoices is checked before the
invoice is created and enforced again by the constraint on insert.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import ProformaInvoice, ProformaInvoiceLine, SalesInvoice, SalesInvoiceLine
from ..models.enums import InvoiceStatus, ProformaStatus
from ..time_utils import utcnow, utctoday
from ..validation import ConflictError, NotFoundError, ValidationError, parse_date, parse_int
from .concurrency import lock_for_update
from .document_service import apply_header, build_lines, compute_totals, copy_lines, scoped_get
from .lifecycle_service import (
    expire_stale_proformas,
    require_proforma_draft,
    require_proforma_transition,
)
from .reference_service import INVOICE_PREFIX, PROFORMA_PREFIX, allocate_reference, with_reference_retry
from .sales_transaction_service import sync_invoice_records


def _apply_proforma_fields(proforma: ProformaInvoice, payload: dict, org_id: int, *, creating: bool) -> None:
    apply_header(proforma, payload, org_id, creating=creating)
    if creating or "proforma_date" in payload:
        proforma.proforma_date = parse_date(payload.get("proforma_date"), "proforma_date") or utctoday()
    if creating or "valid_until" in payload:
        proforma.valid_until = parse_date(payload.get("valid_until"), "valid_until")
        if proforma.valid_until and proforma.valid_until < proforma.proforma_date:
            raise ValidationError("valid_until must not be before proforma_date")


def _locked(org_id: int, proforma_id: int) -> ProformaInvoice:
    proforma = lock_for_update(
        db.session.query(ProformaInvoice).filter_by(id=proforma_id, org_id=org_id)
    ).first()
    if proforma is None:
        raise NotFoundError("Proforma invoice not found")
    return proforma


def get_proforma(org_id: int, proforma_id: int) -> ProformaInvoice:
    expire_stale_proformas(org_id)
    proforma = scoped_get(ProformaInvoice, proforma_id, org_id)
    if proforma is None:
        raise NotFoundError("Proforma invoice not found")
    db.session.commit()
    return proforma


def list_proformas(
    org_id: int,
    *,
    status=None,
    customer_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[ProformaInvoice], int]:
    expire_stale_proformas(org_id)
    db.session.commit()

    query = db.session.query(ProformaInvoice).filter(ProformaInvoice.org_id == org_id)
    if status:
        query = query.filter(ProformaInvoice.status == ProformaStatus.parse(status))
    if customer_id:
        query = query.filter(ProformaInvoice.customer_id == customer_id)

    total = query.count()
    rows = (
        query.order_by(ProformaInvoice.proforma_date.desc(), ProformaInvoice.id.desc())
        .limit(min(max(limit, 1), 500))
        .offset(max(offset, 0))
        .all()
    )
    return rows, total


def create_proforma(
    org_id: int,
    payload: dict,
    *,
    actor_id: int | None = None,
    actor_name: str | None = None,
) -> ProformaInvoice:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    def _op():
        proforma = ProformaInvoice(
            org_id=org_id,
            status=ProformaStatus.DRAFT,
            created_by=actor_id,
            created_by_name=actor_name,
        )
        _apply_proforma_fields(proforma, payload, org_id, creating=True)
        proforma.lines = build_lines(ProformaInvoiceLine, payload.get("lines"), org_id)
        compute_totals(proforma, payload.get("paid_amount", 0))
        proforma.reference_number = allocate_reference(org_id, PROFORMA_PREFIX)
        db.session.add(proforma)
        db.session.commit()
        return proforma

    return with_reference_retry(_op)


def update_proforma(org_id: int, proforma_id: int, payload: dict, *, actor_id: int | None = None) -> ProformaInvoice:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    try:
        proforma = _locked(org_id, proforma_id)
        require_proforma_draft(proforma)
        _apply_proforma_fields(proforma, payload, org_id, creating=False)
        if "lines" in payload:
            proforma.lines = build_lines(ProformaInvoiceLine, payload.get("lines"), org_id)
        compute_totals(proforma, payload.get("paid_amount"))
        proforma.updated_by = actor_id
        db.session.commit()
        return proforma
    except Exception:
        db.session.rollback()
        raise


def delete_proforma(org_id: int, proforma_id: int) -> None:
    proforma = scoped_get(ProformaInvoice, proforma_id, org_id)
    if proforma is None:
        raise NotFoundError("Proforma invoice not found")
    require_proforma_draft(proforma)
    db.session.delete(proforma)
    db.session.commit()


def _transition(org_id: int, proforma_id: int, to_status, apply, *, actor_id: int | None) -> ProformaInvoice:
    try:
        expire_stale_proformas(org_id)
        proforma = _locked(org_id, proforma_id)
        require_proforma_transition(proforma, to_status)
        proforma.status = to_status
        proforma.updated_by = actor_id
        apply(proforma)
        db.session.commit()
        return proforma
    except Exception:
        db.session.rollback()
        raise


def send_proforma(org_id: int, proforma_id: int, *, actor_id: int | None = None) -> ProformaInvoice:
    def _apply(proforma):
        proforma.sent_by = actor_id
        proforma.sent_at = utcnow()
    return _transition(org_id, proforma_id, ProformaStatus.SENT, _apply, actor_id=actor_id)


def accept_proforma(org_id: int, proforma_id: int, *, actor_id: int | None = None) -> ProformaInvoice:
    def _apply(proforma):
        proforma.accepted_by = actor_id
        proforma.accepted_at = utcnow()
    return _transition(org_id, proforma_id, ProformaStatus.ACCEPTED, _apply, actor_id=actor_id)


def reject_proforma(org_id: int, proforma_id: int, reason: str | None, *, actor_id: int | None = None) -> ProformaInvoice:
    if not reason or not str(reason).strip():
        raise ValidationError("rejection_reason is required")

    def _apply(proforma):
        proforma.rejected_by = actor_id
        proforma.rejected_at = utcnow()
        proforma.rejection_reason = str(reason).strip()
    return _transition(org_id, proforma_id, ProformaStatus.REJECTED, _apply, actor_id=actor_id)


def reopen_proforma(org_id: int, proforma_id: int, valid_until, *, actor_id: int | None = None) -> ProformaInvoice:
    """expired -> draft, with a new expiry date that must lie in the future."""
    new_valid_until = parse_date(valid_until, "valid_until", required=True)
    if new_valid_until <= utctoday():
        raise ValidationError("valid_until must be a future date to reopen a proforma")

    def _apply(proforma):
        proforma.valid_until = new_valid_until
    return _transition(org_id, proforma_id, ProformaStatus.DRAFT, _apply, actor_id=actor_id)


def convert_proforma(
    org_id: int,
    proforma_id: int,
    payload: dict | None = None,
    *,
    actor_id: int | None = None,
    actor_name: str | None = None,
) -> SalesInvoice:
    """
    Create a draft sales invoice from a sent or accepted proforma.

    Raises ConflictError if the proforma was already converted.
    """
    payload = payload or {}
    expire_stale_proformas(org_id)
    db.session.commit()

    def _op():
        proforma = _locked(org_id, proforma_id)

        linked = (
            db.session.query(SalesInvoice.id)
            .filter_by(org_id=org_id, proforma_invoice_id=proforma.id)
            .first()
        )
        if proforma.is_converted or linked is not None:
            raise ConflictError(
                f"Proforma {proforma.reference_number} has already been converted to a sales invoice"
            )
        require_proforma_transition(proforma, ProformaStatus.CONVERTED)

        invoice_date = parse_date(payload.get("invoice_date"), "invoice_date") or utctoday()
        due_date = parse_date(payload.get("due_date"), "due_date")
        if due_date is None:
            due_date = invoice_date + timedelta(days=current_app.config.get("DEFAULT_INVOICE_DUE_DAYS", 30))

        invoice = SalesInvoice(
            org_id=org_id,
            store_id=proforma.store_id,
            customer_id=proforma.customer_id,
            currency_id=proforma.currency_id,
            system_currency_id=proforma.system_currency_id,
            financial_year_id=proforma.financial_year_id,
            exchange_rate=proforma.exchange_rate,
            receivable_account_id=proforma.receivable_account_id,
            discount_allowed_account_id=proforma.discount_allowed_account_id,
            payment_account_id=parse_int(payload.get("payment_account_id"), "payment_account_id"),
            invoice_date=invoice_date,
            due_date=due_date,
            status=InvoiceStatus.DRAFT,
            proforma_invoice_id=proforma.id,
            notes=proforma.notes,
            terms_conditions=proforma.terms_conditions,
            created_by=actor_id,
            created_by_name=actor_name,
        )
        invoice.lines = copy_lines(proforma.lines, SalesInvoiceLine)
        compute_totals(invoice, proforma.paid_amount)
        invoice.reference_number = allocate_reference(org_id, INVOICE_PREFIX)
        db.session.add(invoice)

        proforma.status = ProformaStatus.CONVERTED
        proforma.is_converted = True
        proforma.converted_by = actor_id
        proforma.converted_at = utcnow()

        db.session.flush()
        sync_invoice_records(invoice, actor_id=actor_id)
        db.session.commit()
        return invoice

    try:
        return with_reference_retry(_op)
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("Proforma has already been converted to a sales invoice") from exc
    except Exception:
        db.session.rollback()
        raise
