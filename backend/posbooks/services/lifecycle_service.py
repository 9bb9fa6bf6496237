# Overview: Service-layer state machine for sales invoices and proformas; validates transitions and flags stale documents.

"""
Document lifecycle.

PROFORMA:
    draft -> sent -> accepted | rejected | expired
    expired -> draft          (reopen, needs a future valid_until)
    sent | accepted -> converted   (one-way, at most once)

SALES INVOICE:
    draft -> sent
    draft | sent | overdue -> approved            (posting)
    draft | sent | overdue | approved -> rejected
    draft | sent | overdue | approved -> cancelled

Structural edits are only allowed in draft. Expiry (proformas) and overdue
(invoices) are evaluated on read rather than by a background job.
"""

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import ProformaInvoice, SalesInvoice
from ..models.enums import InvoiceStatus, ProformaStatus
from ..time_utils import utctoday


class LifecycleError(ValueError):
    """
    Raised when an invalid lifecycle transition is attempted.

    This is a domain error, not a technical error.
    """
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


PROFORMA_TRANSITIONS = {
    ProformaStatus.DRAFT: {ProformaStatus.SENT},
    ProformaStatus.SENT: {
        ProformaStatus.ACCEPTED,
        ProformaStatus.REJECTED,
        ProformaStatus.EXPIRED,
        ProformaStatus.CONVERTED,
    },
    ProformaStatus.ACCEPTED: {ProformaStatus.CONVERTED},
    ProformaStatus.EXPIRED: {ProformaStatus.DRAFT},
    ProformaStatus.REJECTED: set(),
    ProformaStatus.CONVERTED: set(),
}

INVOICE_TRANSITIONS = {
    InvoiceStatus.DRAFT: {
        InvoiceStatus.SENT,
        InvoiceStatus.APPROVED,
        InvoiceStatus.REJECTED,
        InvoiceStatus.CANCELLED,
    },
    InvoiceStatus.SENT: {
        InvoiceStatus.APPROVED,
        InvoiceStatus.REJECTED,
        InvoiceStatus.CANCELLED,
        InvoiceStatus.OVERDUE,
    },
    InvoiceStatus.OVERDUE: {
        InvoiceStatus.APPROVED,
        InvoiceStatus.REJECTED,
        InvoiceStatus.CANCELLED,
    },
    InvoiceStatus.APPROVED: {InvoiceStatus.REJECTED, InvoiceStatus.CANCELLED},
    InvoiceStatus.REJECTED: set(),
    InvoiceStatus.CANCELLED: set(),
}


def can_transition_proforma(from_status, to_status) -> bool:
    return ProformaStatus.parse(to_status) in PROFORMA_TRANSITIONS[ProformaStatus.parse(from_status)]


def can_transition_invoice(from_status, to_status) -> bool:
    return InvoiceStatus.parse(to_status) in INVOICE_TRANSITIONS[InvoiceStatus.parse(from_status)]


def require_proforma_transition(proforma: ProformaInvoice, to_status) -> ProformaStatus:
    to_status = ProformaStatus.parse(to_status)
    if not can_transition_proforma(proforma.status, to_status):
        raise LifecycleError(
            f"Cannot move proforma {proforma.reference_number} from {proforma.status.value} to {to_status.value}",
            details={"from": proforma.status.value, "to": to_status.value},
        )
    return to_status


def require_invoice_transition(invoice: SalesInvoice, to_status) -> InvoiceStatus:
    to_status = InvoiceStatus.parse(to_status)
    if not can_transition_invoice(invoice.status, to_status):
        raise LifecycleError(
            f"Cannot move invoice {invoice.reference_number} from {invoice.status.value} to {to_status.value}",
            details={"from": invoice.status.value, "to": to_status.value},
        )
    return to_status


def require_invoice_draft(invoice: SalesInvoice) -> None:
    if invoice.status != InvoiceStatus.DRAFT:
        raise LifecycleError(
            f"Invoice {invoice.reference_number} is {invoice.status.value}; only draft invoices can be edited",
            details={"status": invoice.status.value},
        )


def require_proforma_draft(proforma: ProformaInvoice) -> None:
    if proforma.status != ProformaStatus.DRAFT:
        raise LifecycleError(
            f"Proforma {proforma.reference_number} is {proforma.status.value}; only draft proformas can be edited",
            details={"status": proforma.status.value},
        )


def expire_stale_proformas(org_id: int, *, today: date | None = None) -> int:
    """
    Flag draft/sent proformas whose valid_until has passed as expired.

    Runs on every list/detail read. Flushes but does not commit; the caller
    commits with the rest of its request.
    """
    today = today or utctoday()
    stale = (
        db.session.query(ProformaInvoice)
        .filter(
            ProformaInvoice.org_id == org_id,
            ProformaInvoice.status.in_([ProformaStatus.DRAFT, ProformaStatus.SENT]),
            ProformaInvoice.valid_until.isnot(None),
            ProformaInvoice.valid_until < today,
        )
        .all()
    )
    for proforma in stale:
        proforma.status = ProformaStatus.EXPIRED
    if stale:
        db.session.flush()
    return len(stale)


def flag_overdue_invoices(org_id: int, *, today: date | None = None) -> int:
    """Flag sent invoices whose due_date has passed as overdue."""
    today = today or utctoday()
    overdue = (
        db.session.query(SalesInvoice)
        .filter(
            SalesInvoice.org_id == org_id,
            SalesInvoice.status == InvoiceStatus.SENT,
            SalesInvoice.due_date.isnot(None),
            SalesInvoice.due_date < today,
        )
        .all()
    )
    for invoice in overdue:
        invoice.status = InvoiceStatus.OVERDUE
    if overdue:
        db.session.flush()
    return len(overdue)
