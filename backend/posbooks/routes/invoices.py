# Overview: Flask API routes for sales invoices; parses input and returns JSON responses.

"""Sales invoice API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..services import invoice_service
from ..services.currency_service import CurrencyError
from ..services.invoice_service import PostingContextError
from ..services.ledger_service import LedgerPostingError
from ..services.lifecycle_service import LifecycleError
from ..services.reference_service import ReferenceExhaustedError
from ..services.stock_service import StockError
from ..validation import NotFoundError, ValidationError


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")

DOMAIN_ERRORS = (
    ValidationError,
    LifecycleError,
    PostingContextError,
    LedgerPostingError,
    StockError,
    CurrencyError,
)


def _domain_error(e):
    return jsonify({"error": str(e), "details": getattr(e, "details", {})}), 400


@invoices_bp.get("")
@require_tenant
def list_invoices_route():
    limit = request.args.get("limit", 100, type=int)
    offset = request.args.get("offset", 0, type=int)
    try:
        rows, total = invoice_service.list_invoices(
            g.org_id,
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            store_id=request.args.get("store_id", type=int),
            limit=limit,
            offset=offset,
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({
        "items": [row.to_dict(include_lines=False) for row in rows],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@invoices_bp.get("/<int:invoice_id>")
@require_tenant
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(g.org_id, invoice_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"invoice": invoice.to_dict()})


@invoices_bp.post("")
@require_tenant
def create_invoice_route():
    """Create a draft invoice (or a scheduled template)."""
    try:
        invoice = invoice_service.create_invoice(
            g.org_id,
            request.get_json(silent=True),
            actor_id=g.actor_id,
            actor_name=g.actor_name,
        )
        return jsonify({"invoice": invoice.to_dict()}), 201
    except ReferenceExhaustedError as e:
        return jsonify({"error": str(e)}), 409
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to create sales invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.put("/<int:invoice_id>")
@require_tenant
def update_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.update_invoice(
            g.org_id, invoice_id, request.get_json(silent=True), actor_id=g.actor_id
        )
        return jsonify({"invoice": invoice.to_dict()})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ReferenceExhaustedError as e:
        return jsonify({"error": str(e)}), 409
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to update sales invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.delete("/<int:invoice_id>")
@require_tenant
def delete_invoice_route(invoice_id: int):
    try:
        invoice_service.delete_invoice(g.org_id, invoice_id)
        return jsonify({"deleted": True, "id": invoice_id})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to delete sales invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/send")
@require_tenant
def send_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.send_invoice(g.org_id, invoice_id, actor_id=g.actor_id)
        return jsonify({"invoice": invoice.to_dict()})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to send sales invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/approve")
@require_tenant
def approve_invoice_route(invoice_id: int):
    """
    Approve and post an invoice.

    200 with the posting result (warnings included); re-approving a posted
    invoice returns the existing posting with already_posted=true.
    """
    try:
        result = invoice_service.approve_invoice(
            g.org_id, invoice_id, actor_id=g.actor_id, actor_name=g.actor_name
        )
        return jsonify(result.to_dict())
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ReferenceExhaustedError as e:
        return jsonify({"error": str(e)}), 409
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to approve sales invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/reject")
@require_tenant
def reject_invoice_route(invoice_id: int):
    data = request.get_json(silent=True) or {}
    try:
        invoice = invoice_service.reject_invoice(
            g.org_id, invoice_id, data.get("rejection_reason"), actor_id=g.actor_id
        )
        return jsonify({"invoice": invoice.to_dict()})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to reject sales invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/cancel")
@require_tenant
def cancel_invoice_route(invoice_id: int):
    data = request.get_json(silent=True) or {}
    try:
        invoice = invoice_service.cancel_invoice(
            g.org_id, invoice_id, data.get("cancellation_reason"), actor_id=g.actor_id
        )
        return jsonify({"invoice": invoice.to_dict()})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to cancel sales invoice")
        return jsonify({"error": "Internal server error"}), 500
