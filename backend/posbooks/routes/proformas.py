# Overview: Flask API routes for proforma invoices; parses input and returns JSON responses.

"""Proforma invoice API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_tenant
from ..services import proforma_service
from ..services.currency_service import CurrencyError
from ..services.lifecycle_service import LifecycleError
from ..services.reference_service import ReferenceExhaustedError
from ..validation import ConflictError, NotFoundError, ValidationError


proformas_bp = Blueprint("proformas", __name__, url_prefix="/api/proformas")

DOMAIN_ERRORS = (ValidationError, LifecycleError, CurrencyError)


def _domain_error(e):
    return jsonify({"error": str(e), "details": getattr(e, "details", {})}), 400


@proformas_bp.get("")
@require_tenant
def list_proformas_route():
    limit = request.args.get("limit", 100, type=int)
    offset = request.args.get("offset", 0, type=int)
    try:
        rows, total = proforma_service.list_proformas(
            g.org_id,
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
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


@proformas_bp.get("/<int:proforma_id>")
@require_tenant
def get_proforma_route(proforma_id: int):
    try:
        proforma = proforma_service.get_proforma(g.org_id, proforma_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"proforma": proforma.to_dict()})


@proformas_bp.post("")
@require_tenant
def create_proforma_route():
    try:
        proforma = proforma_service.create_proforma(
            g.org_id,
            request.get_json(silent=True),
            actor_id=g.actor_id,
            actor_name=g.actor_name,
        )
        return jsonify({"proforma": proforma.to_dict()}), 201
    except ReferenceExhaustedError as e:
        return jsonify({"error": str(e)}), 409
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to create proforma invoice")
        return jsonify({"error": "Internal server error"}), 500


@proformas_bp.put("/<int:proforma_id>")
@require_tenant
def update_proforma_route(proforma_id: int):
    try:
        proforma = proforma_service.update_proforma(
            g.org_id, proforma_id, request.get_json(silent=True), actor_id=g.actor_id
        )
        return jsonify({"proforma": proforma.to_dict()})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to update proforma invoice")
        return jsonify({"error": "Internal server error"}), 500


@proformas_bp.delete("/<int:proforma_id>")
@require_tenant
def delete_proforma_route(proforma_id: int):
    try:
        proforma_service.delete_proforma(g.org_id, proforma_id)
        return jsonify({"deleted": True, "id": proforma_id})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to delete proforma invoice")
        return jsonify({"error": "Internal server error"}), 500


def _transition_route(action, proforma_id: int, *args):
    try:
        proforma = action(g.org_id, proforma_id, *args, actor_id=g.actor_id)
        return jsonify({"proforma": proforma.to_dict()})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to change proforma status")
        return jsonify({"error": "Internal server error"}), 500


@proformas_bp.post("/<int:proforma_id>/send")
@require_tenant
def send_proforma_route(proforma_id: int):
    return _transition_route(proforma_service.send_proforma, proforma_id)


@proformas_bp.post("/<int:proforma_id>/accept")
@require_tenant
def accept_proforma_route(proforma_id: int):
    return _transition_route(proforma_service.accept_proforma, proforma_id)


@proformas_bp.post("/<int:proforma_id>/reject")
@require_tenant
def reject_proforma_route(proforma_id: int):
    data = request.get_json(silent=True) or {}
    return _transition_route(proforma_service.reject_proforma, proforma_id, data.get("rejection_reason"))


@proformas_bp.post("/<int:proforma_id>/reopen")
@require_tenant
def reopen_proforma_route(proforma_id: int):
    """expired -> draft; body must carry a future valid_until."""
    data = request.get_json(silent=True) or {}
    return _transition_route(proforma_service.reopen_proforma, proforma_id, data.get("valid_until"))


@proformas_bp.post("/<int:proforma_id>/convert")
@require_tenant
def convert_proforma_route(proforma_id: int):
    """
    Convert a sent or accepted proforma into a draft sales invoice.

    409 when the proforma was already converted.
    """
    try:
        invoice = proforma_service.convert_proforma(
            g.org_id,
            proforma_id,
            request.get_json(silent=True) or {},
            actor_id=g.actor_id,
            actor_name=g.actor_name,
        )
        return jsonify({"invoice": invoice.to_dict()}), 201
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ConflictError, ReferenceExhaustedError) as e:
        return jsonify({"error": str(e)}), 409
    except DOMAIN_ERRORS as e:
        return _domain_error(e)
    except Exception:
        current_app.logger.exception("Failed to convert proforma invoice")
        return jsonify({"error": "Internal server error"}), 500
