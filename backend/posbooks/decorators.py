# Overview: Request decorators that establish tenant and actor context for API routes.

from functools import wraps

from flask import g, jsonify, request

from .extensions import db
from .models import Organization


def require_tenant(f):
    """
    Establish tenant and actor context from request headers.

    Authentication happens upstream; this only reads what the gateway
    forwards and sets:
    - g.org_id: the organization (tenant) id, REQUIRED (X-Org-Id)
    - g.actor_id: the acting user's id, optional (X-User-Id)
    - g.actor_name: display name for audit fields, optional (X-User-Name)

    Returns 400 when the header is missing or malformed and 404 when the
    organization does not exist or is inactive.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_org_id = (request.headers.get("X-Org-Id") or "").strip()
        if not raw_org_id:
            return jsonify({"error": "X-Org-Id header required"}), 400
        if not raw_org_id.isdigit():
            return jsonify({"error": "X-Org-Id must be an integer"}), 400

        org = db.session.get(Organization, int(raw_org_id))
        if org is None or not org.is_active:
            return jsonify({"error": "Organization not found"}), 404

        raw_user_id = (request.headers.get("X-User-Id") or "").strip()
        g.org_id = org.id
        g.actor_id = int(raw_user_id) if raw_user_id.isdigit() else None
        g.actor_name = (request.headers.get("X-User-Name") or "").strip() or None

        return f(*args, **kwargs)

    return decorated_function
