# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import BookingLedgerError, to_response
from .services.tenant_service import require_tenant as load_tenant


def require_tenant(f):
    """
    Establish tenant context from the X-Tenant-Id header.

    Authentication happens upstream; this layer only trusts the tenant id
    it is handed. Sets g.tenant_id.

    Returns 400 when the header is missing or not an integer, 404 when the
    tenant does not exist or is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get("X-Tenant-Id", "").strip()
        if not raw:
            return jsonify({"error": "X-Tenant-Id header is required"}), 400
        try:
            tenant_id = int(raw)
        except ValueError:
            return jsonify({"error": "X-Tenant-Id must be an integer"}), 400

        try:
            load_tenant(tenant_id)
        except BookingLedgerError as e:
            return to_response(e)

        g.tenant_id = tenant_id
        return f(*args, **kwargs)

    return decorated_function
