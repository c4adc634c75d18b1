# backend/booking_ledger/routes/reports.py
from flask import Blueprint, current_app, g, request

from ..decorators import require_tenant
from ..errors import BookingLedgerError, to_response
from ..time_utils import parse_iso_date
from ..services.reports_service import client_inactivity_report


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/client-inactivity")
@require_tenant
def client_inactivity_route():
    """Clients grouped into active / recent / warning / urgent / never."""
    try:
        as_of = parse_iso_date(request.args.get("as_of"))
    except ValueError:
        return {"error": "as_of must be ISO YYYY-MM-DD"}, 400

    try:
        return client_inactivity_report(g.tenant_id, today=as_of), 200
    except BookingLedgerError as e:
        return to_response(e)
    except Exception:
        current_app.logger.exception("Failed to build client inactivity report")
        return {"error": "Failed to build client inactivity report"}, 500
