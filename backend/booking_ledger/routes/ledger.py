# backend/booking_ledger/routes/ledger.py
"""
Accounts payable / receivable.

Status "overdue" is computed per request (pending and due before today);
it can be used as a filter but is never stored.
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_tenant
from ..errors import BookingLedgerError, ValidationError, to_response
from ..models.finance import DIRECTION_PAYABLE, DIRECTION_RECEIVABLE
from ..time_utils import parse_iso_date
from ..services import ledger_service


ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")

# URL segment -> direction
COLLECTIONS = {
    "payables": DIRECTION_PAYABLE,
    "receivables": DIRECTION_RECEIVABLE,
}


def _payment_date():
    payload = request.get_json(silent=True) or {}
    raw = payload.get("payment_date")
    try:
        return parse_iso_date(raw)
    except (AttributeError, ValueError):
        raise ValidationError("payment_date must be ISO YYYY-MM-DD", details={"field": "payment_date"}) from None


@ledger_bp.get("/receivables/summary")
@require_tenant
def receivable_summary_route():
    try:
        return ledger_service.receivable_totals(g.tenant_id), 200
    except BookingLedgerError as e:
        return to_response(e)


@ledger_bp.get("/<collection>")
@require_tenant
def list_entries_route(collection: str):
    direction = COLLECTIONS.get(collection)
    if direction is None:
        return {"error": "Not found"}, 404

    try:
        entries = ledger_service.list_entries(g.tenant_id, direction, status=request.args.get("status"))
    except BookingLedgerError as e:
        return to_response(e)
    except Exception:
        current_app.logger.exception("Failed to list %s", collection)
        return {"error": f"Failed to list {collection}"}, 500

    return {collection: entries}, 200


@ledger_bp.post("/receivables/<int:entry_id>/receive")
@require_tenant
def receive_route(entry_id: int):
    try:
        entry = ledger_service.mark_receivable_received(g.tenant_id, entry_id, _payment_date())
    except BookingLedgerError as e:
        return to_response(e)
    return {"receivable": ledger_service.entry_to_dict(entry)}, 200


@ledger_bp.post("/payables/<int:entry_id>/pay")
@require_tenant
def pay_route(entry_id: int):
    try:
        entry = ledger_service.mark_payable_paid(g.tenant_id, entry_id, _payment_date())
    except BookingLedgerError as e:
        return to_response(e)
    return {"payable": ledger_service.entry_to_dict(entry)}, 200


@ledger_bp.post("/<collection>/<int:entry_id>/cancel")
@require_tenant
def cancel_route(collection: str, entry_id: int):
    direction = COLLECTIONS.get(collection)
    if direction is None:
        return {"error": "Not found"}, 404

    try:
        entry = ledger_service.cancel_entry(g.tenant_id, direction, entry_id)
    except BookingLedgerError as e:
        return to_response(e)
    return {direction: ledger_service.entry_to_dict(entry)}, 200
