# backend/booking_ledger/routes/events.py
"""
Primary business events (stock movements, sales, package sales).

One request = one atomic cascade. Clients should send an Idempotency-Key
header (or idempotency_key field) so retries after a 503 never double-post.
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_tenant
from ..errors import BookingLedgerError, to_response
from ..services.cascade_service import post_event


events_bp = Blueprint("events", __name__, url_prefix="/api/events")


@events_bp.post("")
@require_tenant
def post_event_route():
    """
    Body: {"event_type": "...", "payload": {...}, "idempotency_key": "..."}

    201 on first application, 200 when the key was already processed.
    """
    body = request.get_json(silent=True) or {}
    key = request.headers.get("Idempotency-Key") or body.get("idempotency_key")

    try:
        result = post_event(
            g.tenant_id,
            body.get("event_type"),
            body.get("payload"),
            idempotency_key=key,
        )
    except BookingLedgerError as e:
        return to_response(e)
    except Exception:
        current_app.logger.exception("Failed to apply event")
        return {"error": "Failed to apply event"}, 500

    return result.to_dict(), 200 if result.replayed else 201
