# backend/booking_ledger/routes/inventory.py
"""
Inventory read views and batch registration.

Batch ranking is read-only; stock balances change only through /api/events.
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_tenant
from ..errors import BookingLedgerError, to_response
from ..time_utils import parse_iso_date
from ..services import batch_service, inventory_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/batches")
@require_tenant
def list_batches_route():
    """
    Ranked batches (earliest expiry first, undated last) with expiry status.

    Query: product_id (optional), critical_only=1 for the alert banner.
    """
    product_id = request.args.get("product_id", type=int)
    critical_only = request.args.get("critical_only") in ("1", "true")

    try:
        if critical_only:
            batches = batch_service.critical_batches(g.tenant_id, product_id)
        else:
            batches = batch_service.get_batch_priority(g.tenant_id, product_id)
    except BookingLedgerError as e:
        return to_response(e)
    except Exception:
        current_app.logger.exception("Failed to list batches")
        return {"error": "Failed to list batches"}, 500

    return {"batches": batches}, 200


@inventory_bp.post("/batches")
@require_tenant
def create_batch_route():
    payload = request.get_json(silent=True) or {}

    try:
        manufacturing_date = parse_iso_date(payload.get("manufacturing_date"))
        expiry_date = parse_iso_date(payload.get("expiry_date"))
    except (TypeError, ValueError, AttributeError):
        return {"error": "dates must be ISO YYYY-MM-DD"}, 400

    product_id = payload.get("product_id")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        return {"error": "product_id is required"}, 400

    try:
        batch = batch_service.create_batch(
            g.tenant_id,
            product_id,
            payload.get("batch_number"),
            payload.get("quantity", 0),
            manufacturing_date=manufacturing_date,
            expiry_date=expiry_date,
            location_id=payload.get("location_id"),
        )
    except BookingLedgerError as e:
        return to_response(e)
    except Exception:
        current_app.logger.exception("Failed to create batch")
        return {"error": "Failed to create batch"}, 500

    return {"batch": batch.to_dict()}, 201


@inventory_bp.get("/products/<int:product_id>/stock")
@require_tenant
def stock_summary_route(product_id: int):
    try:
        return inventory_service.get_stock_summary(g.tenant_id, product_id), 200
    except BookingLedgerError as e:
        return to_response(e)
    except Exception:
        current_app.logger.exception("Failed to load stock summary")
        return {"error": "Failed to load stock summary"}, 500
