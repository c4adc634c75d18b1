# backend/booking_ledger/routes/appointments.py
"""
Appointment booking routes.

All routes require tenant context (X-Tenant-Id).

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; naive values are UTC.
- Responses serialize datetimes as ISO-8601 'Z' strings.
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_tenant
from ..errors import BookingLedgerError, ValidationError, to_response
from ..time_utils import parse_iso_datetime
from ..services import scheduling_service


appointments_bp = Blueprint("appointments", __name__, url_prefix="/api")


def _datetime_field(payload: dict, name: str, required: bool = True):
    raw = payload.get(name)
    if raw in (None, ""):
        if required:
            raise ValidationError(f"{name} is required", details={"field": name})
        return None
    try:
        return parse_iso_datetime(str(raw))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime", details={"field": name}) from None


def _int_field(payload: dict, name: str, required: bool = True):
    raw = payload.get(name)
    if raw is None:
        if required:
            raise ValidationError(f"{name} is required", details={"field": name})
        return None
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValidationError(f"{name} must be an integer", details={"field": name})
    return raw


@appointments_bp.post("/appointments/validate")
@require_tenant
def validate_booking_route():
    """
    Pre-flight conflict check for the booking form.

    Always 200 when the check ran; the body says whether the slot is free.
    """
    payload = request.get_json(silent=True) or {}
    try:
        result = scheduling_service.validate_booking(
            tenant_id=g.tenant_id,
            resource_id=_int_field(payload, "technician_id"),
            start_time=_datetime_field(payload, "start_time"),
            service_id=_int_field(payload, "service_id", required=False),
            exclude_appointment_id=_int_field(payload, "exclude_appointment_id", required=False),
        )
    except BookingLedgerError as e:
        return to_response(e)
    except Exception:
        current_app.logger.exception("Failed to validate booking")
        return {"error": "Failed to validate booking"}, 500

    return result.to_dict(), 200


@appointments_bp.post("/appointments")
@require_tenant
def create_appointment_route():
    payload = request.get_json(silent=True) or {}
    try:
        appointment = scheduling_service.book_appointment(
            tenant_id=g.tenant_id,
            resource_id=_int_field(payload, "technician_id"),
            client_id=_int_field(payload, "client_id"),
            service_id=_int_field(payload, "service_id", required=False),
            start_time=_datetime_field(payload, "start_time"),
            status=payload.get("status") or scheduling_service.APPOINTMENT_SCHEDULED,
            notes=payload.get("notes"),
        )
    except BookingLedgerError as e:
        return to_response(e)
    except Exception:
        current_app.logger.exception("Failed to create appointment")
        return {"error": "Failed to create appointment"}, 500

    return {"appointment": appointment.to_dict()}, 201


@appointments_bp.patch("/appointments/<int:appointment_id>/status")
@require_tenant
def update_appointment_status_route(appointment_id: int):
    payload = request.get_json(silent=True) or {}
    status = payload.get("status")
    if not status:
        return {"error": "status is required"}, 400

    try:
        appointment = scheduling_service.set_appointment_status(g.tenant_id, appointment_id, status)
    except BookingLedgerError as e:
        return to_response(e)
    except Exception:
        current_app.logger.exception("Failed to update appointment status")
        return {"error": "Failed to update appointment status"}, 500

    return {"appointment": appointment.to_dict()}, 200


@appointments_bp.post("/appointments/<int:appointment_id>/reschedule")
@require_tenant
def reschedule_appointment_route(appointment_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        appointment = scheduling_service.reschedule_appointment(
            g.tenant_id,
            appointment_id,
            _datetime_field(payload, "start_time"),
            resource_id=_int_field(payload, "technician_id", required=False),
        )
    except BookingLedgerError as e:
        return to_response(e)
    except Exception:
        current_app.logger.exception("Failed to reschedule appointment")
        return {"error": "Failed to reschedule appointment"}, 500

    return {"appointment": appointment.to_dict()}, 200


@appointments_bp.post("/blocked-times")
@require_tenant
def create_blocked_time_route():
    payload = request.get_json(silent=True) or {}
    try:
        block = scheduling_service.create_blocked_time(
            g.tenant_id,
            _int_field(payload, "technician_id"),
            _datetime_field(payload, "start_time"),
            _datetime_field(payload, "end_time"),
            reason=payload.get("reason"),
        )
    except BookingLedgerError as e:
        return to_response(e)
    except Exception:
        current_app.logger.exception("Failed to create blocked time")
        return {"error": "Failed to create blocked time"}, 500

    return {"blocked_time": block.to_dict()}, 201
