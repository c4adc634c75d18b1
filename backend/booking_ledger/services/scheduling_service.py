# backend/booking_ledger/services/scheduling_service.py
"""
Appointment conflict detection and booking.

Scheduling invariants (authoritative):
- A technician can hold at most one non-cancelled appointment at any
  instant of a calendar day; intervals are [start, start + duration).
- Durations come from the service catalogue; unset/unknown -> 60 minutes.
- Blocked times (time off) occupy the technician exactly like appointments.
- Check and insert run in one transaction holding the (tenant, technician,
  day) schedule lock, so two concurrent bookings cannot both pass.
- Lookup failures fail closed: the booking is rejected with a retryable
  PersistenceFailure, never written unchecked.

Time semantics:
- Stored instants are UTC-naive.
- "Calendar day" is evaluated in SCHEDULE_TIMEZONE.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import (
    ConflictError,
    DependencyLookupFailure,
    InvalidTransitionError,
    PersistenceFailure,
    ValidationError,
)
from ..extensions import db
from ..models import Appointment, BlockedTime, Client, ScheduleLock, Service, Technician
from ..models.scheduling import (
    APPOINTMENT_CANCELLED,
    APPOINTMENT_COMPLETED,
    APPOINTMENT_CONFIRMED,
    APPOINTMENT_SCHEDULED,
    APPOINTMENT_STATUSES,
)
from ..time_utils import local_day, local_day_bounds, to_utc_naive, to_utc_z
from .concurrency import begin_write, lock_for_update, run_with_retry
from .intervals import Interval, resolve_duration
from .tenant_service import get_owned, lookup_dependency

# Allowed status transitions; completed and cancelled are terminal
STATUS_TRANSITIONS = {
    APPOINTMENT_SCHEDULED: {APPOINTMENT_CONFIRMED, APPOINTMENT_COMPLETED, APPOINTMENT_CANCELLED},
    APPOINTMENT_CONFIRMED: {APPOINTMENT_COMPLETED, APPOINTMENT_CANCELLED},
    APPOINTMENT_COMPLETED: set(),
    APPOINTMENT_CANCELLED: set(),
}

BOOKABLE_STATUSES = (APPOINTMENT_SCHEDULED, APPOINTMENT_CONFIRMED)


@dataclass(frozen=True)
class NoConflict:
    has_conflict = False

    def to_dict(self) -> dict:
        return {"conflict": False}


@dataclass(frozen=True)
class Conflict:
    """The first occupation found overlapping the proposed interval."""
    other_kind: str  # "appointment" | "blocked_time"
    other_id: int
    other_client_name: str | None
    other_interval: Interval
    other_interval_description: str

    has_conflict = True

    @property
    def other_appointment_id(self) -> int | None:
        return self.other_id if self.other_kind == "appointment" else None

    def message(self) -> str:
        if self.other_kind == "blocked_time":
            return f"Technician unavailable at {self.other_interval_description}"
        return (
            f"Time slot already booked for {self.other_client_name} "
            f"at {self.other_interval_description}"
        )

    def to_dict(self) -> dict:
        return {
            "conflict": True,
            "other_kind": self.other_kind,
            "other_id": self.other_id,
            "other_appointment_id": self.other_appointment_id,
            "other_client_name": self.other_client_name,
            "other_start": to_utc_z(self.other_interval.start),
            "other_end": to_utc_z(self.other_interval.end),
            "other_interval_description": self.other_interval_description,
            "message": self.message(),
        }


ConflictResult = NoConflict | Conflict


def _schedule_tz() -> str:
    return current_app.config.get("SCHEDULE_TIMEZONE", "UTC")


def _default_duration() -> int:
    return current_app.config.get("DEFAULT_SERVICE_DURATION_MINUTES", 60)


def _normalize_start(value) -> datetime:
    if not isinstance(value, datetime):
        raise ValidationError("start_time must be a datetime")
    return to_utc_naive(value)


def resolve_service_duration(tenant_id: int, service_id: int | None, *, strict: bool = True) -> int:
    """
    Duration of a service in minutes.

    strict=True: an unknown service id is a DependencyLookupFailure (new
    bookings). strict=False: unknown -> default (existing appointments whose
    service was since removed).
    """
    if service_id is None:
        return _default_duration()
    service = (
        db.session.query(Service)
        .filter(Service.tenant_id == tenant_id, Service.id == service_id)
        .first()
    )
    if service is None:
        if strict:
            raise DependencyLookupFailure("service", service_id)
        return _default_duration()
    return resolve_duration(service.duration_minutes, _default_duration())


def _appointment_conflict(
    tenant_id: int,
    resource_id: int,
    proposed: Interval,
    exclude_appointment_id: int | None,
    day: date,
) -> Conflict | None:
    """First non-cancelled appointment starting on day that overlaps proposed."""
    tz_name = _schedule_tz()
    day_start, day_end = local_day_bounds(day, tz_name)

    q = (
        db.session.query(Appointment)
        .filter(
            Appointment.tenant_id == tenant_id,
            Appointment.technician_id == resource_id,
            Appointment.appointment_date >= day_start,
            Appointment.appointment_date < day_end,
            Appointment.status != APPOINTMENT_CANCELLED,
        )
    )
    if exclude_appointment_id is not None:
        q = q.filter(Appointment.id != exclude_appointment_id)

    for existing in q.order_by(Appointment.appointment_date.asc(), Appointment.id.asc()).all():
        duration = resolve_duration(
            existing.service.duration_minutes if existing.service else None,
            _default_duration(),
        )
        interval = Interval.from_duration(existing.appointment_date, duration)
        if proposed.overlaps(interval):
            client_name = existing.client.full_name if existing.client else "another client"
            return Conflict(
                other_kind="appointment",
                other_id=existing.id,
                other_client_name=client_name,
                other_interval=interval,
                other_interval_description=interval.describe(tz_name),
            )
    return None


def _find_conflict(
    tenant_id: int,
    resource_id: int,
    proposed: Interval,
    exclude_appointment_id: int | None,
) -> ConflictResult:
    tz_name = _schedule_tz()
    conflict = _appointment_conflict(
        tenant_id, resource_id, proposed, exclude_appointment_id, local_day(proposed.start, tz_name)
    )
    if conflict is not None:
        return conflict

    blocks = (
        db.session.query(BlockedTime)
        .filter(
            BlockedTime.tenant_id == tenant_id,
            BlockedTime.technician_id == resource_id,
            BlockedTime.start_time < proposed.end,
            BlockedTime.end_time > proposed.start,
        )
        .order_by(BlockedTime.start_time.asc(), BlockedTime.id.asc())
        .all()
    )
    for block in blocks:
        interval = Interval(block.start_time, block.end_time)
        return Conflict(
            other_kind="blocked_time",
            other_id=block.id,
            other_client_name=None,
            other_interval=interval,
            other_interval_description=interval.describe(tz_name)
            + (f" - {block.reason}" if block.reason else ""),
        )

    return NoConflict()


def check_conflict(
    tenant_id: int,
    resource_id: int,
    proposed_start: datetime,
    duration_minutes: int | None,
    exclude_appointment_id: int | None = None,
) -> ConflictResult:
    """
    Does [proposed_start, proposed_start + duration) overlap any occupation
    of the technician on that calendar day?

    Read-only. Callers that go on to write must hold the schedule lock
    (book_appointment / reschedule_appointment do).
    """
    start = _normalize_start(proposed_start)
    proposed = Interval.from_duration(start, resolve_duration(duration_minutes, _default_duration()))

    try:
        lookup_dependency(Technician, tenant_id, resource_id, "technician")
        return _find_conflict(tenant_id, resource_id, proposed, exclude_appointment_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.warning(
            "Conflict check failed for technician %s at %s; rejecting booking", resource_id, start
        )
        raise PersistenceFailure(
            "Could not verify technician availability; nothing was booked, please retry",
            details={"technician_id": resource_id},
        ) from exc


def validate_booking(
    tenant_id: int,
    resource_id: int,
    start_time: datetime,
    service_id: int | None,
    exclude_appointment_id: int | None = None,
) -> ConflictResult:
    """Pre-flight availability check used by the booking screen."""
    try:
        duration = resolve_service_duration(tenant_id, service_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceFailure(
            "Could not load service duration; please retry",
            details={"service_id": service_id},
        ) from exc
    return check_conflict(tenant_id, resource_id, start_time, duration, exclude_appointment_id)


def _acquire_schedule_lock(tenant_id: int, resource_id: int, day: date) -> ScheduleLock:
    """
    Lock the (tenant, technician, day) row, creating it on first use.

    The counter bump makes the lock a write, so SQLite and row-locking
    backends both serialize concurrent bookings of the same day.
    """
    query = db.session.query(ScheduleLock).filter_by(
        tenant_id=tenant_id, technician_id=resource_id, day=day
    )
    lock = lock_for_update(query).first()
    if lock is None:
        lock = ScheduleLock(tenant_id=tenant_id, technician_id=resource_id, day=day, bookings=0)
        if db.engine.dialect.name == "sqlite":
            # begin_write() already holds the database write lock
            db.session.add(lock)
        else:
            try:
                with db.session.begin_nested():
                    db.session.add(lock)
                    db.session.flush()
            except IntegrityError:
                # Another booking created the row first; wait on its lock
                lock = lock_for_update(query).one()
    lock.bookings = (lock.bookings or 0) + 1
    db.session.flush()
    return lock


def _raise_conflict(result: Conflict, resource_id: int) -> None:
    current_app.logger.info(
        "Booking rejected for technician %s: overlaps %s %s",
        resource_id, result.other_kind, result.other_id,
    )
    raise ConflictError(result.message(), details=result.to_dict())


def book_appointment(
    tenant_id: int,
    resource_id: int,
    client_id: int,
    service_id: int | None,
    start_time: datetime,
    *,
    status: str = APPOINTMENT_SCHEDULED,
    notes: str | None = None,
) -> Appointment:
    """
    Create an appointment if the slot is free.

    Raises ConflictError (nothing written) when the interval overlaps an
    existing appointment or blocked time of the technician.
    """
    if status not in BOOKABLE_STATUSES:
        raise ValidationError(f"new appointments must be {' or '.join(BOOKABLE_STATUSES)}")
    start = _normalize_start(start_time)

    def _op():
        begin_write()
        lookup_dependency(Technician, tenant_id, resource_id, "technician")
        lookup_dependency(Client, tenant_id, client_id, "client")
        duration = resolve_service_duration(tenant_id, service_id)

        proposed = Interval.from_duration(start, duration)
        _acquire_schedule_lock(tenant_id, resource_id, local_day(start, _schedule_tz()))

        result = _find_conflict(tenant_id, resource_id, proposed, None)
        if result.has_conflict:
            _raise_conflict(result, resource_id)

        appointment = Appointment(
            tenant_id=tenant_id,
            technician_id=resource_id,
            client_id=client_id,
            service_id=service_id,
            appointment_date=start,
            status=status,
            notes=notes,
        )
        db.session.add(appointment)
        db.session.commit()
        return appointment

    return run_with_retry(_op)


def reschedule_appointment(
    tenant_id: int,
    appointment_id: int,
    new_start: datetime,
    *,
    resource_id: int | None = None,
) -> Appointment:
    """Move an appointment (optionally to another technician), re-checking conflicts."""
    start = _normalize_start(new_start)

    def _op():
        begin_write()
        appointment = get_owned(Appointment, tenant_id, appointment_id, lock=True)
        if appointment.status not in BOOKABLE_STATUSES:
            raise InvalidTransitionError(
                f"Cannot reschedule a {appointment.status} appointment",
                details={"appointment_id": appointment_id, "status": appointment.status},
            )
        target_resource = resource_id if resource_id is not None else appointment.technician_id
        lookup_dependency(Technician, tenant_id, target_resource, "technician")
        duration = resolve_service_duration(tenant_id, appointment.service_id, strict=False)
        proposed = Interval.from_duration(start, duration)

        _acquire_schedule_lock(tenant_id, target_resource, local_day(start, _schedule_tz()))

        result = _find_conflict(tenant_id, target_resource, proposed, appointment.id)
        if result.has_conflict:
            _raise_conflict(result, target_resource)

        appointment.technician_id = target_resource
        appointment.appointment_date = start
        db.session.commit()
        return appointment

    return run_with_retry(_op)


def set_appointment_status(tenant_id: int, appointment_id: int, status: str) -> Appointment:
    """Staff status change; cancellation frees the slot without deleting the row."""
    if status not in APPOINTMENT_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(APPOINTMENT_STATUSES)}")

    def _op():
        appointment = get_owned(Appointment, tenant_id, appointment_id, lock=True)
        if appointment.status == status:
            return appointment
        if status not in STATUS_TRANSITIONS[appointment.status]:
            raise InvalidTransitionError(
                f"Cannot change appointment {appointment_id} from {appointment.status} to {status}",
                details={"appointment_id": appointment_id, "from": appointment.status, "to": status},
            )
        appointment.status = status
        db.session.commit()
        return appointment

    return run_with_retry(_op)


def create_blocked_time(
    tenant_id: int,
    resource_id: int,
    start_time: datetime,
    end_time: datetime,
    reason: str | None = None,
) -> BlockedTime:
    """
    Block a technician's time off.

    Takes the schedule lock of every calendar day the block touches and
    raises ConflictError if it would cover a non-cancelled appointment;
    existing bookings are never overridden.
    """
    start = _normalize_start(start_time)
    end = _normalize_start(end_time)
    if end <= start:
        raise ValidationError("end_time must be after start_time")

    def _op():
        begin_write()
        lookup_dependency(Technician, tenant_id, resource_id, "technician")
        tz_name = _schedule_tz()
        proposed = Interval(start, end)
        day = local_day(start, tz_name)
        last_day = local_day(end - timedelta(microseconds=1), tz_name)
        while day <= last_day:
            _acquire_schedule_lock(tenant_id, resource_id, day)
            conflict = _appointment_conflict(tenant_id, resource_id, proposed, None, day)
            if conflict is not None:
                _raise_conflict(conflict, resource_id)
            day += timedelta(days=1)

        block = BlockedTime(
            tenant_id=tenant_id,
            technician_id=resource_id,
            start_time=start,
            end_time=end,
            reason=reason,
        )
        db.session.add(block)
        db.session.commit()
        return block

    return run_with_retry(_op)
