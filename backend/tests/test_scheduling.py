# Overview: Pytest coverage for appointment conflict detection and booking.

"""
Scheduling Tests

Intervals are half-open [start, start + duration): an appointment ending at
11:00 does not collide with one starting at 11:00. Cancelled appointments
free their slot; blocked times occupy it. A failed lookup rejects the
booking instead of letting it through.
"""

import pytest
from sqlalchemy.exc import OperationalError

from booking_ledger.errors import (
    ConflictError,
    DependencyLookupFailure,
    InvalidTransitionError,
    PersistenceFailure,
    ValidationError,
)
from booking_ledger.models import Appointment, BlockedTime, ScheduleLock
from booking_ledger.services import scheduling_service
from booking_ledger.services.scheduling_service import (
    book_appointment,
    check_conflict,
    create_blocked_time,
    reschedule_appointment,
    set_appointment_status,
    validate_booking,
)
from conftest import at


@pytest.fixture
def ten_oclock(tenant_a, technician, client_ana, manicure):
    """Ana holds 10:00-11:00 with Carla."""
    return book_appointment(tenant_a.id, technician.id, client_ana.id, manicure.id, at(10))


class TestCheckConflict:
    """Overlap rules of the conflict checker."""

    def test_empty_schedule_is_free(self, db_session, tenant_a, technician):
        result = check_conflict(tenant_a.id, technician.id, at(10), 60)
        assert result.has_conflict is False

    def test_back_to_back_does_not_conflict(self, db_session, tenant_a, technician, ten_oclock):
        """Existing 10:00-11:00, proposed 11:00 -> free."""
        assert not check_conflict(tenant_a.id, technician.id, at(11), 60).has_conflict
        assert not check_conflict(tenant_a.id, technician.id, at(9), 60).has_conflict

    def test_partial_overlap_reports_other_client(self, db_session, tenant_a, technician, ten_oclock):
        """Existing 10:00-11:00, proposed 10:30 -> conflict naming Ana."""
        result = check_conflict(tenant_a.id, technician.id, at(10, 30), 60)

        assert result.has_conflict
        assert result.other_appointment_id == ten_oclock.id
        assert result.other_client_name == "Ana Souza"
        assert result.other_interval_description == "10:00-11:00 (60 min)"
        assert "Ana Souza" in result.message()

    def test_overlap_at_leading_edge(self, db_session, tenant_a, technician, ten_oclock):
        assert check_conflict(tenant_a.id, technician.id, at(9, 30), 60).has_conflict

    def test_full_containment(self, db_session, tenant_a, technician, client_bia, gel_nails):
        """A short slot inside a 90-minute appointment conflicts."""
        book_appointment(tenant_a.id, technician.id, client_bia.id, gel_nails.id, at(14))
        assert check_conflict(tenant_a.id, technician.id, at(14, 30), 15).has_conflict
        # and a long slot that swallows it
        assert check_conflict(tenant_a.id, technician.id, at(13), 240).has_conflict

    def test_cancelled_appointment_is_ignored(self, db_session, tenant_a, technician, ten_oclock):
        set_appointment_status(tenant_a.id, ten_oclock.id, "cancelled")
        assert not check_conflict(tenant_a.id, technician.id, at(10), 60).has_conflict

    def test_other_technician_is_independent(self, db_session, tenant_a, other_technician, ten_oclock):
        assert not check_conflict(tenant_a.id, other_technician.id, at(10), 60).has_conflict

    def test_other_day_is_independent(self, db_session, tenant_a, technician, ten_oclock):
        assert not check_conflict(tenant_a.id, technician.id, at(10, day=11), 60).has_conflict

    def test_exclude_self(self, db_session, tenant_a, technician, ten_oclock):
        result = check_conflict(tenant_a.id, technician.id, at(10, 30), 60, exclude_appointment_id=ten_oclock.id)
        assert not result.has_conflict

    def test_missing_duration_defaults_to_60(self, db_session, tenant_a, technician, client_ana, undated_service):
        book_appointment(tenant_a.id, technician.id, client_ana.id, undated_service.id, at(10))

        assert check_conflict(tenant_a.id, technician.id, at(10, 59), None).has_conflict
        assert not check_conflict(tenant_a.id, technician.id, at(11), None).has_conflict

    def test_blocked_time_conflicts(self, db_session, tenant_a, technician):
        block = create_blocked_time(tenant_a.id, technician.id, at(12), at(13), reason="Almoço")

        result = check_conflict(tenant_a.id, technician.id, at(12, 30), 60)
        assert result.has_conflict
        assert result.other_kind == "blocked_time"
        assert result.other_id == block.id
        assert result.other_appointment_id is None
        assert "Almoço" in result.other_interval_description

    def test_unknown_technician(self, db_session, tenant_a):
        with pytest.raises(DependencyLookupFailure):
            check_conflict(tenant_a.id, 99999, at(10), 60)

    def test_lookup_failure_fails_closed(self, db_session, tenant_a, technician, monkeypatch):
        """A store error during the check rejects the booking as retryable."""
        def broken(*args, **kwargs):
            raise OperationalError("SELECT ...", {}, Exception("database is locked"))

        monkeypatch.setattr(scheduling_service, "_find_conflict", broken)

        with pytest.raises(PersistenceFailure) as excinfo:
            check_conflict(tenant_a.id, technician.id, at(10), 60)
        assert excinfo.value.retryable is True


class TestValidateBooking:

    def test_uses_service_duration(self, db_session, tenant_a, technician, client_ana, gel_nails, manicure):
        book_appointment(tenant_a.id, technician.id, client_ana.id, manicure.id, at(11, 15))
        # 90 minutes from 10:00 runs into 11:15
        assert validate_booking(tenant_a.id, technician.id, at(10), gel_nails.id).has_conflict
        assert not validate_booking(tenant_a.id, technician.id, at(10), manicure.id).has_conflict

    def test_long_service_ending_at_next_start_is_free(
        self, db_session, tenant_a, technician, client_ana, gel_nails, manicure
    ):
        book_appointment(tenant_a.id, technician.id, client_ana.id, manicure.id, at(11, 30))
        # 10:00 + 90 minutes ends exactly at 11:30
        assert not validate_booking(tenant_a.id, technician.id, at(10), gel_nails.id).has_conflict

    def test_unknown_service(self, db_session, tenant_a, technician):
        with pytest.raises(DependencyLookupFailure):
            validate_booking(tenant_a.id, technician.id, at(10), 424242)

    def test_to_dict_shape(self, db_session, tenant_a, technician, ten_oclock, manicure):
        body = validate_booking(tenant_a.id, technician.id, at(10, 15), manicure.id).to_dict()
        assert body["conflict"] is True
        assert body["other_appointment_id"] == ten_oclock.id
        assert body["other_start"] == "2030-03-10T10:00:00Z"


class TestBookAppointment:

    def test_conflict_writes_nothing(self, db_session, tenant_a, technician, client_bia, manicure, ten_oclock):
        with pytest.raises(ConflictError) as excinfo:
            book_appointment(tenant_a.id, technician.id, client_bia.id, manicure.id, at(10, 30))

        assert "Ana Souza" in excinfo.value.message
        assert excinfo.value.details["other_appointment_id"] == ten_oclock.id
        assert db_session.query(Appointment).count() == 1

    def test_takes_schedule_lock(self, db_session, tenant_a, technician, ten_oclock):
        lock = db_session.query(ScheduleLock).filter_by(technician_id=technician.id).one()
        assert lock.day.isoformat() == "2030-03-10"
        assert lock.bookings == 1

    def test_unknown_client_aborts(self, db_session, tenant_a, technician, manicure):
        with pytest.raises(DependencyLookupFailure):
            book_appointment(tenant_a.id, technician.id, 99999, manicure.id, at(10))
        assert db_session.query(Appointment).count() == 0

    def test_cannot_create_completed(self, db_session, tenant_a, technician, client_ana, manicure):
        with pytest.raises(ValidationError):
            book_appointment(tenant_a.id, technician.id, client_ana.id, manicure.id, at(10), status="completed")

    def test_cancel_frees_slot(self, db_session, tenant_a, technician, client_bia, manicure, ten_oclock):
        set_appointment_status(tenant_a.id, ten_oclock.id, "cancelled")
        second = book_appointment(tenant_a.id, technician.id, client_bia.id, manicure.id, at(10))
        assert second.id != ten_oclock.id

    def test_cross_tenant_technician_rejected(self, db_session, tenant_b, technician, client_ana, manicure):
        with pytest.raises(DependencyLookupFailure):
            book_appointment(tenant_b.id, technician.id, client_ana.id, None, at(10))


class TestRescheduleAndStatus:

    def test_reschedule_overlapping_own_slot(self, db_session, tenant_a, technician, ten_oclock):
        moved = reschedule_appointment(tenant_a.id, ten_oclock.id, at(10, 30))
        assert moved.appointment_date == at(10, 30)

    def test_reschedule_into_conflict(self, db_session, tenant_a, technician, client_bia, manicure, ten_oclock):
        other = book_appointment(tenant_a.id, technician.id, client_bia.id, manicure.id, at(15))

        with pytest.raises(ConflictError):
            reschedule_appointment(tenant_a.id, other.id, at(10, 30))

        db_session.expire_all()
        assert db_session.get(Appointment, other.id).appointment_date == at(15)

    def test_reschedule_to_other_technician(self, db_session, tenant_a, other_technician, ten_oclock):
        moved = reschedule_appointment(tenant_a.id, ten_oclock.id, at(10), resource_id=other_technician.id)
        assert moved.technician_id == other_technician.id

    def test_status_flow(self, db_session, tenant_a, ten_oclock):
        assert set_appointment_status(tenant_a.id, ten_oclock.id, "confirmed").status == "confirmed"
        assert set_appointment_status(tenant_a.id, ten_oclock.id, "completed").status == "completed"

        with pytest.raises(InvalidTransitionError):
            set_appointment_status(tenant_a.id, ten_oclock.id, "scheduled")

    def test_cannot_reschedule_cancelled(self, db_session, tenant_a, ten_oclock):
        set_appointment_status(tenant_a.id, ten_oclock.id, "cancelled")
        with pytest.raises(InvalidTransitionError):
            reschedule_appointment(tenant_a.id, ten_oclock.id, at(16))

    def test_unknown_status(self, db_session, tenant_a, ten_oclock):
        with pytest.raises(ValidationError):
            set_appointment_status(tenant_a.id, ten_oclock.id, "no_show")

    def test_blocked_time_requires_positive_span(self, db_session, tenant_a, technician):
        with pytest.raises(ValidationError):
            create_blocked_time(tenant_a.id, technician.id, at(12), at(12))

    def test_booking_blocked_by_time_off(self, db_session, tenant_a, technician, client_ana, manicure):
        create_blocked_time(tenant_a.id, technician.id, at(9), at(18), reason="Folga")
        with pytest.raises(ConflictError) as excinfo:
            book_appointment(tenant_a.id, technician.id, client_ana.id, manicure.id, at(10))
        assert "unavailable" in excinfo.value.message

    def test_blocked_time_cannot_cover_booking(self, db_session, tenant_a, technician, ten_oclock):
        with pytest.raises(ConflictError) as excinfo:
            create_blocked_time(tenant_a.id, technician.id, at(9), at(18), reason="Folga")
        assert excinfo.value.details["other_appointment_id"] == ten_oclock.id
        assert db_session.query(BlockedTime).count() == 0

    def test_blocked_time_next_to_booking(self, db_session, tenant_a, technician, ten_oclock):
        block = create_blocked_time(tenant_a.id, technician.id, at(11), at(12), reason="Almoço")
        assert block.id is not None

    def test_blocked_time_ignores_cancelled_booking(self, db_session, tenant_a, technician, ten_oclock):
        set_appointment_status(tenant_a.id, ten_oclock.id, "cancelled")
        assert create_blocked_time(tenant_a.id, technician.id, at(9), at(18)).id is not None

    def test_blocked_time_takes_lock_for_each_day(self, db_session, tenant_a, technician):
        create_blocked_time(tenant_a.id, technician.id, at(9, day=10), at(18, day=12), reason="Férias")
        days = {lock.day.day for lock in db_session.query(ScheduleLock).filter_by(technician_id=technician.id)}
        assert days == {10, 11, 12}

    def test_multi_day_block_covering_later_booking(self, db_session, tenant_a, technician, client_ana, manicure):
        later = book_appointment(tenant_a.id, technician.id, client_ana.id, manicure.id, at(15, day=11))
        with pytest.raises(ConflictError) as excinfo:
            create_blocked_time(tenant_a.id, technician.id, at(9, day=10), at(18, day=12))
        assert excinfo.value.details["other_id"] == later.id
