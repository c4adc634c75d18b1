from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

APPOINTMENT_SCHEDULED = "scheduled"
APPOINTMENT_CONFIRMED = "confirmed"
APPOINTMENT_COMPLETED = "completed"
APPOINTMENT_CANCELLED = "cancelled"
APPOINTMENT_STATUSES = (
    APPOINTMENT_SCHEDULED,
    APPOINTMENT_CONFIRMED,
    APPOINTMENT_COMPLETED,
    APPOINTMENT_CANCELLED,
)


class Technician(db.Model):
    """A bookable resource; appointments occupy a technician for an interval."""
    __tablename__ = "technicians"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "tenant_id": self.tenant_id, "name": self.name, "is_active": self.is_active}


class Client(db.Model):
    __tablename__ = "clients"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    first_name = db.Column(db.String(120), nullable=False)
    last_name = db.Column(db.String(120), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "phone": self.phone,
        }


class Service(db.Model):
    """Service catalogue entry. duration_minutes may be unset (treated as 60)."""
    __tablename__ = "services"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=True)
    duration_minutes = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "price_cents": self.price_cents,
            "duration_minutes": self.duration_minutes,
        }


class Appointment(db.Model):
    """
    Scheduled occupation of a technician.

    INVARIANT: for one technician and calendar day, no two non-cancelled
    appointments overlap ([start, start + duration) half-open).
    Never deleted; cancellation is a status transition.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        db.Index("ix_appointments_tenant_technician_start", "tenant_id", "technician_id", "appointment_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    technician_id = db.Column(db.Integer, db.ForeignKey("technicians.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=True, index=True)

    appointment_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default=APPOINTMENT_SCHEDULED, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    client = db.relationship("Client", lazy="joined")
    service = db.relationship("Service", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "technician_id": self.technician_id,
            "client_id": self.client_id,
            "service_id": self.service_id,
            "appointment_date": to_utc_z(self.appointment_date),
            "status": self.status,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class BlockedTime(db.Model):
    """Time a technician is unavailable (time off, training)."""
    __tablename__ = "blocked_times"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    technician_id = db.Column(db.Integer, db.ForeignKey("technicians.id"), nullable=False, index=True)
    start_time = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "technician_id": self.technician_id,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "reason": self.reason,
        }


class ScheduleLock(db.Model):
    """
    One row per (tenant, technician, day); locked FOR UPDATE around
    check-then-insert so two bookings for the same slot serialize.
    """
    __tablename__ = "schedule_locks"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "technician_id", "day", name="uq_schedule_locks_resource_day"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    technician_id = db.Column(db.Integer, db.ForeignKey("technicians.id"), nullable=False)
    day = db.Column(db.Date, nullable=False)
    bookings = db.Column(db.Integer, nullable=False, default=0)
