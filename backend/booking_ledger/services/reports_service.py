# Overview: Read-only report queries over scheduling data.

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import Appointment, Client
from ..models.scheduling import APPOINTMENT_CANCELLED
from ..time_utils import to_iso_date, utctoday
from .classifier import INACTIVITY_TIERS, TIER_NEVER, classify_clients
from .tenant_service import scoped_query


def last_visits(tenant_id: int, as_of: datetime) -> dict[int, datetime]:
    """client_id -> start of the latest non-cancelled appointment before as_of."""
    rows = (
        db.session.query(Appointment.client_id, func.max(Appointment.appointment_date))
        .filter(
            Appointment.tenant_id == tenant_id,
            Appointment.status != APPOINTMENT_CANCELLED,
            Appointment.appointment_date < as_of,
        )
        .group_by(Appointment.client_id)
        .all()
    )
    return {client_id: last for client_id, last in rows}


def client_inactivity_report(tenant_id: int, today: date | None = None) -> dict:
    """
    Clients bucketed by days since their last visit (retention report).

    Visits are counted up to the end of today; future bookings do not make
    a client active.
    """
    today = today or utctoday()
    as_of = datetime.combine(today + timedelta(days=1), time.min)
    visits = last_visits(tenant_id, as_of)

    clients = []
    for client in scoped_query(Client, tenant_id).order_by(Client.id.asc()).all():
        last = visits.get(client.id)
        clients.append({
            "client_id": client.id,
            "full_name": client.full_name,
            "phone": client.phone,
            "last_visit": last.date() if last else None,
        })

    tiers = classify_clients(clients, today)
    for rows in tiers.values():
        for row in rows:
            row["last_visit"] = to_iso_date(row["last_visit"])

    return {
        "as_of": to_iso_date(today),
        "counts": {tier: len(tiers[tier]) for tier in (*INACTIVITY_TIERS, TIER_NEVER)},
        "tiers": tiers,
    }
