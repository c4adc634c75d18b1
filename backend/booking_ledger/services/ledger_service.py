# Overview: Service-layer operations for payables and receivables.

from __future__ import annotations

from datetime import date

from ..errors import InvalidTransitionError, ValidationError
from ..extensions import db
from ..models import AccountPayable, AccountReceivable
from ..models.finance import (
    DIRECTION_PAYABLE,
    DIRECTION_RECEIVABLE,
    STATUS_CANCELLED,
    STATUS_OVERDUE,
    STATUS_PENDING,
    STATUS_RECEIVED,
)
from ..time_utils import utctoday
from .concurrency import run_with_retry
from .tenant_service import get_owned, scoped_query
"""
Ledger Invariants (authoritative)

- amount_cents >= 0; amounts are recorded, never moved.
- Derived entries always carry (reference_type, reference_id) of their
  trigger and the trigger's tenant; the pair is unique per table.
- Stored status is pending | paid/received | cancelled.
- "overdue" is derived at read time: pending and due_date < today.
- pending/overdue -> paid/received (sets payment_date) or -> cancelled.
  Settled and cancelled entries are final.
"""

MODELS = {
    DIRECTION_PAYABLE: AccountPayable,
    DIRECTION_RECEIVABLE: AccountReceivable,
}


def model_for(direction: str):
    try:
        return MODELS[direction]
    except KeyError:
        raise ValidationError("direction must be payable or receivable") from None


def effective_status(entry, today: date | None = None) -> str:
    today = today or utctoday()
    if entry.status == STATUS_PENDING and entry.due_date < today:
        return STATUS_OVERDUE
    return entry.status


def entry_to_dict(entry, today: date | None = None) -> dict:
    data = entry.to_dict()
    data["status"] = effective_status(entry, today)
    return data


def _create_entry(
    model,
    *,
    tenant_id: int,
    description: str,
    amount_cents: int,
    due_date: date,
    reference_type: str,
    reference_id: int,
    status: str = STATUS_PENDING,
    payment_date: date | None = None,
    counterparty_name: str | None = None,
    category: str | None = None,
    notes: str | None = None,
    **extra,
):
    if amount_cents < 0:
        raise ValidationError("amount must be >= 0")

    entry = model(
        tenant_id=tenant_id,
        description=description[:255],
        amount_cents=amount_cents,
        due_date=due_date,
        payment_date=payment_date,
        status=status,
        counterparty_name=counterparty_name,
        category=category,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        **extra,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def create_payable(**kwargs) -> AccountPayable:
    """Add a payable to the current transaction (caller commits)."""
    return _create_entry(AccountPayable, **kwargs)


def create_receivable(*, client_id: int | None = None, **kwargs) -> AccountReceivable:
    """Add a receivable to the current transaction (caller commits)."""
    return _create_entry(AccountReceivable, client_id=client_id, **kwargs)


def find_by_reference(tenant_id: int, reference_type: str, reference_id: int) -> list:
    """All entries derived from one trigger, across both directions."""
    found = []
    for model in (AccountPayable, AccountReceivable):
        found.extend(
            scoped_query(model, tenant_id)
            .filter(model.reference_type == reference_type, model.reference_id == reference_id)
            .all()
        )
    return found


def list_entries(
    tenant_id: int,
    direction: str,
    *,
    status: str | None = None,
    today: date | None = None,
) -> list[dict]:
    model = model_for(direction)
    allowed = (STATUS_PENDING, STATUS_OVERDUE, model.settled_status, STATUS_CANCELLED)
    if status and status not in allowed:
        raise ValidationError(f"status must be one of: {', '.join(allowed)}")
    today = today or utctoday()
    q = scoped_query(model, tenant_id)

    # overdue is not stored: it is a pending row past its due date
    if status == STATUS_OVERDUE:
        q = q.filter(model.status == STATUS_PENDING, model.due_date < today)
    elif status == STATUS_PENDING:
        q = q.filter(model.status == STATUS_PENDING, model.due_date >= today)
    elif status:
        q = q.filter(model.status == status)

    rows = q.order_by(model.due_date.asc(), model.id.asc()).all()
    return [entry_to_dict(r, today) for r in rows]


def settle_entry(
    tenant_id: int,
    direction: str,
    entry_id: int,
    payment_date: date | None = None,
):
    """Mark a payable paid / a receivable received."""
    model = model_for(direction)

    def _op():
        entry = get_owned(model, tenant_id, entry_id, lock=True)
        if entry.status != STATUS_PENDING:
            raise InvalidTransitionError(
                f"{direction.capitalize()} {entry_id} is {entry.status} and cannot be settled",
                details={"entry_id": entry_id, "status": entry.status},
            )
        entry.status = model.settled_status
        entry.payment_date = payment_date or utctoday()
        db.session.commit()
        return entry

    return run_with_retry(_op)


def mark_payable_paid(tenant_id: int, entry_id: int, payment_date: date | None = None) -> AccountPayable:
    return settle_entry(tenant_id, DIRECTION_PAYABLE, entry_id, payment_date)


def mark_receivable_received(tenant_id: int, entry_id: int, payment_date: date | None = None) -> AccountReceivable:
    return settle_entry(tenant_id, DIRECTION_RECEIVABLE, entry_id, payment_date)


def cancel_entry(tenant_id: int, direction: str, entry_id: int):
    model = model_for(direction)

    def _op():
        entry = get_owned(model, tenant_id, entry_id, lock=True)
        if entry.status != STATUS_PENDING:
            raise InvalidTransitionError(
                f"{direction.capitalize()} {entry_id} is {entry.status} and cannot be cancelled",
                details={"entry_id": entry_id, "status": entry.status},
            )
        entry.status = STATUS_CANCELLED
        db.session.commit()
        return entry

    return run_with_retry(_op)


def receivable_totals(tenant_id: int, today: date | None = None) -> dict:
    """Open and overdue receivable amounts (cash-flow header)."""
    today = today or utctoday()
    rows = scoped_query(AccountReceivable, tenant_id).filter(AccountReceivable.status == STATUS_PENDING).all()
    open_cents = sum(r.amount_cents for r in rows)
    overdue_cents = sum(r.amount_cents for r in rows if r.due_date < today)
    received_cents = sum(
        r.amount_cents
        for r in scoped_query(AccountReceivable, tenant_id).filter(AccountReceivable.status == STATUS_RECEIVED)
    )
    return {"open_cents": open_cents, "overdue_cents": overdue_cents, "received_cents": received_cents}


def list_payables(tenant_id: int, status: str | None = None, today: date | None = None) -> list[dict]:
    return list_entries(tenant_id, DIRECTION_PAYABLE, status=status, today=today)


def list_receivables(tenant_id: int, status: str | None = None, today: date | None = None) -> list[dict]:
    return list_entries(tenant_id, DIRECTION_RECEIVABLE, status=status, today=today)
