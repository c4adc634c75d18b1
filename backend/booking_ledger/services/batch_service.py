# backend/booking_ledger/services/batch_service.py
"""
Batch priority (FIFO/PEPS guidance) and expiry alerting.

- rank() orders by expiry ascending, batches without expiry last; ties keep
  input order (stable).
- Status bands are defined in classifier.py.
- Read-only: ranking never changes stock. When FIFO_BATCH_CONSUMPTION is
  enabled the cascade engine consumes batches in this order.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Sequence

from ..errors import ValidationError
from ..extensions import db
from ..models import Product, ProductBatch
from ..time_utils import days_between, utctoday
from .classifier import EXPIRY_CRITICAL, EXPIRY_EXPIRED, classify_expiry
from .concurrency import run_with_retry
from .tenant_service import lookup_dependency, scoped_query


@dataclass(frozen=True)
class BatchStatus:
    status: str
    # days remaining; for expired batches, days since expiry
    days: int | None


def _expiry_key(batch):
    expiry = batch.expiry_date if hasattr(batch, "expiry_date") else batch.get("expiry_date")
    return (expiry is None, expiry or date.min)


def rank(batches: Iterable) -> list:
    """Pure: accepts ProductBatch rows or dicts with an 'expiry_date' key."""
    return sorted(batches, key=_expiry_key)


def expiry_status(expiry_date: date | None, today: date) -> BatchStatus:
    if expiry_date is None:
        return BatchStatus(classify_expiry(None), None)
    remaining = days_between(today, expiry_date)
    status = classify_expiry(remaining)
    return BatchStatus(status, abs(remaining) if status == EXPIRY_EXPIRED else remaining)


def _with_status(batches: Sequence[ProductBatch], today: date) -> list[dict]:
    rows = []
    for priority, batch in enumerate(batches, start=1):
        st = expiry_status(batch.expiry_date, today)
        data = batch.to_dict()
        data["priority"] = priority
        data["expiry_status"] = st.status
        data["days"] = st.days
        rows.append(data)
    return rows


def get_batch_priority(tenant_id: int, product_id: int | None = None, today: date | None = None) -> list[dict]:
    """Ranked batches (consume-first at the top) with their expiry status."""
    today = today or utctoday()
    q = scoped_query(ProductBatch, tenant_id)
    if product_id is not None:
        lookup_dependency(Product, tenant_id, product_id, "product")
        q = q.filter(ProductBatch.product_id == product_id)
    batches = q.order_by(ProductBatch.id.asc()).all()
    return _with_status(rank(batches), today)


def critical_batches(tenant_id: int, product_id: int | None = None, today: date | None = None) -> list[dict]:
    """Expired or critical batches, for the alert banner."""
    return [
        row for row in get_batch_priority(tenant_id, product_id, today)
        if row["expiry_status"] in (EXPIRY_EXPIRED, EXPIRY_CRITICAL)
    ]


def create_batch(
    tenant_id: int,
    product_id: int,
    batch_number: str,
    quantity: int,
    *,
    manufacturing_date: date | None = None,
    expiry_date: date | None = None,
    location_id: str | None = None,
) -> ProductBatch:
    if not batch_number or not str(batch_number).strip():
        raise ValidationError("batch_number is required")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
        raise ValidationError("quantity must be an integer >= 0")
    if manufacturing_date and expiry_date and manufacturing_date > expiry_date:
        raise ValidationError("manufacturing_date cannot be after expiry_date")

    def _op():
        lookup_dependency(Product, tenant_id, product_id, "product")
        batch = ProductBatch(
            tenant_id=tenant_id,
            product_id=product_id,
            batch_number=str(batch_number).strip(),
            quantity=quantity,
            manufacturing_date=manufacturing_date,
            expiry_date=expiry_date,
            location_id=location_id,
        )
        db.session.add(batch)
        db.session.commit()
        return batch

    return run_with_retry(_op)
