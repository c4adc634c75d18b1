"""
Tenant scoping helpers.

SECURITY INVARIANTS:
1. Every service call receives an explicit tenant_id
2. Every lookup of a caller-supplied id filters on that tenant
3. A row owned by another tenant is reported exactly like a missing row
4. Derived rows copy the tenant of the row that triggered them
"""

from __future__ import annotations

from flask import current_app

from ..errors import TenantAccessError, DependencyLookupFailure
from ..extensions import db
from ..models import Tenant
from .concurrency import lock_for_update


def require_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if tenant is None or not tenant.is_active:
        raise TenantAccessError("Tenant not found", details={"tenant_id": tenant_id})
    return tenant


def scoped_query(model, tenant_id: int):
    """Query over model restricted to one tenant."""
    return db.session.query(model).filter(model.tenant_id == tenant_id)


def owned_query(model, tenant_id: int, entity_id: int, *, lock: bool = False):
    query = scoped_query(model, tenant_id).filter(model.id == entity_id)
    if lock:
        query = lock_for_update(query, of=model)
    return query


def get_owned(model, tenant_id: int, entity_id: int, *, lock: bool = False):
    """
    Fetch a tenant-owned row or raise TenantAccessError.

    Does not reveal whether the id exists under another tenant.
    """
    row = owned_query(model, tenant_id, entity_id, lock=lock).first()
    if row is None:
        current_app.logger.info("%s %s not found for tenant %s", model.__name__, entity_id, tenant_id)
        raise TenantAccessError(
            f"{model.__name__} {entity_id} not found",
            details={"entity": model.__tablename__, "entity_id": entity_id},
        )
    return row


def lookup_dependency(model, tenant_id: int, entity_id: int, kind: str, *, lock: bool = False):
    """
    Same as get_owned but for rows referenced mid-cascade: a miss aborts the
    whole event with DependencyLookupFailure.
    """
    try:
        return get_owned(model, tenant_id, entity_id, lock=lock)
    except TenantAccessError:
        raise DependencyLookupFailure(kind, entity_id) from None
