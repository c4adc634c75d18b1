# Overview: Service-layer operations for stock balances; the only writer of Product.stock_quantity.

# backend/booking_ledger/services/inventory_service.py
"""
Stock Invariants (authoritative)

- Product.stock_quantity == SUM(entry quantities) - SUM(exit quantities)
  over the product's StockMovement rows.
- On-hand may never go negative: exits and sales beyond on-hand are
  rejected with InsufficientStockError (no clamping).
- Every balance change is made under a row lock on the product
  (SELECT ... FOR UPDATE) plus the version_id check, inside the caller's
  transaction; callers commit.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import case, func

from ..errors import InsufficientStockError, ValidationError
from ..extensions import db
from ..models import Product, ProductBatch, StockMovement
from ..models.inventory import MOVEMENT_ENTRY, MOVEMENT_EXIT
from .batch_service import rank
from .concurrency import lock_for_update
from .tenant_service import lookup_dependency


def lock_product(tenant_id: int, product_id: int) -> Product:
    """Load a product row FOR UPDATE; a missing product aborts the cascade."""
    return lookup_dependency(Product, tenant_id, product_id, "product", lock=True)


def apply_stock_delta(product: Product, delta: int) -> int:
    """
    Change on-hand by delta on an already locked product.

    Raises InsufficientStockError when the result would be negative; the
    balance is left untouched in that case.
    """
    if delta == 0:
        raise ValidationError("stock delta must be non-zero")
    current = product.stock_quantity or 0
    if current + delta < 0:
        raise InsufficientStockError(product.id, product.name, -delta, current)
    product.stock_quantity = current + delta
    db.session.flush()
    return product.stock_quantity


def record_movement(
    *,
    tenant_id: int,
    product: Product,
    movement_type: str,
    quantity: int,
    unit_cost_cents: int | None = None,
    location_id: str | None = None,
    reason: str | None = None,
    product_sale_id: int | None = None,
) -> StockMovement:
    """Write one immutable movement and apply its delta to the locked product."""
    if movement_type not in (MOVEMENT_ENTRY, MOVEMENT_EXIT):
        raise ValidationError("movement_type must be entry or exit")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")

    delta = quantity if movement_type == MOVEMENT_ENTRY else -quantity
    apply_stock_delta(product, delta)

    movement = StockMovement(
        tenant_id=tenant_id,
        product_id=product.id,
        movement_type=movement_type,
        quantity=quantity,
        unit_cost_cents=unit_cost_cents,
        location_id=location_id,
        reason=reason,
        product_sale_id=product_sale_id,
    )
    db.session.add(movement)
    db.session.flush()

    if movement_type == MOVEMENT_EXIT and current_app.config.get("FIFO_BATCH_CONSUMPTION"):
        consume_batches(tenant_id, product.id, quantity)

    return movement


def open_batches_for_update(tenant_id: int, product_id: int):
    query = (
        db.session.query(ProductBatch)
        .filter(
            ProductBatch.tenant_id == tenant_id,
            ProductBatch.product_id == product_id,
            ProductBatch.quantity > 0,
        )
        .order_by(ProductBatch.id.asc())
    )
    return lock_for_update(query, of=ProductBatch)


def consume_batches(tenant_id: int, product_id: int, quantity: int) -> list[tuple[int, int]]:
    """
    Decrement batch quantities in priority order (earliest expiry first).

    Batches are not tied to the stock balance; if they hold less than
    quantity the remainder is logged and ignored. Returns (batch_id, taken).
    """
    batches = open_batches_for_update(tenant_id, product_id).all()
    remaining = quantity
    taken: list[tuple[int, int]] = []
    for batch in rank(batches):
        if remaining <= 0:
            break
        take = min(batch.quantity, remaining)
        batch.quantity -= take
        remaining -= take
        taken.append((batch.id, take))

    if remaining > 0:
        current_app.logger.warning(
            "Batches of product %s short by %d units during FIFO consumption", product_id, remaining
        )
    db.session.flush()
    return taken


def get_movement_balance(tenant_id: int, product_id: int) -> int:
    """On-hand recomputed from movements (audit of the stored balance)."""
    signed = case(
        (StockMovement.movement_type == MOVEMENT_ENTRY, StockMovement.quantity),
        else_=-StockMovement.quantity,
    )
    total = (
        db.session.query(func.coalesce(func.sum(signed), 0))
        .filter(StockMovement.tenant_id == tenant_id, StockMovement.product_id == product_id)
        .scalar()
    )
    return int(total or 0)


def get_stock_summary(tenant_id: int, product_id: int) -> dict:
    product = lookup_dependency(Product, tenant_id, product_id, "product")
    ledger_balance = get_movement_balance(tenant_id, product_id)
    return {
        "product_id": product.id,
        "product_name": product.name,
        "quantity_on_hand": product.stock_quantity,
        "movement_balance": ledger_balance,
        "consistent": ledger_balance == product.stock_quantity,
    }
