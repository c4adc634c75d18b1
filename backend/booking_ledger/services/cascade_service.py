# Overview: Event cascade engine; turns one primary business event into its stock and ledger records atomically.

# backend/booking_ledger/services/cascade_service.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, InsufficientStockError, ValidationError
from ..extensions import db
from ..models import (
    Client,
    PaymentMethod,
    ProcessedEvent,
    ProductSale,
    ServicePackage,
    ServicePackageSale,
)
from ..models.finance import (
    REF_PACKAGE_SALE,
    REF_PRODUCT_SALE,
    REF_STOCK_ENTRY,
    REF_STOCK_EXIT,
    STATUS_PENDING,
    STATUS_RECEIVED,
)
from ..models.inventory import MOVEMENT_ENTRY, MOVEMENT_EXIT
from ..time_utils import parse_iso_date, utctoday
from .concurrency import begin_write, run_with_retry
from .inventory_service import lock_product, record_movement
from .ledger_service import create_payable, create_receivable
from .tenant_service import lookup_dependency, require_tenant
"""
Cascade Invariants (authoritative)

- One event = one transaction: the primary record, the stock delta and
  the derived ledger entry commit together or not at all.
- Stock never goes negative: stock_exit and product_sale beyond on-hand
  raise InsufficientStockError before anything is flushed for the event.
- Every derived ledger entry references its trigger
  (reference_type, reference_id) and copies the trigger's tenant.
- A missing product/client/package/payment method aborts the event with
  DependencyLookupFailure.
- Posting the same idempotency key twice returns the first result and
  writes nothing.
"""

EVENT_STOCK_ENTRY = "stock_entry"
EVENT_STOCK_EXIT = "stock_exit"
EVENT_PRODUCT_SALE = "product_sale"
EVENT_PACKAGE_SALE = "package_sale"
EVENT_TYPES = (EVENT_STOCK_ENTRY, EVENT_STOCK_EXIT, EVENT_PRODUCT_SALE, EVENT_PACKAGE_SALE)

DEFAULT_SUPPLIER_NAME = "Fornecedor"
DEFAULT_CLIENT_NAME = "Cliente"

CATEGORY_STOCK = "Estoque"
CATEGORY_SALES = "Vendas"
CATEGORY_PACKAGES = "Pacotes"

MAX_IDEMPOTENCY_KEY_LENGTH = 128


@dataclass(frozen=True)
class Event:
    tenant_id: int
    event_type: str
    payload: dict
    idempotency_key: str | None = None


@dataclass
class CascadeResult:
    event_type: str
    primary_type: str
    primary_id: int
    derived: list[tuple[str, int]] = field(default_factory=list)
    replayed: bool = False

    def derived_id(self, record_type: str) -> int | None:
        for kind, record_id in self.derived:
            if kind == record_type:
                return record_id
        return None

    def to_dict(self) -> dict:
        return {
            "event_type": self.event_type,
            "primary": {"type": self.primary_type, "id": self.primary_id},
            "derived": [{"type": kind, "id": record_id} for kind, record_id in self.derived],
            "replayed": self.replayed,
        }


# Payload validation (runs before any database access)

def _int_field(payload: dict, name: str, *, required: bool = True, minimum: int | None = None):
    value = payload.get(name)
    if value is None:
        if required:
            raise ValidationError(f"{name} is required", details={"field": name})
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer", details={"field": name})
    if minimum is not None and value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}", details={"field": name})
    return value


def _date_field(payload: dict, name: str) -> date | None:
    value = payload.get(name)
    if value is None or isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)", details={"field": name})
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO date (YYYY-MM-DD)", details={"field": name}) from None


def _str_field(payload: dict, name: str, max_length: int = 255) -> str | None:
    value = payload.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string", details={"field": name})
    value = value.strip()
    if len(value) > max_length:
        raise ValidationError(f"{name} must be at most {max_length} characters", details={"field": name})
    return value or None


def _validate_stock_movement(payload: dict, counterparty_field: str) -> dict:
    return {
        "product_id": _int_field(payload, "product_id"),
        "quantity": _int_field(payload, "quantity", minimum=1),
        "unit_cost_cents": _int_field(payload, "unit_cost_cents", required=False, minimum=0),
        "client_id": _int_field(payload, "client_id", required=False),
        "counterparty_name": _str_field(payload, counterparty_field),
        "due_date": _date_field(payload, "due_date"),
        "location_id": _str_field(payload, "location_id", 64),
        "reason": _str_field(payload, "reason", 64),
        "notes": _str_field(payload, "notes"),
    }


def _validate_stock_entry(payload: dict) -> dict:
    return _validate_stock_movement(payload, "supplier_name")


def _validate_stock_exit(payload: dict) -> dict:
    return _validate_stock_movement(payload, "client_name")


def _validate_product_sale(payload: dict) -> dict:
    return {
        "product_id": _int_field(payload, "product_id"),
        "quantity": _int_field(payload, "quantity", minimum=1),
        "unit_price_cents": _int_field(payload, "unit_price_cents", required=False, minimum=0),
        "client_id": _int_field(payload, "client_id", required=False),
        "client_name": _str_field(payload, "client_name"),
        "payment_method_id": _int_field(payload, "payment_method_id", required=False),
        "location_id": _str_field(payload, "location_id", 64),
        "notes": _str_field(payload, "notes"),
    }


def _validate_package_sale(payload: dict) -> dict:
    return {
        "client_id": _int_field(payload, "client_id"),
        "service_package_id": _int_field(payload, "service_package_id"),
        "quantity": _int_field(payload, "quantity", required=False, minimum=1) or 1,
        "price_cents": _int_field(payload, "price_cents", required=False, minimum=0),
        "notes": _str_field(payload, "notes"),
    }


VALIDATORS = {
    EVENT_STOCK_ENTRY: _validate_stock_entry,
    EVENT_STOCK_EXIT: _validate_stock_exit,
    EVENT_PRODUCT_SALE: _validate_product_sale,
    EVENT_PACKAGE_SALE: _validate_package_sale,
}


def validate_payload(event_type: str, payload) -> dict:
    if event_type not in VALIDATORS:
        raise ValidationError(
            f"event_type must be one of: {', '.join(EVENT_TYPES)}",
            details={"field": "event_type"},
        )
    if not isinstance(payload, dict):
        raise ValidationError("payload must be an object")
    return VALIDATORS[event_type](payload)


def _normalize_key(key) -> str | None:
    if key is None:
        return None
    if not isinstance(key, str) or not key.strip():
        raise ValidationError("idempotency_key must be a non-empty string")
    key = key.strip()
    if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise ValidationError(f"idempotency_key must be at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters")
    return key


# Handlers (run inside the event transaction; never commit)

def _client_name(tenant_id: int, client_id: int | None, given: str | None, default: str) -> str:
    if client_id is not None:
        return lookup_dependency(Client, tenant_id, client_id, "client").full_name
    return given or default


def _apply_stock_movement(tenant_id: int, data: dict, movement_type: str) -> CascadeResult:
    product = lock_product(tenant_id, data["product_id"])
    quantity = data["quantity"]
    unit_cost = data["unit_cost_cents"]
    if unit_cost is None:
        unit_cost = product.cost_price_cents or 0
    due_date = data["due_date"] or utctoday()

    if movement_type == MOVEMENT_ENTRY:
        counterparty = data["counterparty_name"] or DEFAULT_SUPPLIER_NAME
    else:
        counterparty = _client_name(tenant_id, data["client_id"], data["counterparty_name"], DEFAULT_CLIENT_NAME)

    movement = record_movement(
        tenant_id=tenant_id,
        product=product,
        movement_type=movement_type,
        quantity=quantity,
        unit_cost_cents=unit_cost,
        location_id=data["location_id"],
        reason=data["reason"],
    )

    if movement_type == MOVEMENT_ENTRY:
        entry = create_payable(
            tenant_id=tenant_id,
            description=f"Compra de estoque: {product.name} ({quantity} un)",
            amount_cents=quantity * unit_cost,
            due_date=due_date,
            counterparty_name=counterparty,
            category=CATEGORY_STOCK,
            reference_type=REF_STOCK_ENTRY,
            reference_id=movement.id,
            notes=data["notes"],
        )
        return CascadeResult(EVENT_STOCK_ENTRY, "stock_movement", movement.id, [("account_payable", entry.id)])

    entry = create_receivable(
        tenant_id=tenant_id,
        client_id=data["client_id"],
        description=f"Venda de produto: {product.name} ({quantity} un)",
        amount_cents=quantity * unit_cost,
        due_date=due_date,
        counterparty_name=counterparty,
        category=CATEGORY_SALES,
        reference_type=REF_STOCK_EXIT,
        reference_id=movement.id,
        notes=data["notes"],
    )
    return CascadeResult(EVENT_STOCK_EXIT, "stock_movement", movement.id, [("account_receivable", entry.id)])


def _apply_stock_entry(tenant_id: int, data: dict) -> CascadeResult:
    return _apply_stock_movement(tenant_id, data, MOVEMENT_ENTRY)


def _apply_stock_exit(tenant_id: int, data: dict) -> CascadeResult:
    return _apply_stock_movement(tenant_id, data, MOVEMENT_EXIT)


def _apply_product_sale(tenant_id: int, data: dict) -> CascadeResult:
    product = lock_product(tenant_id, data["product_id"])
    quantity = data["quantity"]
    client_name = _client_name(tenant_id, data["client_id"], data["client_name"], DEFAULT_CLIENT_NAME)

    payment_method = None
    if data["payment_method_id"] is not None:
        payment_method = lookup_dependency(PaymentMethod, tenant_id, data["payment_method_id"], "payment_method")

    on_hand = product.stock_quantity or 0
    if quantity > on_hand:
        raise InsufficientStockError(product.id, product.name, quantity, on_hand)

    unit_price = data["unit_price_cents"]
    if unit_price is None:
        unit_price = product.price_cents or 0

    sale = ProductSale(
        tenant_id=tenant_id,
        client_id=data["client_id"],
        product_id=product.id,
        payment_method_id=payment_method.id if payment_method else None,
        quantity=quantity,
        unit_price_cents=unit_price,
        total_cents=unit_price * quantity,
    )
    db.session.add(sale)
    db.session.flush()

    movement = record_movement(
        tenant_id=tenant_id,
        product=product,
        movement_type=MOVEMENT_EXIT,
        quantity=quantity,
        unit_cost_cents=product.cost_price_cents,
        location_id=data["location_id"],
        reason="sale",
        product_sale_id=sale.id,
    )

    description = f"Venda de Produto: {product.name} - {client_name} ({quantity}x)"
    if payment_method is not None:
        description += f" - {payment_method.name}"

    today = utctoday()
    entry = create_receivable(
        tenant_id=tenant_id,
        client_id=data["client_id"],
        description=description,
        amount_cents=sale.total_cents,
        due_date=today,
        payment_date=today,
        status=STATUS_RECEIVED,
        counterparty_name=client_name,
        category=CATEGORY_SALES,
        reference_type=REF_PRODUCT_SALE,
        reference_id=sale.id,
        notes=data["notes"],
    )
    return CascadeResult(
        EVENT_PRODUCT_SALE,
        "product_sale",
        sale.id,
        [("stock_movement", movement.id), ("account_receivable", entry.id)],
    )


def _apply_package_sale(tenant_id: int, data: dict) -> CascadeResult:
    client = lookup_dependency(Client, tenant_id, data["client_id"], "client")
    package = lookup_dependency(ServicePackage, tenant_id, data["service_package_id"], "service_package")
    quantity = data["quantity"]

    price = data["price_cents"]
    if price is None:
        price = (package.price_cents or 0) * quantity

    sale = ServicePackageSale(
        tenant_id=tenant_id,
        client_id=client.id,
        service_package_id=package.id,
        price_cents=price,
        purchased_quantity=quantity,
        remaining_quantity=quantity,
    )
    db.session.add(sale)
    db.session.flush()

    entry = create_receivable(
        tenant_id=tenant_id,
        client_id=client.id,
        description=f"Venda de Pacote: {package.name} - {client.full_name} ({quantity}x)",
        amount_cents=price,
        due_date=utctoday(),
        status=STATUS_PENDING,
        counterparty_name=client.full_name,
        category=CATEGORY_PACKAGES,
        reference_type=REF_PACKAGE_SALE,
        reference_id=sale.id,
        notes=data["notes"],
    )
    return CascadeResult(EVENT_PACKAGE_SALE, "package_sale", sale.id, [("account_receivable", entry.id)])


HANDLERS = {
    EVENT_STOCK_ENTRY: _apply_stock_entry,
    EVENT_STOCK_EXIT: _apply_stock_exit,
    EVENT_PRODUCT_SALE: _apply_product_sale,
    EVENT_PACKAGE_SALE: _apply_package_sale,
}


# Idempotency receipts

def _find_receipt(tenant_id: int, key: str) -> ProcessedEvent | None:
    return (
        db.session.query(ProcessedEvent)
        .filter_by(tenant_id=tenant_id, idempotency_key=key)
        .first()
    )


def _replay(receipt: ProcessedEvent, event_type: str) -> CascadeResult:
    if receipt.event_type != event_type:
        raise ConflictError(
            f"Idempotency key {receipt.idempotency_key} was already used for a {receipt.event_type} event",
            details={"idempotency_key": receipt.idempotency_key, "event_type": receipt.event_type},
        )
    current_app.logger.info(
        "Replaying %s event for key %s (tenant %s)", event_type, receipt.idempotency_key, receipt.tenant_id
    )
    return CascadeResult(
        event_type=receipt.event_type,
        primary_type=receipt.primary_type,
        primary_id=receipt.primary_id,
        derived=[(kind, record_id) for kind, record_id in receipt.derived or []],
        replayed=True,
    )


def apply_event(event: Event) -> CascadeResult:
    """
    Apply one primary event and everything it derives, atomically.

    Raises ValidationError before touching the store, then
    InsufficientStockError / DependencyLookupFailure / PersistenceFailure
    with nothing committed.
    """
    data = validate_payload(event.event_type, event.payload)
    key = _normalize_key(event.idempotency_key)
    handler = HANDLERS[event.event_type]

    def _op():
        begin_write()
        require_tenant(event.tenant_id)

        if key is not None:
            receipt = _find_receipt(event.tenant_id, key)
            if receipt is not None:
                result = _replay(receipt, event.event_type)
                db.session.rollback()
                return result

        result = handler(event.tenant_id, data)

        if key is not None:
            db.session.add(
                ProcessedEvent(
                    tenant_id=event.tenant_id,
                    idempotency_key=key,
                    event_type=event.event_type,
                    primary_type=result.primary_type,
                    primary_id=result.primary_id,
                    derived=[[kind, record_id] for kind, record_id in result.derived],
                )
            )
            try:
                db.session.flush()
            except IntegrityError:
                # A concurrent request with the same key committed first
                db.session.rollback()
                receipt = _find_receipt(event.tenant_id, key)
                if receipt is None:
                    raise
                return _replay(receipt, event.event_type)

        db.session.commit()
        current_app.logger.info(
            "Applied %s event for tenant %s: %s %s -> %s",
            event.event_type, event.tenant_id, result.primary_type, result.primary_id, result.derived,
        )
        return result

    return run_with_retry(_op)


def post_event(tenant_id: int, event_type: str, payload: dict, idempotency_key: str | None = None) -> CascadeResult:
    return apply_event(Event(tenant_id, event_type, payload, idempotency_key))
