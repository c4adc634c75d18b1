"""
Error taxonomy for booking and ledger operations.

Every rejection names the resource concerned; the UI shows these messages
verbatim so staff can pick another slot, product or quantity.

HTTP mapping (see to_response):
- ValidationError         400  bad input, rejected before any write
- TenantAccessError       404  row missing or owned by another tenant
- DependencyLookupFailure 422  referenced entity missing mid-cascade
- ConflictError           409  slot already held
- InsufficientStockError  409  quantity exceeds on-hand
- InvalidTransitionError  409  status machine violation
- PersistenceFailure      503  store unavailable/timeout, retryable
"""

from __future__ import annotations


class BookingLedgerError(Exception):
    """Base for all domain errors; carries structured details for the caller."""

    status_code = 400
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message, "type": type(self).__name__}
        if self.details:
            body["details"] = self.details
        if self.retryable:
            body["retryable"] = True
        return body


class ValidationError(BookingLedgerError, ValueError):
    """400-level input problem."""
    status_code = 400


class TenantAccessError(BookingLedgerError):
    """Raised when a row does not exist for the calling tenant."""
    status_code = 404


class DependencyLookupFailure(BookingLedgerError):
    """A product/client/service/package lookup failed; the cascade is aborted."""
    status_code = 422

    def __init__(self, kind: str, entity_id, message: str | None = None):
        super().__init__(
            message or f"{kind} {entity_id} not found",
            details={"entity": kind, "entity_id": entity_id},
        )
        self.kind = kind
        self.entity_id = entity_id


class ConflictError(BookingLedgerError):
    """409-level business rule conflict (overlapping appointment)."""
    status_code = 409


class InsufficientStockError(BookingLedgerError):
    status_code = 409

    def __init__(self, product_id: int, product_name: str, requested: int, on_hand: int):
        super().__init__(
            f"Insufficient stock for {product_name}: requested {requested}, on hand {on_hand}",
            details={
                "product_id": product_id,
                "product_name": product_name,
                "requested_quantity": requested,
                "on_hand": on_hand,
            },
        )


class InvalidTransitionError(BookingLedgerError):
    status_code = 409


class PersistenceFailure(BookingLedgerError):
    """Store unavailable or timed out. Nothing was committed; safe to retry."""
    status_code = 503
    retryable = True


def to_response(exc: BookingLedgerError):
    return exc.to_dict(), exc.status_code
