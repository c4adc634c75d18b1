from __future__ import annotations

from sqlalchemy.orm import declared_attr

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date

DIRECTION_PAYABLE = "payable"
DIRECTION_RECEIVABLE = "receivable"

STATUS_PENDING = "pending"
STATUS_PAID = "paid"
STATUS_RECEIVED = "received"
STATUS_OVERDUE = "overdue"  # derived at read time, never stored
STATUS_CANCELLED = "cancelled"

REF_STOCK_ENTRY = "stock_entry"
REF_STOCK_EXIT = "stock_exit"
REF_PRODUCT_SALE = "product_sale"
REF_PACKAGE_SALE = "package_sale"


class LedgerEntryMixin:
    """
    Columns shared by payables and receivables.

    Derived entries point back to their trigger via
    (reference_type, reference_id); the pair is unique per tenant so one
    trigger can never produce two entries.
    """

    id = db.Column(db.Integer, primary_key=True)

    @declared_attr
    def tenant_id(cls):
        return db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    description = db.Column(db.String(255), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False, index=True)
    payment_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)
    category = db.Column(db.String(64), nullable=True)
    counterparty_name = db.Column(db.String(255), nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    direction = None  # set by subclasses

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "direction": self.direction,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "due_date": to_iso_date(self.due_date),
            "payment_date": to_iso_date(self.payment_date),
            "status": self.status,
            "category": self.category,
            "counterparty_name": self.counterparty_name,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class AccountPayable(LedgerEntryMixin, db.Model):
    __tablename__ = "accounts_payable"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "reference_type", "reference_id", name="uq_accounts_payable_reference"),
        db.CheckConstraint("amount_cents >= 0", name="ck_accounts_payable_amount"),
        {"sqlite_autoincrement": True},
    )

    direction = DIRECTION_PAYABLE
    settled_status = STATUS_PAID


class AccountReceivable(LedgerEntryMixin, db.Model):
    __tablename__ = "accounts_receivable"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "reference_type", "reference_id", name="uq_accounts_receivable_reference"),
        db.CheckConstraint("amount_cents >= 0", name="ck_accounts_receivable_amount"),
        {"sqlite_autoincrement": True},
    )

    direction = DIRECTION_RECEIVABLE
    settled_status = STATUS_RECEIVED

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["client_id"] = self.client_id
        return data
