from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ProcessedEvent(db.Model):
    """
    Receipt for an applied primary event, keyed by the caller's
    idempotency key. Written in the same transaction as the cascade, so a
    receipt exists if and only if the records it lists exist.
    """
    __tablename__ = "processed_events"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "idempotency_key", name="uq_processed_events_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    idempotency_key = db.Column(db.String(128), nullable=False)
    event_type = db.Column(db.String(32), nullable=False)
    primary_type = db.Column(db.String(32), nullable=False)
    primary_id = db.Column(db.Integer, nullable=False)
    derived = db.Column(db.JSON, nullable=False, default=list)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "idempotency_key": self.idempotency_key,
            "event_type": self.event_type,
            "primary_type": self.primary_type,
            "primary_id": self.primary_id,
            "derived": self.derived,
            "created_at": to_utc_z(self.created_at),
        }
