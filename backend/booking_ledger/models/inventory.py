from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, to_iso_date

MOVEMENT_ENTRY = "entry"
MOVEMENT_EXIT = "exit"


class Product(db.Model):
    """
    Product master data plus its stock balance.

    INVARIANT: stock_quantity equals the sum of entry movements minus exit
    movements for the product and never goes below zero. Only the cascade
    engine writes it, under a row lock and version check.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=True)
    cost_price_cents = db.Column(db.Integer, nullable=True)
    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "price_cents": self.price_cents,
            "cost_price_cents": self.cost_price_cents,
            "stock_quantity": self.stock_quantity,
            "is_active": self.is_active,
            "version_id": self.version_id,
        }


class StockMovement(db.Model):
    """
    Immutable record of stock entering or leaving.

    Each movement produces exactly one stock delta and is traced by exactly
    one ledger entry (its own, or the product sale's receivable when
    product_sale_id is set).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)
    location_id = db.Column(db.String(64), nullable=True)
    reason = db.Column(db.String(64), nullable=True)

    product_sale_id = db.Column(db.Integer, db.ForeignKey("product_sales.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def quantity_delta(self) -> int:
        return self.quantity if self.movement_type == MOVEMENT_ENTRY else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "location_id": self.location_id,
            "reason": self.reason,
            "product_sale_id": self.product_sale_id,
            "created_at": to_utc_z(self.created_at),
        }


class ProductBatch(db.Model):
    """
    Lot of a product with optional manufacturing/expiry dates.

    Batch quantities are tracked independently from Product.stock_quantity.
    """
    __tablename__ = "product_batches"
    __table_args__ = (
        db.Index("ix_product_batches_tenant_expiry", "tenant_id", "expiry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    batch_number = db.Column(db.String(64), nullable=False)
    manufacturing_date = db.Column(db.Date, nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    location_id = db.Column(db.String(64), nullable=True)

    product = db.relationship("Product", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "batch_number": self.batch_number,
            "manufacturing_date": to_iso_date(self.manufacturing_date),
            "expiry_date": to_iso_date(self.expiry_date),
            "quantity": self.quantity,
            "location_id": self.location_id,
        }
