from __future__ import annotations

from ..extensions import db
from matmx.money import to_money_str
from matmx.time_utils import to_utc_z

class Product(db.Model):
    """
    Product master data with its current on-hand stock.

    SKU DESIGN DECISION:
    Product.sku is globally unique and is the key for CSV upserts.

    STOCK:
    stock is written only by the inventory service (signed adjustments and
    CSV import). Product create/update endpoints never accept it as a patch.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    vendor = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Signed on purpose: negative on-hand is allowed unless ALLOW_NEGATIVE_STOCK is off
    stock = db.Column(db.Integer, nullable=False, default=0)
    reorder_threshold = db.Column(db.Integer, nullable=False, default=0)

    unit_price = db.Column(db.Numeric(12, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "vendor": self.vendor,
            "category": self.category,
            "notes": self.notes,
            "stock": self.stock,
            "reorder_threshold": self.reorder_threshold,
            "unit_price": to_money_str(self.unit_price),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryAdjustment(db.Model):
    """
    Signed stock change with provenance.

    INVARIANT: resulting_stock = stock before the change + change, computed
    inside the same transaction that wrote the product row.

    IMMUTABLE: Append-only.
    """
    __tablename__ = "inventory_adjustments"
    __table_args__ = (
        db.Index("ix_inventory_adjustments_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    change = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(64), nullable=False, default="unspecified")
    note = db.Column(db.Text, nullable=True)

    adjusted_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    resulting_stock = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")
    adjuster = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "change": self.change,
            "reason": self.reason,
            "note": self.note,
            "adjusted_by": self.adjusted_by,
            "adjusted_by_name": self.adjuster.name if self.adjuster else None,
            "resulting_stock": self.resulting_stock,
            "created_at": to_utc_z(self.created_at),
        }
