# Overview: Service-layer operations for inventory; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app
from sqlalchemy import select, update

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryAdjustment, Product
from .concurrency import atomic, lock_for_update
from ..validation import check_integer_range
"""
Inventory Invariants (authoritative)

Stock model:
- Product.stock is the current on-hand count. Callers never write it directly;
  it changes through adjust_inventory (signed delta) or record_stock_change
  (CSV import / initial stock), both of which append an InventoryAdjustment.

Adjustment invariants:
- resulting_stock = stock before the adjustment + change.
- The product row is locked (SELECT ... FOR UPDATE) and the new value is
  written with a single relative UPDATE (stock = stock + :change), so two
  concurrent adjustments can never overwrite each other.
- Adjustment rows are append-only.

Floor:
- Negative stock is a valid state by default. With ALLOW_NEGATIVE_STOCK off,
  an adjustment that would take stock below zero is a ConflictError.
"""

DEFAULT_REASON = "unspecified"


def _lock_product(product_id: int) -> Product:
    product = (
        lock_for_update(db.session.query(Product).filter(Product.id == product_id))
        .populate_existing()
        .first()
    )
    if product is None:
        raise NotFoundError("Product not found")
    return product


def _validate_change(change) -> int:
    if isinstance(change, bool) or not isinstance(change, int):
        raise ValidationError("change must be an integer")
    if change == 0:
        raise ValidationError("change must be a non-zero integer")
    return check_integer_range("change", change)


def adjust_inventory(
    *,
    product_id: int,
    change: int,
    reason: str | None = None,
    note: str | None = None,
    actor_id: int | None = None,
) -> InventoryAdjustment:
    """
    Apply a signed stock delta and record it, in one transaction.

    Raises:
        ValidationError: change is not a non-zero integer, or stock would leave the column range
        NotFoundError: product does not exist (nothing is written)
        ConflictError: floor enforcement is on and stock would go negative
    """
    change = _validate_change(change)

    with atomic():
        product = _lock_product(product_id)

        if not current_app.config.get("ALLOW_NEGATIVE_STOCK", True) and product.stock + change < 0:
            raise ConflictError(
                "Adjustment would make stock negative",
                details={"stock": product.stock, "change": change},
            )
        check_integer_range("stock", product.stock + change)

        db.session.execute(
            update(Product)
            .where(Product.id == product.id)
            .values(stock=Product.stock + change)
        )
        resulting_stock = db.session.execute(
            select(Product.stock).where(Product.id == product.id)
        ).scalar_one()

        adjustment = InventoryAdjustment(
            product_id=product.id,
            change=change,
            reason=(reason or "").strip() or DEFAULT_REASON,
            note=note.strip() if isinstance(note, str) and note.strip() else None,
            adjusted_by=actor_id,
            resulting_stock=resulting_stock,
        )
        db.session.add(adjustment)
        db.session.flush()

    current_app.logger.info(
        "Inventory adjusted: product=%s change=%s resulting_stock=%s by user=%s",
        product_id, change, resulting_stock, actor_id,
    )
    return adjustment


def record_stock_change(
    product: Product,
    new_stock: int,
    *,
    reason: str,
    note: str | None = None,
    actor_id: int | None = None,
) -> InventoryAdjustment | None:
    """
    Set an absolute stock level on a product already locked by the caller.

    Flushes, never commits. Returns None when the level does not change.
    """
    previous = product.stock or 0
    if new_stock == previous:
        return None
    change = check_integer_range("change", new_stock - previous)

    product.stock = new_stock
    adjustment = InventoryAdjustment(
        product_id=product.id,
        change=change,
        reason=reason,
        note=note,
        adjusted_by=actor_id,
        resulting_stock=new_stock,
    )
    db.session.add(adjustment)
    db.session.flush()
    return adjustment


def list_adjustments(product_id: int) -> list[InventoryAdjustment]:
    """Adjustment history for a product, newest first."""
    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product not found")
    return (
        db.session.query(InventoryAdjustment)
        .filter(InventoryAdjustment.product_id == product_id)
        .order_by(InventoryAdjustment.created_at.desc(), InventoryAdjustment.id.desc())
        .all()
    )


def reorder_alerts() -> list[Product]:
    """Products whose stock is below their reorder threshold. Read only."""
    return (
        db.session.query(Product)
        .filter(Product.stock < Product.reorder_threshold)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
