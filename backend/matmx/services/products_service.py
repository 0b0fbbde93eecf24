# backend/matmx/services/products_service.py
"""
Products Service

Product master data. stock is deliberately absent from PRODUCT_MUTABLE_FIELDS:
it is written only through inventory_service. A non-zero initial stock on
create is recorded as an "initial_stock" adjustment.
"""
from __future__ import annotations

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Product, User
from .concurrency import atomic
from .inventory_service import record_stock_change

PRODUCT_MUTABLE_FIELDS = {"sku", "name", "vendor", "category", "notes", "reorder_threshold", "unit_price"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _require_sku_free(sku: str, exclude_id: int | None = None) -> None:
    q = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise ConflictError(f"SKU already exists: {sku}")


def list_products() -> list[Product]:
    return db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def create_product(*, patch: dict, actor: User | None = None) -> Product:
    """
    Create product using a validated patch dict.

    Raises:
        ConflictError: If SKU already exists
    """
    initial_stock = patch.get("stock") or 0

    with atomic():
        _require_sku_free(patch["sku"])
        p = Product(stock=0, reorder_threshold=0)
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.flush()
        if initial_stock:
            record_stock_change(
                p,
                initial_stock,
                reason="initial_stock",
                actor_id=actor.id if actor else None,
            )

    return p


def update_product(*, product_id: int, patch: dict) -> Product:
    """Update product master data. stock is never part of the patch."""
    p = get_product(product_id)

    with atomic():
        if "sku" in patch and patch["sku"] != p.sku:
            _require_sku_free(patch["sku"], exclude_id=p.id)
        apply_product_patch(p, patch)

    return p
