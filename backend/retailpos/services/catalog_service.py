# Overview: Service-layer operations for the product catalog used by the sale engine.

from __future__ import annotations

from ..extensions import db
from ..models import Product
from .concurrency import lock_for_update


def find_product_by_id(product_id: int, *, lock: bool = False) -> Product | None:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_product_by_sku(sku: str) -> Product | None:
    """SKUs are stored upper-cased; lookups are case-insensitive."""
    if not sku:
        return None
    return db.session.query(Product).filter_by(sku=sku.strip().upper()).first()


def save_product(product: Product) -> Product:
    """Stage a product write in the current transaction (no commit)."""
    if product.sku:
        product.sku = product.sku.strip().upper()
    db.session.add(product)
    db.session.flush()
    return product

