# Overview: Service-layer operations for stock mutation and the inventory audit log.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import update

from ..extensions import db
from ..models import InventoryLog, Product, INVENTORY_LOG_TYPES
from retailpos.time_utils import utcnow
"""
Inventory invariants (authoritative)

- Product.stock_quantity never goes negative.
- Every stock mutation appends exactly one InventoryLog row in the same
  transaction, carrying the before/after snapshot of that mutation.
- InventoryLog rows are never updated or deleted.
"""


class StockConflictError(Exception):
    """Raised when a guarded decrement finds less stock than requested."""
    def __init__(self, product_id: int, requested: int, available: int | None):
        super().__init__(f"Insufficient stock for product {product_id}")
        self.product_id = product_id
        self.requested = requested
        self.available = available


@dataclass(frozen=True)
class StockChange:
    product_id: int
    previous_stock: int
    new_stock: int


def decrement_stock(product: Product, quantity: int, *, now: datetime) -> StockChange:
    """
    Compare-and-swap decrement of a product's stock.

    The UPDATE only matches while stock_quantity >= quantity, so two writers
    racing on the same product cannot both take the last units. The snapshot
    is derived from the value the database actually wrote.

    Does not commit.
    """
    if quantity <= 0:
        raise ValueError("quantity must be > 0")

    stmt = (
        update(Product)
        .where(Product.id == product.id, Product.stock_quantity >= quantity)
        .values(
            stock_quantity=Product.stock_quantity - quantity,
            last_sold_at=now,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        available = (
            db.session.query(Product.stock_quantity).filter_by(id=product.id).scalar()
        )
        raise StockConflictError(product.id, quantity, available)

    # Reload so the ORM instance carries the new stock and version
    db.session.refresh(product)
    return StockChange(
        product_id=product.id,
        previous_stock=product.stock_quantity + quantity,
        new_stock=product.stock_quantity,
    )


def append_inventory_log(
    *,
    product_id: int,
    log_type: str,
    quantity: int,
    previous_stock: int,
    new_stock: int,
    user_id: str,
    reference_id: int | None = None,
    note: str | None = None,
    timestamp: datetime | None = None,
) -> InventoryLog:
    """
    Append-only inventory log entry.

    - No updates/deletes of existing entries.
    - previous_stock + quantity must equal new_stock.
    """
    if log_type not in INVENTORY_LOG_TYPES:
        raise ValueError(f"Unknown inventory log type: {log_type}")
    if previous_stock + quantity != new_stock:
        raise ValueError("Inventory log snapshot does not match quantity delta")

    entry = InventoryLog(
        product_id=product_id,
        type=log_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        user_id=user_id,
        reference_id=reference_id,
        note=note,
        timestamp=timestamp or utcnow(),
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry


def record_sale_stock_movement(
    *,
    product: Product,
    quantity: int,
    user_id: str,
    now: datetime,
    note: str | None = None,
) -> InventoryLog:
    """Decrement stock for one sale line and log it as a SALE movement."""
    change = decrement_stock(product, quantity, now=now)
    return append_inventory_log(
        product_id=product.id,
        log_type="SALE",
        quantity=-quantity,
        previous_stock=change.previous_stock,
        new_stock=change.new_stock,
        user_id=user_id,
        note=note,
        timestamp=now,
    )
