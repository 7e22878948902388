from __future__ import annotations

from ..extensions import db
from retailpos.time_utils import to_utc_z

INVENTORY_LOG_TYPES = ("SALE", "PURCHASE", "RETURN", "ADJUSTMENT")


class InventoryLog(db.Model):
    """
    Append-only record of every stock mutation.

    WHY: previous_stock/new_stock snapshots let an auditor replay a product's
    stock history without recomputing it from quantities.

    IMMUTABLE: Records are never updated or deleted.

    QUANTITY: signed delta. Negative for SALE, positive for PURCHASE/RETURN.
    """
    __tablename__ = "inventory_logs"
    __table_args__ = (
        db.Index("ix_inventory_logs_product_timestamp", "product_id", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    previous_stock = db.Column(db.Integer, nullable=False)
    new_stock = db.Column(db.Integer, nullable=False)

    # Sale id for SALE entries
    reference_id = db.Column(db.Integer, nullable=True, index=True)

    user_id = db.Column(db.String(64), nullable=False, index=True)
    note = db.Column(db.String(255), nullable=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product", backref=db.backref("inventory_logs", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "previous_stock": self.previous_stock,
            "new_stock": self.new_stock,
            "reference_id": self.reference_id,
            "user_id": self.user_id,
            "note": self.note,
            "timestamp": to_utc_z(self.timestamp),
        }
