from __future__ import annotations

from ..extensions import db
from ..money import money_json
from retailpos.time_utils import to_utc_z


class Category(db.Model):
    """Product grouping used by the catalog screens."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    OWNERSHIP:
    - The sale engine writes stock_quantity and last_sold_at only.
    - Catalog management owns every other field (price, cost, tax, tiers).

    STOCK: stock_quantity is a hot shared counter. It is only ever decremented
    through a conditional UPDATE guarded by stock_quantity >= quantity, and the
    CHECK constraint below backs that up at the database level.

    WHOLESALE TIER: wholesale_price applies when BOTH wholesale fields are set
    and a single line's quantity reaches wholesale_threshold.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_nonnegative"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    # NULLs do not collide under a UNIQUE constraint, so barcode is unique-if-present
    barcode = db.Column(db.String(64), nullable=True, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    price = db.Column(db.Numeric(12, 2), nullable=False)
    cost_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)  # percent, 18 == 18%

    wholesale_price = db.Column(db.Numeric(12, 2), nullable=True)
    wholesale_threshold = db.Column(db.Integer, nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    low_stock_threshold = db.Column(db.Integer, nullable=False, default=10)
    unit = db.Column(db.String(16), nullable=False, default="pcs")

    brand = db.Column(db.String(128), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
    last_sold_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock_quantity}>"

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity <= self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "price": money_json(self.price),
            "cost_price": money_json(self.cost_price),
            "tax_rate": money_json(self.tax_rate),
            "wholesale_price": money_json(self.wholesale_price),
            "wholesale_threshold": self.wholesale_threshold,
            "stock_quantity": self.stock_quantity,
            "low_stock_threshold": self.low_stock_threshold,
            "unit": self.unit,
            "brand": self.brand,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
            "last_sold_at": to_utc_z(self.last_sold_at) if self.last_sold_at else None,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
