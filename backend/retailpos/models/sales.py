from __future__ import annotations

from ..extensions import db
from ..money import money_json
from retailpos.time_utils import to_utc_z

PAYMENT_METHODS = ("cash", "card", "upi", "credit", "split")
PAYMENT_STATUSES = ("paid", "pending")
SALE_STATUSES = ("completed", "hold", "returned")


class Sale(db.Model):
    """
    Finalized sale (invoice).

    IMMUTABLE: Created exactly once by the sale engine, in the same
    transaction as every stock, ledger and report side effect. Never updated.

    CUSTOMER: exactly one of customer_id (registered) or the walk-in snapshot
    (customer_name, customer_phone) is stored.

    MONEY: all totals are two-decimal amounts except cgst/sgst, which keep a
    third decimal so that cgst == sgst == tax_total / 2 holds exactly.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint(
            "(customer_id IS NOT NULL AND customer_name IS NULL)"
            " OR (customer_id IS NULL AND customer_name IS NOT NULL)",
            name="ck_sales_customer_xor_walkin",
        ),
        db.Index("ix_sales_created_at", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable invoice number (e.g., "INV-202600042")
    invoice_number = db.Column(db.String(64), nullable=False, unique=True)

    cashier_id = db.Column(db.String(64), nullable=False, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(32), nullable=True)

    total_quantity = db.Column(db.Integer, nullable=False)
    sub_total = db.Column(db.Numeric(12, 2), nullable=False)
    tax_total = db.Column(db.Numeric(12, 2), nullable=False)
    cgst = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    sgst = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    igst = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    discount_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    grand_total = db.Column(db.Numeric(12, 2), nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, default="cash", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="paid", index=True)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False)
    change_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    # Opaque client reference for offline-queued submissions; stored, never deduplicated on
    offline_id = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy=True,
        order_by="SaleLine.line_number",
        cascade="all, delete-orphan",
    )

    @property
    def customer_details(self) -> dict | None:
        if self.customer_id is not None:
            return None
        return {"name": self.customer_name, "phone": self.customer_phone}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "cashier_id": self.cashier_id,
            "customer_id": self.customer_id,
            "customer_details": self.customer_details,
            "items": [line.to_dict() for line in self.lines],
            "total_quantity": self.total_quantity,
            "sub_total": money_json(self.sub_total),
            "tax_total": money_json(self.tax_total),
            "cgst": money_json(self.cgst),
            "sgst": money_json(self.sgst),
            "igst": money_json(self.igst),
            "discount_total": money_json(self.discount_total),
            "grand_total": money_json(self.grand_total),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "amount_paid": money_json(self.amount_paid),
            "change_amount": money_json(self.change_amount),
            "status": self.status,
            "offline_id": self.offline_id,
            "created_at": to_utc_z(self.created_at),
        }


class SaleLine(db.Model):
    """
    Point-in-time snapshot of one cart line.

    Catalog prices change after the sale; everything needed to reprint or
    audit the invoice is copied here.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_number", name="uq_sale_lines_sale_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)  # applied (retail or wholesale)
    cost_price = db.Column(db.Numeric(12, 2), nullable=False)
    tax_rate = db.Column(db.Numeric(5, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    sub_total = db.Column(db.Numeric(12, 2), nullable=False)  # unit_price * quantity - discount

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_number": self.line_number,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": money_json(self.unit_price),
            "cost_price": money_json(self.cost_price),
            "tax_rate": money_json(self.tax_rate),
            "tax_amount": money_json(self.tax_amount),
            "discount": money_json(self.discount),
            "sub_total": money_json(self.sub_total),
        }
