from __future__ import annotations

from ..extensions import db
from ..money import money_json
from retailpos.time_utils import to_utc_z


class Customer(db.Model):
    """
    Registered customer and their credit ledger.

    WHY: Credit sales leave a shortfall that the shop collects later;
    outstanding_balance is the running sum of those shortfalls.

    LEDGER FIELDS (written by the sale engine via atomic increments):
    - outstanding_balance
    - loyalty_points
    - last_visit_at

    credit_limit is advisory only. Nothing blocks a credit sale that exceeds it.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False, unique=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    gstin = db.Column(db.String(32), nullable=True)

    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    credit_limit = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    outstanding_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    last_visit_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "gstin": self.gstin,
            "loyalty_points": self.loyalty_points,
            "credit_limit": money_json(self.credit_limit),
            "outstanding_balance": money_json(self.outstanding_balance),
            "last_visit_at": to_utc_z(self.last_visit_at) if self.last_visit_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
