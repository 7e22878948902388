from __future__ import annotations

from ..extensions import db
from ..money import money_json
from .sales import PAYMENT_METHODS


class DailyReport(db.Model):
    """
    Per-calendar-day rollup of sales activity.

    Keyed by the store's local date. Created by the first sale of the day
    and only ever changed through additive increments afterwards.

    PAYMENT BREAKDOWN: one column per payment method, exposed as a mapping.
    The credit bucket also receives every sale's unpaid shortfall, so buckets
    are not mutually exclusive.
    """
    __tablename__ = "daily_reports"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, unique=True)

    total_sales = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_profit = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_tax = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_discount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    order_count = db.Column(db.Integer, nullable=False, default=0)

    cash_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    card_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    upi_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    credit_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    split_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    @staticmethod
    def breakdown_column(method: str):
        if method not in PAYMENT_METHODS:
            raise ValueError(f"Unknown payment method: {method}")
        return getattr(DailyReport, f"{method}_amount")

    @property
    def payment_breakdown(self) -> dict:
        return {method: getattr(self, f"{method}_amount") for method in PAYMENT_METHODS}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "total_sales": money_json(self.total_sales),
            "total_profit": money_json(self.total_profit),
            "total_tax": money_json(self.total_tax),
            "total_discount": money_json(self.total_discount),
            "order_count": self.order_count,
            "payment_breakdown": {k: money_json(v) for k, v in self.payment_breakdown.items()},
        }
