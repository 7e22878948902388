# Overview: Service-layer operations for the daily aggregate report.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from retailpos.extensions import db
from retailpos.models import DailyReport, PAYMENT_METHODS
from retailpos.money import ZERO


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


@dataclass
class DailyDeltas:
    """Additive increments one sale contributes to its day's report."""
    total_sales: Decimal = ZERO
    total_profit: Decimal = ZERO
    total_tax: Decimal = ZERO
    total_discount: Decimal = ZERO
    order_count: int = 0
    payment_breakdown: dict[str, Decimal] = field(default_factory=dict)

    def add_payment(self, method: str, amount: Decimal) -> None:
        if method not in PAYMENT_METHODS:
            raise ReportError(f"Unknown payment method: {method}")
        self.payment_breakdown[method] = self.payment_breakdown.get(method, ZERO) + amount


def _increment_values(deltas: DailyDeltas) -> dict:
    values = {
        "total_sales": DailyReport.total_sales + deltas.total_sales,
        "total_profit": DailyReport.total_profit + deltas.total_profit,
        "total_tax": DailyReport.total_tax + deltas.total_tax,
        "total_discount": DailyReport.total_discount + deltas.total_discount,
        "order_count": DailyReport.order_count + deltas.order_count,
    }
    for method, amount in deltas.payment_breakdown.items():
        column = DailyReport.breakdown_column(method)
        values[column.key] = column + amount
    return values


def _apply_increment(report_date: date, deltas: DailyDeltas) -> bool:
    stmt = (
        update(DailyReport)
        .where(DailyReport.date == report_date)
        .values(**_increment_values(deltas))
        .execution_options(synchronize_session=False)
    )
    return bool(db.session.execute(stmt).rowcount)


def upsert_daily_increment(report_date: date, deltas: DailyDeltas) -> None:
    """
    Add a sale's contribution to the report for report_date.

    Existing rows are only ever incremented in SQL (col = col + delta), so
    concurrent sales on the same day never overwrite each other. The first
    sale of the day inserts the row; losing that insert race falls back to
    the increment. Does not commit.
    """
    if _apply_increment(report_date, deltas):
        return

    row = DailyReport(
        date=report_date,
        total_sales=deltas.total_sales,
        total_profit=deltas.total_profit,
        total_tax=deltas.total_tax,
        total_discount=deltas.total_discount,
        order_count=deltas.order_count,
    )
    for method in PAYMENT_METHODS:
        setattr(row, f"{method}_amount", deltas.payment_breakdown.get(method, ZERO))

    try:
        # SAVEPOINT so a lost insert race does not roll back the caller's work
        with db.session.begin_nested():
            db.session.add(row)
    except IntegrityError:
        if not _apply_increment(report_date, deltas):
            raise


def get_daily_report(report_date: date) -> DailyReport | None:
    report = db.session.query(DailyReport).filter_by(date=report_date).first()
    if report is not None:
        # Increments bypass the identity map; make sure we return stored values
        db.session.refresh(report)
    return report
