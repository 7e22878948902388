# Overview: Service-layer operations for the customer credit ledger.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import update

from ..extensions import db
from ..models import Customer
from .concurrency import lock_for_update
"""
Customer ledger invariants (authoritative)

- outstanding_balance and loyalty_points change only by increments, never
  by read-modify-write of a value held in Python.
- Increments are written inside the same DB transaction as the sale that
  causes them.
- credit_limit is advisory and not checked here.
"""


class LedgerError(Exception):
    """Raised when a ledger update cannot be applied."""
    pass


def find_customer_by_id(customer_id: int, *, lock: bool = False) -> Customer | None:
    query = db.session.query(Customer).filter_by(id=customer_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def increment_customer_balance_and_points(
    customer_id: int,
    balance_delta: Decimal,
    points_delta: int,
    *,
    visited_at: datetime | None = None,
) -> Customer:
    """
    Atomically add to a customer's outstanding balance and loyalty points.

    Does not commit.
    """
    values = {
        "outstanding_balance": Customer.outstanding_balance + balance_delta,
        "loyalty_points": Customer.loyalty_points + points_delta,
        "version_id": Customer.version_id + 1,
    }
    if visited_at is not None:
        values["last_visit_at"] = visited_at

    stmt = (
        update(Customer)
        .where(Customer.id == customer_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise LedgerError(f"Customer {customer_id} not found")

    customer = db.session.get(Customer, customer_id)
    db.session.refresh(customer)
    return customer
