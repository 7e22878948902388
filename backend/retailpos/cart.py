# Overview: Typed sale-submission input consumed by the sale engine.

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Union

from .money import ZERO

WALK_IN_DEFAULT_NAME = "Walk-in Customer"


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    discount: Decimal = ZERO


@dataclass(frozen=True)
class RegisteredCustomer:
    """Sale against a customer on file; the credit ledger is updated."""
    customer_id: int


@dataclass(frozen=True)
class WalkInCustomer:
    """Sale without a customer account; only a name/phone snapshot is kept."""
    name: str = WALK_IN_DEFAULT_NAME
    phone: str = ""


CustomerRef = Union[RegisteredCustomer, WalkInCustomer]


@dataclass(frozen=True)
class Cart:
    lines: list[CartLine]
    payment_method: str
    amount_paid: Decimal
    discount_total: Decimal = ZERO
    customer: CustomerRef = field(default_factory=WalkInCustomer)
    offline_id: Optional[str] = None

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)
