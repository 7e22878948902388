from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from .cart import Cart, CartLine, RegisteredCustomer, WalkInCustomer, WALK_IN_DEFAULT_NAME
from .models import PAYMENT_METHODS
from .money import to_money, ZERO


# Maximum amount: 9,999,999,999.99 (fits Numeric(12, 2))
MAX_AMOUNT = Decimal("9999999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


def _coerce_int(value: Any, field: str) -> int:
    # bool is a subclass of int; reject it explicitly
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationError(f"{field} must be an integer")


def _coerce_money(value: Any, field: str, *, default: Decimal | None = None) -> Decimal:
    if value is None:
        if default is not None:
            return default
        raise ValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = to_money(value)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a number")
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT}")
    return amount


def _parse_line(raw: Any, index: int) -> CartLine:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{index}] must be an object")

    product_id = raw.get("productId", raw.get("product_id"))
    if product_id is None:
        raise ValidationError(f"items[{index}].productId is required")
    product_id = _coerce_int(product_id, f"items[{index}].productId")

    quantity = _coerce_int(raw.get("quantity"), f"items[{index}].quantity")
    if quantity <= 0:
        raise ValidationError(f"items[{index}].quantity must be > 0")

    discount = _coerce_money(raw.get("discount"), f"items[{index}].discount", default=ZERO)
    return CartLine(product_id=product_id, quantity=quantity, discount=discount)


def _parse_customer(payload: dict):
    customer_id = payload.get("customerId")
    name = payload.get("customerName")
    phone = payload.get("customerPhone")

    if customer_id not in (None, ""):
        if name or phone:
            raise ValidationError("customerId cannot be combined with customerName/customerPhone")
        return RegisteredCustomer(customer_id=_coerce_int(customer_id, "customerId"))

    name = str(name).strip() if name else ""
    phone = str(phone).strip() if phone else ""
    return WalkInCustomer(name=name or WALK_IN_DEFAULT_NAME, phone=phone)


def parse_sale_payload(payload: Any) -> Cart:
    """
    Validate and normalize a sale-submission payload into a Cart.

    Expected shape:
        {
          "items": [{"productId", "quantity", "discount"?}],
          "customerId"?, "customerName"?, "customerPhone"?,
          "paymentMethod", "amountPaid", "discountTotal"?, "offlineId"?
        }
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    items = payload.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    lines = [_parse_line(raw, i) for i, raw in enumerate(items)]

    payment_method = payload.get("paymentMethod")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"paymentMethod must be one of: {', '.join(PAYMENT_METHODS)}")

    amount_paid = _coerce_money(payload.get("amountPaid"), "amountPaid")
    discount_total = _coerce_money(payload.get("discountTotal"), "discountTotal", default=ZERO)

    offline_id = payload.get("offlineId")
    if offline_id is not None:
        offline_id = str(offline_id).strip()[:64] or None

    return Cart(
        lines=lines,
        payment_method=payment_method,
        amount_paid=amount_paid,
        discount_total=discount_total,
        customer=_parse_customer(payload),
        offline_id=offline_id,
    )
