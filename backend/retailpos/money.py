# Overview: Two-decimal money arithmetic helpers shared by models and services.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, ROUND_FLOOR

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Coerce int/float/str/Decimal to a Decimal quantized to two places."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        # str() keeps floats like 0.1 from dragging binary noise along
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def floor_div(value: Decimal, unit: int) -> int:
    """Whole number of `unit`s contained in value (floor-rounded, never negative)."""
    if value <= 0:
        return 0
    return int((value / Decimal(unit)).to_integral_value(rounding=ROUND_FLOOR))


def money_json(value) -> float | None:
    """Serialize a money value for JSON responses."""
    if value is None:
        return None
    return float(value)
