# Overview: Fixed-point helpers for currency and percentage values.

"""
Money and percentage conversions.

Storage format:
- Currency amounts are integer cents (e.g. 110400 == 1104.00)
- Percentages are integer basis points (e.g. 2000 == 20.00%)

Computation format:
- decimal.Decimal quantized to 2 places with ROUND_HALF_UP

Binary floats never enter a calculation: JSON numbers are routed through
str() before Decimal() so 0.1 stays 0.1.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Any) -> Decimal:
    """Convert int/str/float/Decimal to Decimal. Raises ValueError on garbage."""
    if isinstance(value, bool):
        raise ValueError("Boolean is not a decimal value")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"'{value}' is not a decimal value")
    else:
        raise ValueError(f"Unsupported decimal value: {value!r}")

    if not result.is_finite():
        raise ValueError(f"'{value}' is not a finite decimal value")
    return result


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def cents_to_decimal(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return (Decimal(cents) / HUNDRED).quantize(CENT)


def decimal_to_cents(value: Decimal) -> int:
    return int((quantize_money(value) * HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


def format_money(cents: int | None) -> str | None:
    """Wire format: decimal string with exactly two fractional digits."""
    if cents is None:
        return None
    return f"{cents_to_decimal(cents):.2f}"


def bps_to_percent(bps: int | None) -> Decimal | None:
    if bps is None:
        return None
    return (Decimal(bps) / HUNDRED).quantize(CENT)


def percent_to_bps(percent: Decimal) -> int:
    return int((quantize_money(percent) * HUNDRED).to_integral_value(rounding=ROUND_HALF_UP))


def format_percent(bps: int | None) -> str | None:
    if bps is None:
        return None
    return f"{bps_to_percent(bps):.2f}"


def decimal_places(value: Decimal) -> int:
    exponent = value.normalize().as_tuple().exponent
    return -exponent if exponent < 0 else 0
