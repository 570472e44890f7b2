"""Fixed-point helpers for energy and money.

kWh carry 4 decimal places, money 2, tariff rates 4 and VAT percentages 2.
Money is rounded half-up; energy shares are rounded down so that residuals
derived by subtraction never go negative.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

KWH = Decimal("0.0001")
CENT = Decimal("0.01")
RATE = Decimal("0.0001")
PERCENT = Decimal("0.01")

ZERO_KWH = Decimal("0.0000")
ZERO_MONEY = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    """Convert a stored or user-supplied value to a finite Decimal.

    Floats go through ``str`` so 0.1 becomes Decimal("0.1"), not its binary
    expansion. Raises ValueError for anything non-numeric, NaN or infinite.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValueError(f"not a number: {value!r}")
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise ValueError(f"not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return result


def kwh(value: Any) -> Decimal:
    return to_decimal(value).quantize(KWH, rounding=ROUND_HALF_UP)


def kwh_down(value: Decimal) -> Decimal:
    """Quantize an energy share, never rounding up."""
    return value.quantize(KWH, rounding=ROUND_DOWN)


def money(value: Any) -> Decimal:
    """Round a monetary amount to cents, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def rate(value: Any) -> Decimal:
    return to_decimal(value).quantize(RATE, rounding=ROUND_HALF_UP)


def percent(value: Any) -> Decimal:
    return to_decimal(value).quantize(PERCENT, rounding=ROUND_HALF_UP)


def vat_amount(subtotal: Decimal, vat_rate: Decimal) -> Decimal:
    return money(subtotal * vat_rate / Decimal(100))
