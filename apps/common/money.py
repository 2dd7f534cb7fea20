"""
Decimal helpers shared by currency conversion, price rules and discounts.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def to_decimal(value: Decimal | int | float | str | None, default: Decimal = ZERO) -> Decimal:
    """Coerce stored or user supplied numbers to Decimal.

    Floats go through ``str`` so 0.1 stays 0.1 instead of its binary expansion.
    """
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Booleans are not monetary values")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a numeric value: {value!r}") from e


def quantize_half_up(amount: Decimal, decimals: int) -> Decimal:
    """Round half away from zero to ``decimals`` places.

    ``ROUND_HALF_UP`` on Decimal rounds ties away from zero for both signs.
    """
    exponent = Decimal(1).scaleb(-decimals) if decimals > 0 else Decimal(1)
    return amount.quantize(exponent, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    return amount * percent / HUNDRED
