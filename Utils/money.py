"""
Money helpers.

Amounts travel through the app as ``Decimal`` major units (e.g. 19.99).
Providers want integer minor units (cents/pence); ``to_minor_units`` is the
single place that conversion happens, rounding half-up.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from Utils.appError import ValidationError

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        # str() first so floats like 19.99 don't carry binary noise
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Invalid amount: {value!r}")


def to_minor_units(amount) -> int:
    """19.99 -> 1999, 10.005 -> 1001."""
    minor = (to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(minor)


def from_minor_units(units: int) -> Decimal:
    return (Decimal(int(units)) / 100).quantize(CENT)


def format_minor_units(units: int) -> str:
    """1999 -> '19.99' (the string form PayPal expects)."""
    return f"{from_minor_units(units):.2f}"


def quantize(amount) -> Decimal:
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(amount, symbol: str = "£") -> str:
    return f"{symbol}{quantize(amount):.2f}"
