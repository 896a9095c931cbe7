from decimal import Decimal

import pytest

from Utils.appError import ValidationError
from Utils.money import to_minor_units, from_minor_units, format_minor_units, format_amount, quantize


@pytest.mark.parametrize("amount, minor", [
    (Decimal("19.99"), 1999),
    ("10.005", 1001),
    (19.99, 1999),
    (0, 0),
    (Decimal("0.004"), 0),
])
def test_to_minor_units_rounds_half_up(amount, minor):
    assert to_minor_units(amount) == minor


def test_minor_units_back_to_major():
    assert from_minor_units(1999) == Decimal("19.99")
    assert format_minor_units(1999) == "19.99"
    assert format_minor_units(500) == "5.00"


def test_display_formatting_only_adds_symbol():
    assert format_amount(Decimal("19.9"), "£") == "£19.90"
    assert quantize("2.345") == Decimal("2.35")


def test_invalid_amount_rejected():
    with pytest.raises(ValidationError):
        to_minor_units("not-a-price")
