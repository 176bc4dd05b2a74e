from decimal import Decimal

import pytest

from fiscal_ledger.errors import ValidationError
from fiscal_ledger.utils import quantize_rate, to_money, to_quantity


def test_to_money_rounds_half_up_to_cents():
    assert to_money("12.345") == Decimal("12.35")
    assert to_money(Decimal("12.344")) == Decimal("12.34")


def test_to_money_defaults_none_to_zero():
    assert to_money(None) == Decimal("0.00")
    assert to_money(5) == Decimal("5.00")


def test_to_money_rejects_garbage():
    with pytest.raises(ValidationError):
        to_money("not-a-number")


def test_to_quantity_keeps_four_places():
    assert to_quantity("2.00005") == Decimal("2.0001")
    assert to_quantity(3) == Decimal("3.0000")
    with pytest.raises(ValidationError):
        to_quantity("lots")


def test_quantize_rate_keeps_four_places():
    assert quantize_rate("16") == Decimal("16.0000")
    assert quantize_rate(None) == Decimal("0.0000")
