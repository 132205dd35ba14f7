"""Tests for money helpers."""
from decimal import Decimal

import pytest

from revcycle.utils.decimal_utils import (
    amounts_balance,
    format_amount,
    sum_money,
    to_money,
)


@pytest.mark.unit
class TestToMoney:
    def test_string(self):
        assert to_money("123.45") == Decimal("123.45")

    def test_rounds_half_up(self):
        assert to_money("0.125") == Decimal("0.13")
        assert to_money("2.344") == Decimal("2.34")

    def test_float_goes_through_str(self):
        assert to_money(0.1) == Decimal("0.10")

    def test_int_and_whitespace(self):
        assert to_money(7) == Decimal("7.00")
        assert to_money("  12.5 ") == Decimal("12.50")

    def test_empty_is_zero(self):
        assert to_money(None) == Decimal("0.00")
        assert to_money("") == Decimal("0.00")

    @pytest.mark.parametrize("value", ["abc", "12.x", "NaN", "Infinity"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            to_money(value)


@pytest.mark.unit
class TestHelpers:
    def test_sum_money(self):
        assert sum_money(["100.10", None, Decimal("0.005"), 2]) == Decimal("102.11")

    def test_format_amount(self):
        assert format_amount(165) == "165.00"
        assert format_amount("12.5") == "12.50"

    def test_amounts_balance(self):
        assert amounts_balance("275.00", "274.99")
        assert not amounts_balance("275.00", "274.98")
