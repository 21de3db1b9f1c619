"""
Test suite for currency module

All money is Decimal, rounded half-up to cents. Floats are refused outright.
"""

import pytest
from decimal import Decimal

from lending_core.allocation import allocate
from lending_core.currency import Currency, Money, decimal_from_string, round_money, to_decimal
from lending_core.errors import InvalidAmount


class TestToDecimal:
    """Test Decimal conversion"""

    def test_accepts_decimal_int_and_string(self):
        assert to_decimal(Decimal('1.50')) == Decimal('1.50')
        assert to_decimal(3) == Decimal('3')
        assert to_decimal("2.25") == Decimal('2.25')

    def test_rejects_float(self):
        with pytest.raises(ValueError, match="float"):
            to_decimal(0.1)

    def test_rejects_bool(self):
        with pytest.raises(ValueError):
            to_decimal(True)

    def test_rejects_other_types(self):
        with pytest.raises(ValueError):
            to_decimal([1])


class TestRounding:
    """Test half-up rounding to cents"""

    @pytest.mark.parametrize("value, expected", [
        ("2.345", "2.35"),
        ("2.344", "2.34"),
        ("18.51855", "18.52"),
        ("0.005", "0.01"),
        ("-2.345", "-2.35"),
    ])
    def test_round_money(self, value, expected):
        assert round_money(Decimal(value)) == Decimal(expected)


class TestMoney:
    """Test Money values"""

    def test_rounds_to_currency_precision(self):
        assert Money(Decimal('10.005'), Currency.USD).amount == Decimal('10.01')

    def test_string_amount(self):
        assert Money("99.9", Currency.PAB).amount == Decimal('99.90')

    def test_supported_currencies(self):
        assert [c.code for c in Currency] == ["USD", "PAB", "EUR"]


class TestDecimalFromString:
    """Test lenient string parsing"""

    @pytest.mark.parametrize("value, expected", [
        ("1,250.50", "1250.50"),
        ("12,5", "12.5"),
        ("1,250", "1250"),
        ("$ 80", "80"),
        ("€12.40", "12.40"),
        ("-5", "-5"),
    ])
    def test_formats(self, value, expected):
        assert decimal_from_string(value) == Decimal(expected)

    @pytest.mark.parametrize("value", ["", "abc", "1.2.3"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            decimal_from_string(value)

    @pytest.mark.parametrize("value", ["1e3", "1O0", "12abc", "USD 80", "NaN", "Infinity", "1_000"])
    def test_stray_characters_rejected(self, value):
        with pytest.raises(InvalidAmount):
            to_decimal(value)

    def test_exponent_never_reaches_allocation(self):
        with pytest.raises(InvalidAmount):
            allocate("1e3", "5000", "0")
