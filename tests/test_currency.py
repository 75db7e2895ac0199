"""
Test suite for amount and tolerance module

CRITICAL: Verifies that amounts use exact Decimal arithmetic and never floats.
"""

import pytest
from decimal import Decimal

from ledger_engine.currency import (
    Amount, ToleranceConfig, DEFAULT_TOLERANCE, amounts_equal,
    decimal_from_string, format_decimal, is_valid_currency,
)


class TestAmount:
    """Test Amount value object"""

    def test_create_amount(self):
        """Test creating an amount keeps the exact digits"""
        amount = Amount(Decimal('100.50'), 'USD')
        assert amount.number == Decimal('100.50')
        assert amount.currency == 'USD'
        assert amount.to_string() == "100.50 USD"

    def test_float_rejected(self):
        """Test that floats are refused"""
        with pytest.raises(TypeError, match="float"):
            Amount(100.5, 'USD')

    def test_int_converted(self):
        """Test that ints are converted to Decimal"""
        amount = Amount(5, 'EUR')
        assert amount.number == Decimal('5')

    def test_invalid_currency(self):
        """Test that lowercase or empty currency codes are rejected"""
        with pytest.raises(ValueError, match="Invalid currency"):
            Amount(Decimal('1'), 'usd')
        with pytest.raises(ValueError, match="Invalid currency"):
            Amount(Decimal('1'), '')

    def test_parse(self):
        """Test parsing '<number> <currency>'"""
        amount = Amount.parse("-1,234.56 USD")
        assert amount == Amount(Decimal('-1234.56'), 'USD')

        with pytest.raises(ValueError, match="Cannot parse"):
            Amount.parse("12 USD extra")

    def test_arithmetic(self):
        """Test exact addition, subtraction and negation"""
        a = Amount(Decimal('0.10'), 'USD')
        b = Amount(Decimal('0.20'), 'USD')
        assert (a + b).number == Decimal('0.30')
        assert (b - a).number == Decimal('0.10')
        assert (-a).number == Decimal('-0.10')
        assert abs(-a) == a
        assert (a * Decimal('3')).number == Decimal('0.30')

    def test_mixed_currency_arithmetic(self):
        """Test that amounts in different currencies cannot be combined"""
        with pytest.raises(ValueError, match="Cannot add"):
            Amount(Decimal('1'), 'USD') + Amount(Decimal('1'), 'EUR')
        with pytest.raises(ValueError, match="Cannot subtract"):
            Amount(Decimal('1'), 'USD') - Amount(Decimal('1'), 'EUR')

    def test_predicates(self):
        """Test zero and sign checks"""
        assert Amount.zero('USD').is_zero()
        assert Amount(Decimal('-0.01'), 'USD').is_negative()
        assert not Amount(Decimal('0.01'), 'USD').is_negative()

    def test_many_small_postings_do_not_drift(self):
        """Test that repeated cent additions stay exact"""
        total = Amount.zero('USD')
        for _ in range(10000):
            total = total + Amount(Decimal('0.01'), 'USD')
        assert total.number == Decimal('100.00')


class TestCurrencyCodes:
    """Test commodity code validation"""

    def test_valid_codes(self):
        assert is_valid_currency('USD')
        assert is_valid_currency('VACHR')
        assert is_valid_currency('HOOL.A')
        assert is_valid_currency('A')

    def test_invalid_codes(self):
        assert not is_valid_currency('usd')
        assert not is_valid_currency('1USD')
        assert not is_valid_currency('USD.')


class TestDecimalHelpers:
    """Test decimal parsing and formatting helpers"""

    def test_decimal_from_string(self):
        assert decimal_from_string('1,000.00') == Decimal('1000.00')
        assert decimal_from_string(' -3 ') == Decimal('-3')

    def test_decimal_from_string_invalid(self):
        with pytest.raises(ValueError):
            decimal_from_string('abc')
        with pytest.raises(ValueError):
            decimal_from_string('')
        with pytest.raises(ValueError):
            decimal_from_string('NaN')

    def test_format_decimal_without_exponent(self):
        assert format_decimal(Decimal('1E+3')) == "1000"
        assert format_decimal(Decimal('0.0000001')) == "0.0000001"


class TestToleranceConfig:
    """Test tolerance lookup"""

    def test_default_tolerance(self):
        config = ToleranceConfig()
        assert config.for_currency('USD') == DEFAULT_TOLERANCE
        assert DEFAULT_TOLERANCE == Decimal('0.005')

    def test_currency_override(self):
        config = ToleranceConfig()
        config.set('JPY', Decimal('1'))
        assert config.for_currency('JPY') == Decimal('1')
        assert config.for_currency('USD') == Decimal('0.005')

    def test_wildcard_override(self):
        config = ToleranceConfig()
        config.set('*', Decimal('0.01'))
        assert config.for_currency('EUR') == Decimal('0.01')

    def test_negative_tolerance_rejected(self):
        with pytest.raises(ValueError, match="must not be negative"):
            ToleranceConfig().set('USD', Decimal('-0.1'))

    def test_copy_is_independent(self):
        config = ToleranceConfig()
        clone = config.copy()
        clone.set('USD', Decimal('1'))
        assert config.for_currency('USD') == Decimal('0.005')

    def test_amounts_equal(self):
        assert amounts_equal(Decimal('1.000'), Decimal('1.005'), Decimal('0.005'))
        assert not amounts_equal(Decimal('1.000'), Decimal('1.006'), Decimal('0.005'))
