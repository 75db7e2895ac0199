"""
Amount and Tolerance Module

Exact decimal amounts tagged with a commodity code, plus the tolerance
rules used to compare them. NEVER uses float for monetary values.
"""

from decimal import Decimal, InvalidOperation, getcontext
from dataclasses import dataclass, field
from typing import Dict
import re

# Set global decimal context for financial precision
getcontext().prec = 28

DEFAULT_TOLERANCE = Decimal('0.005')

# Commodity codes: uppercase, may contain digits and ' . _ - in the middle
CURRENCY_PATTERN = re.compile(r"^[A-Z](?:[A-Z0-9'._-]{0,22}[A-Z0-9])?$")


def is_valid_currency(code: str) -> bool:
    """Check that a commodity code is a short uppercase symbol"""
    return bool(code) and CURRENCY_PATTERN.match(code) is not None


@dataclass(frozen=True)
class Amount:
    """
    Immutable amount of a single commodity.
    The number is kept exactly as given, no rounding is applied.
    """
    number: Decimal
    currency: str

    def __post_init__(self):
        if not isinstance(self.number, Decimal):
            if isinstance(self.number, float):
                raise TypeError("Amount number must not be a float")
            object.__setattr__(self, 'number', decimal_from_string(str(self.number)))

        if not is_valid_currency(self.currency):
            raise ValueError(f"Invalid currency code '{self.currency}'")

    @classmethod
    def parse(cls, text: str) -> 'Amount':
        """Parse '100.00 USD' into an Amount"""
        parts = text.split()
        if len(parts) != 2:
            raise ValueError(f"Cannot parse amount '{text}'")
        return cls(decimal_from_string(parts[0]), parts[1])

    @classmethod
    def zero(cls, currency: str) -> 'Amount':
        return cls(Decimal('0'), currency)

    def __add__(self, other: 'Amount') -> 'Amount':
        if self.currency != other.currency:
            raise ValueError(f"Cannot add {self.currency} and {other.currency}")
        return Amount(self.number + other.number, self.currency)

    def __sub__(self, other: 'Amount') -> 'Amount':
        if self.currency != other.currency:
            raise ValueError(f"Cannot subtract {other.currency} from {self.currency}")
        return Amount(self.number - other.number, self.currency)

    def __mul__(self, multiplier: Decimal) -> 'Amount':
        if not isinstance(multiplier, Decimal):
            multiplier = decimal_from_string(str(multiplier))
        return Amount(self.number * multiplier, self.currency)

    def __neg__(self) -> 'Amount':
        return Amount(-self.number, self.currency)

    def __abs__(self) -> 'Amount':
        return Amount(abs(self.number), self.currency)

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.number == Decimal('0')

    def is_negative(self) -> bool:
        return self.number < Decimal('0')

    def to_string(self) -> str:
        """Format for display, keeping the exact digits"""
        return f"{format_decimal(self.number)} {self.currency}"

    def __str__(self) -> str:
        return self.to_string()


def format_decimal(value: Decimal) -> str:
    """Render a Decimal without exponent notation"""
    return f"{value:f}"


def decimal_from_string(value: str) -> Decimal:
    """
    Convert a string to Decimal, accepting thousands separators

    Args:
        value: String representation of number (e.g. '1,234.50' or '-3')

    Returns:
        Decimal value

    Raises:
        ValueError: If string cannot be converted to a finite Decimal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    clean_value = value.strip().replace(',', '')

    try:
        result = Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")

    if not result.is_finite():
        raise ValueError(f"Cannot convert '{value}' to Decimal")
    return result


@dataclass
class ToleranceConfig:
    """
    Absolute tolerances used when comparing sums and balances.
    A currency-specific entry wins over the '*' wildcard.
    """
    defaults: Dict[str, Decimal] = field(default_factory=lambda: {'*': DEFAULT_TOLERANCE})

    def set(self, currency: str, tolerance: Decimal) -> None:
        if tolerance < 0:
            raise ValueError(f"Tolerance must not be negative: {tolerance}")
        self.defaults[currency] = tolerance

    def for_currency(self, currency: str) -> Decimal:
        if currency in self.defaults:
            return self.defaults[currency]
        return self.defaults.get('*', DEFAULT_TOLERANCE)

    def copy(self) -> 'ToleranceConfig':
        return ToleranceConfig(dict(self.defaults))


def amounts_equal(a: Decimal, b: Decimal, tolerance: Decimal) -> bool:
    """Check if two numbers are equal within an absolute tolerance"""
    return abs(a - b) <= tolerance
