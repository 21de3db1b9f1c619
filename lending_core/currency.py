"""
Money and Decimal Helpers

Currency codes, cent-precision rounding and string parsing for every
monetary value in the lending engine. NEVER uses float for money.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from enum import Enum
from typing import Union
import re

from .errors import InvalidAmount

# High precision for intermediate products (balance * rate * periods)
getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0.00')

DecimalLike = Union[Decimal, int, str]

# Only currency symbols and whitespace may be dropped from an amount string
_IGNORED_CHARS = re.compile(r'[\s$€£]')
_AMOUNT_PATTERN = re.compile(r'[+-]?[\d.,]+')


class Currency(Enum):
    """ISO 4217 codes a loan can be denominated in, with minor-unit precision"""
    USD = ("USD", 2)  # US Dollar
    PAB = ("PAB", 2)  # Panamanian Balboa
    EUR = ("EUR", 2)  # Euro

    def __init__(self, code: str, precision: int):
        self.code = code
        self.precision = precision


def to_decimal(value: DecimalLike) -> Decimal:
    """
    Convert an int, str or Decimal into a Decimal without going through float

    Raises:
        ValueError: If the value is a float or cannot be parsed
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise ValueError(f"Refusing to build money from {type(value).__name__} {value!r}")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        return decimal_from_string(value)
    raise ValueError(f"Cannot convert {type(value).__name__} to Decimal")


def round_money(value: DecimalLike) -> Decimal:
    """Round to cents, half-up"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Money:
    """
    Immutable amount in a currency, rounded to the currency's precision.
    Used at the edges (API payloads, log lines); the engine itself works on
    plain cent-rounded Decimals.
    """
    amount: Decimal
    currency: Currency

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', to_decimal(self.amount))

        rounded = self.amount.quantize(
            Decimal('0.1') ** self.currency.precision,
            rounding=ROUND_HALF_UP
        )
        object.__setattr__(self, 'amount', rounded)


def decimal_from_string(value: str) -> Decimal:
    """
    Safely convert string to Decimal, handling common formats

    Currency symbols and whitespace are ignored. Anything else that is not a
    digit, sign or separator (letters, exponents) is rejected rather than
    dropped.

    Args:
        value: String representation of number ("1,250.50", "$ 80", "12,5")

    Returns:
        Decimal value

    Raises:
        InvalidAmount: If string cannot be converted to valid Decimal
    """
    if not value or not isinstance(value, str):
        raise InvalidAmount("Value must be a non-empty string")

    clean_value = _IGNORED_CHARS.sub('', value)
    if not _AMOUNT_PATTERN.fullmatch(clean_value):
        raise InvalidAmount(f"Cannot convert '{value}' to Decimal")

    if ',' in clean_value and '.' in clean_value:
        # Both comma and dot - assume comma is thousands separator
        clean_value = clean_value.replace(',', '')
    elif ',' in clean_value and clean_value.count(',') == 1:
        parts = clean_value.split(',')
        if len(parts[1]) <= 2:  # Decimal separator
            clean_value = clean_value.replace(',', '.')
        else:  # Thousands separator
            clean_value = clean_value.replace(',', '')

    try:
        return Decimal(clean_value)
    except InvalidOperation:
        raise InvalidAmount(f"Cannot convert '{value}' to Decimal")
