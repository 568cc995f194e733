"""
Money Helpers Module

Decimal conversion and currency rounding for ledger amounts.
NEVER uses float for monetary values: every amount is a Decimal quantized
to cents with ROUND_HALF_UP.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Any, Iterable
import re

# Set global decimal context for financial precision
getcontext().prec = 28

ZERO = Decimal('0')
CENT = Decimal('0.01')

# Tolerance for "fully paid" comparisons
PAID_EPSILON = Decimal('0.000001')


def to_decimal(value: Any) -> Decimal:
    """
    Convert a stored or user-supplied value to Decimal

    Floats go through str() so 0.1 becomes Decimal('0.1'), not its binary
    expansion. None and empty strings become zero.

    Raises:
        ValueError: If the value cannot be read as a number
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Cannot convert boolean {value!r} to Decimal")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        return decimal_from_string(value)
    raise ValueError(f"Cannot convert {type(value).__name__} to Decimal")


def round_money(value: Any) -> Decimal:
    """Round to two decimal places, half up"""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Any]) -> Decimal:
    """Sum amounts and round the total once"""
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return round_money(total)


def decimal_from_string(value: str) -> Decimal:
    """
    Safely convert string to Decimal, handling common formats

    Args:
        value: String representation of number (e.g. "1,250.50", "$ 300")

    Returns:
        Decimal value

    Raises:
        ValueError: If string cannot be converted to valid Decimal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    # Remove currency symbols and whitespace
    clean_value = re.sub(r'[^\d.,\-+eE]', '', value.strip())

    # Comma and dot together: comma is the thousands separator
    if ',' in clean_value and '.' in clean_value:
        clean_value = clean_value.replace(',', '')
    elif ',' in clean_value and clean_value.count(',') == 1:
        parts = clean_value.split(',')
        if len(parts[1]) <= 2:
            clean_value = clean_value.replace(',', '.')
        else:
            clean_value = clean_value.replace(',', '')

    try:
        result = Decimal(clean_value)
    except InvalidOperation:
        raise ValueError(f"Cannot convert '{value}' to Decimal")
    if not result.is_finite():
        raise ValueError(f"Cannot convert '{value}' to Decimal")
    return result
