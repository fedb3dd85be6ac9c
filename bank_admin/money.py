"""
Monetary Amount Helpers

Balances are Decimal values with exactly two fractional digits. NEVER uses
float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from typing import Union

from .errors import ValidationError

# Set global decimal context for financial precision
getcontext().prec = 28

SCALE = 2
CENTS = Decimal('0.01')
ZERO = Decimal('0.00')

# Largest balance every backend can hold: NUMERIC(15, 2) in PostgreSQL,
# and well inside a 64-bit integer of cents in SQLite
MAX_AMOUNT = Decimal('9999999999999.99')


def to_amount(value: Union[Decimal, int, float, str]) -> Decimal:
    """
    Convert a value to a Decimal rounded half-up to two places.

    Floats are converted through their string form so 0.1 stays 0.10.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}")
    if not isinstance(value, Decimal):
        try:
            value = Decimal(str(value))
        except (InvalidOperation, ValueError):
            raise ValidationError(f"Invalid amount: {value!r}")

    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {value}")

    try:
        return value.quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # More digits than the context precision allows
        raise ValidationError(f"Invalid amount: {value}")


def within_limit(amount: Decimal) -> bool:
    """True when the magnitude of amount fits in a stored balance"""
    return abs(amount) <= MAX_AMOUNT


def to_minor_units(amount: Decimal) -> int:
    """Convert a two-place amount to integer cents"""
    return int(to_amount(amount) * 100)


def from_minor_units(cents: int) -> Decimal:
    """Convert integer cents back to a two-place amount"""
    return (Decimal(int(cents)) / 100).quantize(CENTS)


def format_amount(amount: Decimal) -> str:
    """Format amount for display"""
    return f"{to_amount(amount):,.2f}"
