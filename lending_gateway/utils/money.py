"""Money rounding helpers (integer cents, half-up)"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float, Decimal]

CENT = Decimal("1")
HUNDREDTH = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    """Exact decimal via str(), so 15.9 becomes Decimal("15.9")"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_whole(value: Number) -> int:
    """Nearest integer, half-up (6.5 -> 7)"""
    return int(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def round_cents(value: Number) -> int:
    """Round a fractional cent amount to whole cents, half-up"""
    return round_whole(value)


def round_percent(value: Number) -> float:
    """Round a percentage to 2 decimals, half-up"""
    return float(to_decimal(value).quantize(HUNDREDTH, rounding=ROUND_HALF_UP))


def percent_of(amount_cents: int, rate: Number) -> int:
    """Apply a fractional rate (0.10 = 10%) to a cent amount"""
    return round_cents(Decimal(amount_cents) * to_decimal(rate))
