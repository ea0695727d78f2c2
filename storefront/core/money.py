"""Decimal helpers for monetary amounts."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

MoneyLike = Union[Decimal, int, str]


def to_money(value: MoneyLike) -> Decimal:
    """
    Convert a value to a two-place Decimal, rounding half up.

    Floats are rejected; amounts must arrive as Decimal, int or str.

    Raises:
        TypeError: If ``value`` is a float
    """
    if isinstance(value, float):
        raise TypeError("Monetary amounts must not be floats")
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
