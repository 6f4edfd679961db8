"""Fixed-point helpers used by the valuator and the sizing calculator.

Every amount, price and factor flows through :class:`decimal.Decimal`.
Arithmetic (``+ - * /``) is plain ``Decimal`` arithmetic evaluated inside
:data:`CONTEXT`; this module adds the two operations ``Decimal`` does not
spell directly: shifting by a power of ten and flooring to an integer.
"""
from __future__ import annotations

import decimal
from decimal import Decimal
from typing import Any, ContextManager

# 60 significant digits covers u64 raw amounts shifted by 18 places with room
# to spare for price and factor products.
CONTEXT = decimal.Context(prec=60, rounding=decimal.ROUND_HALF_EVEN)

ZERO = Decimal(0)
ONE = Decimal(1)


def to_decimal(value: Any) -> Decimal:
    """Convert ints, strings and Decimals exactly; floats go through ``str``."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def shift(value: Any, places: int) -> Decimal:
    """Return ``value × 10^places`` (exact; only the exponent moves)."""
    return to_decimal(value).scaleb(places, context=CONTEXT)


def floor_int(value: Decimal) -> int:
    """Round toward negative infinity and return a Python int."""
    return int(value.to_integral_value(rounding=decimal.ROUND_FLOOR, context=CONTEXT))


def precise() -> ContextManager[decimal.Context]:
    """Context manager that evaluates Decimal arithmetic under :data:`CONTEXT`."""
    return decimal.localcontext(CONTEXT)
