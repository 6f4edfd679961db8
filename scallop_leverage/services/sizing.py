"""Borrow sizing — turn a USD capacity into a smallest-unit borrow amount."""
from __future__ import annotations

from decimal import Decimal

from ..decimal_math import ZERO, floor_int, precise, shift, to_decimal

DEFAULT_FIXED_BUFFER = Decimal("0.1")
DEFAULT_SAFETY_MULTIPLIER = Decimal("0.99")


def size_borrow(
    available_capacity: Decimal,
    target_price: Decimal,
    target_borrow_weight: Decimal,
    target_decimals: int,
    fixed_buffer: Decimal = DEFAULT_FIXED_BUFFER,
    safety_multiplier: Decimal = DEFAULT_SAFETY_MULTIPLIER,
) -> int:
    """Return how many smallest units of the target asset are safe to borrow.

    The capacity is reduced by ``fixed_buffer`` (USD), converted into units at
    ``target_price``, scaled by the asset's borrow weight and by
    ``safety_multiplier``, then shifted by ``target_decimals`` and floored.
    Capacity at or below the buffer yields 0.

    Raises:
        ValueError: if ``target_price`` is not positive.
    """
    target_price = to_decimal(target_price)
    if target_price <= 0:
        raise ValueError(f"Cannot size a borrow at price {target_price}")

    with precise():
        margined = to_decimal(available_capacity) - to_decimal(fixed_buffer)
        if margined <= ZERO:
            return 0

        units = margined / target_price
        weighted = units * to_decimal(target_borrow_weight)
        safe = weighted * to_decimal(safety_multiplier)
        return max(0, floor_int(shift(safe, target_decimals)))
