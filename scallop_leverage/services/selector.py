"""Obligation selection policies."""
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Iterable

from ..models import Obligation


class SelectionPolicy(str, Enum):
    """Which obligation with collateral to operate on.

    FIRST_NON_EMPTY: the first obligation, in listing order, holding collateral.
    LAST_NON_EMPTY: the last such obligation.
    LARGEST_COLLATERAL_VALUE: the one with the highest USD collateral value;
        ties go to the earliest in listing order.
    """

    FIRST_NON_EMPTY = "first_non_empty"
    LAST_NON_EMPTY = "last_non_empty"
    LARGEST_COLLATERAL_VALUE = "largest_collateral_value"


def select_obligation(
    obligations: Iterable[Obligation],
    policy: SelectionPolicy = SelectionPolicy.FIRST_NON_EMPTY,
    collateral_values: dict[str, Decimal] | None = None,
) -> Obligation | None:
    """Pick one obligation with at least one collateral entry, or None."""
    candidates = [o for o in obligations if o.collaterals]
    if not candidates:
        return None

    if policy is SelectionPolicy.FIRST_NON_EMPTY:
        return candidates[0]
    if policy is SelectionPolicy.LAST_NON_EMPTY:
        return candidates[-1]
    if policy is SelectionPolicy.LARGEST_COLLATERAL_VALUE:
        if collateral_values is None:
            raise ValueError("largest_collateral_value needs collateral values")
        best = candidates[0]
        best_value = collateral_values.get(best.id, Decimal(0))
        for candidate in candidates[1:]:
            value = collateral_values.get(candidate.id, Decimal(0))
            if value > best_value:
                best, best_value = candidate, value
        return best
    raise ValueError(f"Unknown selection policy: {policy}")
