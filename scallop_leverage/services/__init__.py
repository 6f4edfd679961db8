"""Service modules"""
from .leverage_loop import LeverageLoop
from .selector import SelectionPolicy, select_obligation
from .sizing import size_borrow
from .valuator import PositionValuator, compute_valuation

__all__ = [
    "LeverageLoop",
    "PositionValuator",
    "SelectionPolicy",
    "compute_valuation",
    "select_obligation",
    "size_borrow",
]
