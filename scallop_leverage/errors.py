"""Error taxonomy shared by the calculation core and the orchestrator."""
from __future__ import annotations


class LeverageError(Exception):
    """Base class for every error raised by this package."""


class FetchError(LeverageError):
    """A market, oracle or ledger query failed (or timed out)."""


class DataUnavailable(LeverageError):
    """A price, coin metadata or market entry needed for a calculation is missing."""

    def __init__(self, coin_type: str, what: str) -> None:
        super().__init__(f"{what} unavailable for {coin_type}")
        self.coin_type = coin_type
        self.what = what


class DebtDataUnavailable(DataUnavailable, FetchError):
    """Missing data for a debt entry; debt is never silently dropped."""


class ExecutionFailure(LeverageError):
    """A deposit or borrow transaction was rejected."""


class CycleCancelled(LeverageError):
    """The stop signal was observed at a suspension point."""
