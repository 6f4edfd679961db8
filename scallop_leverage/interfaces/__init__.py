"""Protocol interfaces for the leverage engine's external collaborators."""
from .chain import ChainClient
from .executor import TransactionExecutor
from .lending_market import LendingMarket
from .notifier import Notifier
from .price_oracle import PriceOracle

__all__ = [
    "ChainClient",
    "LendingMarket",
    "Notifier",
    "PriceOracle",
    "TransactionExecutor",
]
