"""Price oracle protocol — price feed abstraction."""
from decimal import Decimal
from typing import Protocol


class PriceOracle(Protocol):
    """Abstract interface for fetching a USD price.

    ``None`` means the price is unavailable; ``Decimal(0)`` is a real price.
    """

    async def get_price(self, coin: str, source: str = "pyth") -> Decimal | None: ...
