"""Lending market protocol — obligation and market snapshot reads."""
from typing import Any, Protocol

from ..models import CoinMetadata, MarketData, Obligation, ObligationRef


class LendingMarket(Protocol):
    """Abstract interface for reading a lending protocol's state."""

    async def list_obligations(self, owner: str) -> list[ObligationRef]: ...

    async def query_obligation(self, ref: ObligationRef) -> Obligation: ...

    async def query_market_snapshot(self) -> dict[str, Any]: ...

    async def fetch_market_data(self) -> MarketData: ...

    async def get_coin_metadata(self, coin_type: str) -> CoinMetadata | None: ...
