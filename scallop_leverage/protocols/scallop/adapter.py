"""Scallop protocol adapter — reads obligations and market snapshots."""
from __future__ import annotations

import asyncio
import json
import logging
import ssl
from decimal import Decimal
from functools import partial
from typing import Any

import aiohttp
import certifi

from ...config import ScallopConfig
from ...errors import FetchError
from ...interfaces.chain import ChainClient
from ...models import CoinMetadata, MarketData, Obligation, ObligationRef
from . import parser

logger = logging.getLogger(__name__)

# Keep JSON numbers exact; factors like 0.85 must not pass through float.
_decimal_json = partial(json.loads, parse_float=Decimal)


class ScallopAdapter:
    """Fetch and parse Scallop lending state on SUI."""

    def __init__(self, chain_client: ChainClient, config: ScallopConfig) -> None:
        self._client = chain_client
        self._config = config

    @property
    def protocol_name(self) -> str:
        return "scallop"

    # ------------------------------------------------------------------
    # Obligations
    # ------------------------------------------------------------------

    async def list_obligations(self, owner: str) -> list[ObligationRef]:
        """Find the obligations ``owner`` holds a key for."""
        key_type = self._config.obligation_key_type
        objects = await self._client.get_owned_objects(owner, key_type or None)

        refs: list[ObligationRef] = []
        for obj in objects:
            obj_type = obj.get("data", {}).get("type", "")
            if not parser.is_obligation_key(obj_type, key_type):
                continue
            ref = parser.parse_obligation_key(obj)
            if ref is None:
                logger.debug("ObligationKey without ownership data: %s", obj)
                continue
            refs.append(ref)

        logger.info("Found %d obligation(s) for %s", len(refs), owner)
        return refs

    async def _get_fields(self, object_id: str) -> dict[str, Any]:
        result = await self._client.get_object(object_id)
        fields = result.get("data", {}).get("content", {}).get("fields")
        if not fields:
            raise FetchError(f"Object {object_id} not found")
        return fields

    async def _get_table_entries(self, table_id: str) -> list[dict[str, Any]]:
        """Fetch the ``Field`` objects behind every entry of a table, in order."""
        dynamic_fields = await self._client.get_dynamic_fields(table_id)
        return list(
            await asyncio.gather(
                *(self._get_fields(df["objectId"]) for df in dynamic_fields)
            )
        )

    async def query_obligation(self, ref: ObligationRef) -> Obligation:
        """Fetch full collateral and debt detail for one obligation."""
        fields = await self._get_fields(ref.id)
        try:
            collateral_table, debt_table = parser.obligation_table_ids(fields)
        except (KeyError, TypeError) as e:
            raise FetchError(f"Unexpected obligation layout for {ref.id}: {e}") from e

        collateral_fields, debt_fields = await asyncio.gather(
            self._get_table_entries(collateral_table),
            self._get_table_entries(debt_table),
        )

        try:
            collaterals = tuple(parser.parse_collateral_field(f) for f in collateral_fields)
            debts = tuple(parser.parse_debt_field(f) for f in debt_fields)
        except (KeyError, TypeError, ValueError) as e:
            raise FetchError(f"Unexpected obligation entry for {ref.id}: {e}") from e

        logger.debug(
            "Obligation %s: %d collateral(s), %d debt(s)",
            ref.id, len(collaterals), len(debts),
        )
        return Obligation(
            id=ref.id, key_id=ref.key_id, collaterals=collaterals, debts=debts
        )

    # ------------------------------------------------------------------
    # Market
    # ------------------------------------------------------------------

    async def _get_json(self, session: aiohttp.ClientSession, url: str) -> dict[str, Any]:
        async with session.get(
            url, timeout=aiohttp.ClientTimeout(total=self._config.market_api_timeout)
        ) as response:
            if response.status != 200:
                raise FetchError(f"Market query {url} returned HTTP {response.status}")
            return await response.json(loads=_decimal_json)

    async def query_market_snapshot(self) -> dict[str, Any]:
        """Fetch the raw ``{pools, collaterals}`` market snapshot."""
        base_url = self._config.market_api_url.rstrip("/")
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                pools = await self._get_json(session, f"{base_url}/pools")
                collaterals = await self._get_json(session, f"{base_url}/collaterals")
        except FetchError:
            raise
        except Exception as e:
            raise FetchError(f"Market query failed: {e}") from e

        return {
            "pools": pools.get("pools", []),
            "collaterals": collaterals.get("collaterals", []),
        }

    async def fetch_market_data(self) -> MarketData:
        """Fresh market snapshot as lookup tables keyed by coin type."""
        market = parser.parse_market_snapshot(await self.query_market_snapshot())
        logger.info(
            "Market snapshot: %d asset pool(s), %d collateral pool(s)",
            len(market.assets), len(market.collaterals),
        )
        return market

    async def get_coin_metadata(self, coin_type: str) -> CoinMetadata | None:
        raw = await self._client.get_coin_metadata(coin_type)
        if not raw or raw.get("decimals") is None:
            return None
        return CoinMetadata(
            coin_type=coin_type,
            decimals=int(raw["decimals"]),
            symbol=raw.get("symbol", ""),
        )
