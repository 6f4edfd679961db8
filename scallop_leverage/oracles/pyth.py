"""Pyth Network price oracle — decodes on-chain price feed objects."""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from ..config import AssetConfig
from ..decimal_math import shift
from ..interfaces.chain import ChainClient

logger = logging.getLogger(__name__)

SUPPORTED_SOURCES = ("pyth",)


def _signed_field(node: dict[str, Any]) -> tuple[int, bool]:
    """Return ``(magnitude, negative)`` of a Pyth ``I64`` struct."""
    fields = node.get("fields", node)
    return int(fields["magnitude"]), bool(fields["negative"])


def decode_price_feed(object_fields: dict[str, Any]) -> Decimal:
    """Decode a ``PriceInfoObject``'s fields into a USD price.

    price = magnitude × 10^(±expo_magnitude) × (−1 if negative)

    Raises:
        KeyError: if the object does not carry the expected structure.
    """
    price_fields = (
        object_fields["price_info"]["fields"]["price_feed"]["fields"]["price"]["fields"]
    )
    magnitude, negative = _signed_field(price_fields["price"])
    expo_magnitude, expo_negative = _signed_field(price_fields["expo"])

    exponent = -expo_magnitude if expo_negative else expo_magnitude
    price = shift(magnitude, exponent)
    return -price if negative else price


class PythOracle:
    """Price lookups against Pyth feed objects named in the asset registry."""

    def __init__(self, chain_client: ChainClient, assets: dict[str, AssetConfig]) -> None:
        self._client = chain_client
        self._feeds = {
            coin: asset.pyth_feed_object
            for coin, asset in assets.items()
            if asset.pyth_feed_object
        }

    def feed_object_id(self, coin: str) -> str | None:
        return self._feeds.get(coin.lower())

    async def get_price(self, coin: str, source: str = "pyth") -> Decimal | None:
        """Fetch the current USD price of ``coin``.

        Returns None when no feed is registered for the coin, the feed object
        cannot be located, or it decodes to a negative price. A price of zero
        is returned as ``Decimal(0)``.
        """
        if source not in SUPPORTED_SOURCES:
            raise ValueError(f"Unsupported price source '{source}'")

        feed_id = self.feed_object_id(coin)
        if not feed_id:
            logger.warning("No Pyth feed registered for %s", coin)
            return None

        result = await self._client.get_object(feed_id)
        fields = result.get("data", {}).get("content", {}).get("fields")
        if not fields:
            logger.warning("Pyth feed object %s for %s not found", feed_id, coin)
            return None

        try:
            price = decode_price_feed(fields)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed Pyth feed object %s for %s: %s", feed_id, coin, e)
            return None

        if price < 0:
            logger.warning("Pyth feed for %s reported a negative price %s", coin, price)
            return None

        logger.debug("Pyth price %s: $%s", coin, price)
        return price
