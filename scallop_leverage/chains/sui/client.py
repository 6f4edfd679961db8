"""SUI RPC client with fallback support."""
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ...config import ChainConfig
from ...errors import FetchError

logger = logging.getLogger(__name__)

_OBJECT_OPTIONS = {"showType": True, "showContent": True, "showOwner": True}
_PAGE_SIZE = 50


class SuiClient:
    """SUI blockchain RPC client with automatic endpoint fallback.

    Failures are raised as :class:`FetchError`; no method returns an empty
    result in place of an error.
    """

    def __init__(self, config: ChainConfig) -> None:
        self.endpoints = list(config.rpc_endpoints)
        self.timeout = config.rpc_timeout
        self.current_rpc_index = 0

    async def rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make RPC call with fallback to alternative endpoints."""
        if not self.endpoints:
            raise FetchError("No RPC endpoints configured")

        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json()
                        if "error" in result:
                            raise FetchError(f"RPC Error: {result['error']}")

                        if rpc_index != self.current_rpc_index:
                            logger.info("Switched to RPC endpoint: %s", rpc_url)
                            self.current_rpc_index = rpc_index

                        return result.get("result")
            except Exception as e:
                last_error = e
                logger.warning("RPC endpoint %s failed on %s: %s", rpc_url, method, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise FetchError(f"All RPC endpoints failed. Last error: {last_error}")

    async def _paginate(self, method: str, params: list[Any]) -> list[dict[str, Any]]:
        """Collect every page of a cursor-paginated ``suix_*`` method."""
        items: list[dict[str, Any]] = []
        cursor = None

        while True:
            result = await self.rpc_call(method, [*params, cursor, _PAGE_SIZE]) or {}
            items.extend(result.get("data", []))

            cursor = result.get("nextCursor")
            if not result.get("hasNextPage", False) or not cursor:
                break

        return items

    async def get_owned_objects(
        self, wallet_address: str, struct_type: str | None = None
    ) -> list[dict[str, Any]]:
        """Get all objects owned by the wallet, optionally filtered by Move type."""
        query = {
            "filter": {"StructType": struct_type} if struct_type else None,
            "options": _OBJECT_OPTIONS,
        }
        return await self._paginate("suix_getOwnedObjects", [wallet_address, query])

    async def get_object(self, object_id: str) -> dict[str, Any]:
        """Get detailed information about an object.

        A missing object comes back as ``{"error": {...}}`` without ``data``.
        """
        return await self.rpc_call("sui_getObject", [object_id, _OBJECT_OPTIONS]) or {}

    async def get_dynamic_fields(self, object_id: str) -> list[dict[str, Any]]:
        """Get every dynamic field of an object."""
        return await self._paginate("suix_getDynamicFields", [object_id])

    async def get_coin_metadata(self, coin_type: str) -> dict[str, Any] | None:
        """Get ``{decimals, symbol, ...}`` for a coin type, or None if unknown."""
        return await self.rpc_call("suix_getCoinMetadata", [coin_type])

    async def get_balance(self, owner: str, coin_type: str) -> int:
        """Total balance of ``coin_type`` held by ``owner``, in smallest units."""
        result = await self.rpc_call("suix_getBalance", [owner, coin_type]) or {}
        return int(result.get("totalBalance", 0))
