"""Chain client protocol — blockchain RPC abstraction."""
from typing import Any, Protocol


class ChainClient(Protocol):
    """Abstract interface for the ledger reads the engine needs."""

    async def get_owned_objects(
        self, wallet_address: str, struct_type: str | None = None
    ) -> list[dict[str, Any]]: ...

    async def get_object(self, object_id: str) -> dict[str, Any]: ...

    async def get_dynamic_fields(self, object_id: str) -> list[dict[str, Any]]: ...

    async def get_coin_metadata(self, coin_type: str) -> dict[str, Any] | None: ...

    async def get_balance(self, owner: str, coin_type: str) -> int: ...
