"""Pure parsing functions for Scallop obligation and market data — no I/O."""
from __future__ import annotations

import logging
from typing import Any

from ...decimal_math import to_decimal
from ...models import (
    AssetMarketInfo,
    CollateralEntry,
    CollateralPoolInfo,
    DebtEntry,
    MarketData,
    ObligationRef,
)

logger = logging.getLogger(__name__)

OBLIGATION_KEY_SUFFIX = "::obligation::ObligationKey"


def normalize_coin_type(coin_type: str) -> str:
    """Canonical coin type: ``0x`` prefix and a 64-hex-digit address.

    Move ``TypeName`` strings omit the prefix and the market indexer may use
    the short form, so both sides go through here before any lookup.

    Examples:
        "2::sui::SUI" → "0x000…0002::sui::SUI"
        "0x5d4b…93bf::coin::COIN" → unchanged
    """
    if "::" not in coin_type:
        return coin_type
    address, rest = coin_type.split("::", 1)
    address = address.lower()
    if address.startswith("0x"):
        address = address[2:]
    return f"0x{address.zfill(64)}::{rest}"


def _first(raw: dict[str, Any], *paths: str) -> Any:
    """Return the first present value among dotted ``paths``."""
    for path in paths:
        node: Any = raw
        for part in path.split("."):
            if not isinstance(node, dict) or part not in node:
                node = None
                break
            node = node[part]
        if node is not None:
            return node
    return None


# ---------------------------------------------------------------------------
# Obligations
# ---------------------------------------------------------------------------


def is_obligation_key(object_type: str, key_type: str = "") -> bool:
    if key_type:
        return object_type == key_type
    return object_type.endswith(OBLIGATION_KEY_SUFFIX)


def parse_obligation_key(owned_object: dict[str, Any]) -> ObligationRef | None:
    """Turn an owned ``ObligationKey`` object into an :class:`ObligationRef`."""
    data = owned_object.get("data", {})
    key_id = data.get("objectId")
    fields = data.get("content", {}).get("fields", {})
    obligation_id = fields.get("ownership", {}).get("fields", {}).get("of")
    if not key_id or not obligation_id:
        return None
    return ObligationRef(id=obligation_id, key_id=key_id)


def obligation_table_ids(obligation_fields: dict[str, Any]) -> tuple[str, str]:
    """Return the object ids of the (collaterals, debts) tables of an obligation."""

    def table_id(name: str) -> str:
        return obligation_fields[name]["fields"]["table"]["fields"]["id"]["id"]

    return table_id("collaterals"), table_id("debts")


def _dynamic_field_parts(field_fields: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """Split a ``Field<TypeName, V>`` object into (coin type, value fields)."""
    name = field_fields["name"]
    type_name = name.get("fields", name)["name"]
    value = field_fields["value"]
    return normalize_coin_type(type_name), value.get("fields", value)


def parse_collateral_field(field_fields: dict[str, Any]) -> CollateralEntry:
    coin_type, value = _dynamic_field_parts(field_fields)
    return CollateralEntry(coin_type=coin_type, amount=int(value["amount"]))


def parse_debt_field(field_fields: dict[str, Any]) -> DebtEntry:
    coin_type, value = _dynamic_field_parts(field_fields)
    return DebtEntry(
        coin_type=coin_type,
        amount=int(value["amount"]),
        borrow_index_at_entry=to_decimal(value["borrow_index"]),
    )


# ---------------------------------------------------------------------------
# Market snapshot
# ---------------------------------------------------------------------------


def parse_asset_pool(pool: dict[str, Any]) -> AssetMarketInfo | None:
    """Parse one lending pool; accepts both the SDK and the flat indexer shape."""
    coin_type = _first(pool, "coinType")
    borrow_weight = _first(pool, "origin.borrowWeight", "borrowWeight")
    borrow_index = _first(
        pool, "calculated.currentBorrowIndex", "currentBorrowIndex", "borrowIndex"
    )
    if coin_type is None or borrow_weight is None or borrow_index is None:
        return None
    return AssetMarketInfo(
        coin=str(_first(pool, "coin", "coinName") or "").lower(),
        coin_type=normalize_coin_type(coin_type),
        borrow_weight=to_decimal(borrow_weight),
        current_borrow_index=to_decimal(borrow_index),
    )


def parse_collateral_pool(pool: dict[str, Any]) -> CollateralPoolInfo | None:
    coin_type = _first(pool, "coinType")
    collateral_factor = _first(pool, "origin.collateralFactor", "collateralFactor")
    liquidation_factor = _first(pool, "origin.liquidationFactor", "liquidationFactor")
    if coin_type is None or collateral_factor is None or liquidation_factor is None:
        return None
    return CollateralPoolInfo(
        coin=str(_first(pool, "coin", "coinName") or "").lower(),
        coin_type=normalize_coin_type(coin_type),
        collateral_factor=to_decimal(collateral_factor),
        liquidation_factor=to_decimal(liquidation_factor),
    )


def parse_market_snapshot(raw: dict[str, Any]) -> MarketData:
    """Reshape a ``{pools, collaterals}`` snapshot into lookup tables by coin type.

    Entries missing a required field are dropped with a warning; a debt in
    a dropped asset then fails loudly in the valuator.
    """
    assets: dict[str, AssetMarketInfo] = {}
    for pool in raw.get("pools", []):
        info = parse_asset_pool(pool)
        if info is None:
            logger.warning("Dropping incomplete market pool: %s", pool.get("coinType"))
            continue
        assets[info.coin_type] = info

    collaterals: dict[str, CollateralPoolInfo] = {}
    for pool in raw.get("collaterals", []):
        info = parse_collateral_pool(pool)
        if info is None:
            logger.warning("Dropping incomplete collateral pool: %s", pool.get("coinType"))
            continue
        collaterals[info.coin_type] = info

    return MarketData(assets=assets, collaterals=collaterals)
