"""Position valuator — collateral capacity minus borrow-weighted accrued debt."""
from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from ..decimal_math import ONE, ZERO, precise, shift
from ..errors import DebtDataUnavailable
from ..interfaces.lending_market import LendingMarket
from ..interfaces.price_oracle import PriceOracle
from ..models import (
    CoinMetadata,
    MarketData,
    Obligation,
    SkippedCollateral,
    Valuation,
)
from ..protocols.scallop.parser import normalize_coin_type

logger = logging.getLogger(__name__)


def coin_name(coin_type: str, market_data: MarketData) -> str | None:
    """The market's own name for a coin type, or None if it lists no such pool."""
    asset = market_data.assets.get(coin_type)
    if asset is not None and asset.coin:
        return asset.coin
    pool = market_data.collaterals.get(coin_type)
    if pool is not None and pool.coin:
        return pool.coin
    return None


def normalize_amount(raw_amount: int, decimals: int) -> Decimal:
    """Smallest-unit integer → whole-coin Decimal."""
    return shift(raw_amount, -decimals)


def accrual_growth(current_index: Decimal, index_at_entry: Decimal, coin_type: str) -> Decimal:
    """Interest growth since the debt was opened: current / entry index.

    An index below the entry snapshot would shrink the debt; that is treated
    as no growth.
    """
    if index_at_entry <= 0:
        raise DebtDataUnavailable(coin_type, "borrow index at entry")
    growth = current_index / index_at_entry
    if growth < ONE:
        logger.warning(
            "Borrow index for %s went backwards (%s < %s); assuming no accrual",
            coin_type, current_index, index_at_entry,
        )
        return ONE
    return growth


def value_collaterals(
    obligation: Obligation,
    market_data: MarketData,
    prices: dict[str, Decimal | None],
    metadata: dict[str, CoinMetadata | None],
) -> tuple[Decimal, Decimal, Decimal, tuple[SkippedCollateral, ...]]:
    """Sum the collateral side only.

    Returns ``(collateral value, borrow capacity, liquidation threshold,
    skipped)``. Collateral with missing data is skipped and reported.
    """
    with precise():
        total_collateral_value = ZERO
        total_borrow_capacity_value = ZERO
        total_liquidation_threshold_value = ZERO
        skipped: list[SkippedCollateral] = []

        for collateral in obligation.collaterals:
            coin_type = collateral.coin_type
            price = prices.get(coin_type)
            meta = metadata.get(coin_type)
            pool = market_data.collaterals.get(coin_type)

            missing = [
                what
                for what, value in (("price", price), ("metadata", meta), ("collateral pool", pool))
                if value is None
            ]
            if missing:
                reason = ", ".join(missing) + " unavailable"
                logger.warning("Skipping collateral %s: %s", coin_type, reason)
                skipped.append(SkippedCollateral(coin_type=coin_type, reason=reason))
                continue

            amount = normalize_amount(collateral.amount, meta.decimals)
            value = amount * price
            total_collateral_value += value
            total_borrow_capacity_value += value * pool.collateral_factor
            total_liquidation_threshold_value += value * pool.liquidation_factor

    return (
        total_collateral_value,
        total_borrow_capacity_value,
        total_liquidation_threshold_value,
        tuple(skipped),
    )


def compute_valuation(
    obligation: Obligation,
    market_data: MarketData,
    prices: dict[str, Decimal | None],
    metadata: dict[str, CoinMetadata | None],
) -> Valuation:
    """Aggregate an obligation into a :class:`Valuation`.

    Pure: every lookup has already been resolved into ``prices`` and
    ``metadata`` (keyed by coin type). Collateral with missing data is
    skipped and reported; debt with missing data raises
    :class:`DebtDataUnavailable`.
    """
    (
        total_collateral_value,
        total_borrow_capacity_value,
        total_liquidation_threshold_value,
        skipped,
    ) = value_collaterals(obligation, market_data, prices, metadata)

    with precise():
        total_debt_value = ZERO
        total_debt_value_with_weight = ZERO

        for debt in obligation.debts:
            coin_type = debt.coin_type
            asset = market_data.assets.get(coin_type)
            if asset is None:
                raise DebtDataUnavailable(coin_type, "asset market info")
            meta = metadata.get(coin_type)
            if meta is None:
                raise DebtDataUnavailable(coin_type, "coin metadata")
            price = prices.get(coin_type)
            if price is None:
                raise DebtDataUnavailable(coin_type, "price")

            growth = accrual_growth(
                asset.current_borrow_index, debt.borrow_index_at_entry, coin_type
            )
            accrued = normalize_amount(debt.amount, meta.decimals) * growth
            value = accrued * price
            total_debt_value += value
            total_debt_value_with_weight += value * asset.borrow_weight

        available = max(ZERO, total_borrow_capacity_value - total_debt_value_with_weight)

    return Valuation(
        available_capacity=available,
        total_collateral_value=total_collateral_value,
        total_borrow_capacity_value=total_borrow_capacity_value,
        total_liquidation_threshold_value=total_liquidation_threshold_value,
        total_debt_value=total_debt_value,
        total_debt_value_with_weight=total_debt_value_with_weight,
        skipped_collaterals=skipped,
    )


class PositionValuator:
    """Resolve prices and metadata for an obligation, then value it.

    ``coin_names`` maps coin types to the keys the oracle registry knows them
    by; the market's own coin name is only a fallback for unlisted types.
    """

    def __init__(
        self,
        oracle: PriceOracle,
        market: LendingMarket,
        coin_names: dict[str, str] | None = None,
    ) -> None:
        self._oracle = oracle
        self._market = market
        self._coin_names = {
            normalize_coin_type(coin_type): name
            for coin_type, name in (coin_names or {}).items()
        }

    def _oracle_key(self, coin_type: str, market_data: MarketData) -> str | None:
        name = self._coin_names.get(normalize_coin_type(coin_type))
        if name is not None:
            return name
        return coin_name(coin_type, market_data)

    async def _price(self, coin_type: str, market_data: MarketData) -> Decimal | None:
        name = self._oracle_key(coin_type, market_data)
        if name is None:
            logger.warning("No coin name known for %s; cannot price it", coin_type)
            return None
        return await self._oracle.get_price(name)

    async def _resolve(
        self, coin_types: list[str], market_data: MarketData
    ) -> tuple[dict[str, Decimal | None], dict[str, CoinMetadata | None]]:
        price_results, meta_results = await asyncio.gather(
            asyncio.gather(*(self._price(ct, market_data) for ct in coin_types)),
            asyncio.gather(*(self._market.get_coin_metadata(ct) for ct in coin_types)),
        )
        return dict(zip(coin_types, price_results)), dict(zip(coin_types, meta_results))

    async def collateral_value(self, obligation: Obligation, market_data: MarketData) -> Decimal:
        """USD value of the obligation's collateral; debts are not looked up."""
        coin_types = list(dict.fromkeys(c.coin_type for c in obligation.collaterals))
        prices, metadata = await self._resolve(coin_types, market_data)
        total, _, _, _ = value_collaterals(obligation, market_data, prices, metadata)
        return total

    async def valuate(self, obligation: Obligation, market_data: MarketData) -> Valuation:
        """Compute the obligation's available borrow capacity in USD."""
        coin_types = list(
            dict.fromkeys(
                [c.coin_type for c in obligation.collaterals]
                + [d.coin_type for d in obligation.debts]
            )
        )

        # All lookups resolve before anything is summed.
        prices, metadata = await self._resolve(coin_types, market_data)

        valuation = compute_valuation(obligation, market_data, prices, metadata)
        _log_valuation(obligation, valuation)
        return valuation


def _log_valuation(obligation: Obligation, valuation: Valuation) -> None:
    logger.info("=" * 60)
    logger.info("OBLIGATION %s", obligation.id)
    logger.info("  Collateral value:        $%.2f", valuation.total_collateral_value)
    logger.info("  Borrow capacity:         $%.2f", valuation.total_borrow_capacity_value)
    logger.info("  Liquidation threshold:   $%.2f", valuation.total_liquidation_threshold_value)
    logger.info("  Debt value:              $%.2f", valuation.total_debt_value)
    logger.info("  Weighted debt value:     $%.2f", valuation.total_debt_value_with_weight)
    logger.info("  Available capacity:      $%.2f", valuation.available_capacity)
    if valuation.skipped_collaterals:
        logger.warning(
            "  Skipped collateral:      %s",
            ", ".join(s.coin_type for s in valuation.skipped_collaterals),
        )
    logger.info("=" * 60)
