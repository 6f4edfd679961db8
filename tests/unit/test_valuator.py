"""Unit tests for the position valuator."""
from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from scallop_leverage.errors import DataUnavailable, DebtDataUnavailable, FetchError
from scallop_leverage.models import (
    AssetMarketInfo,
    CoinMetadata,
    CollateralEntry,
    DebtEntry,
    MarketData,
    Obligation,
)
from scallop_leverage.services.valuator import (
    PositionValuator,
    accrual_growth,
    coin_name,
    compute_valuation,
)

from conftest import SUI_TYPE, USDC_TYPE


class TestComputeValuation:
    def test_reference_obligation(
        self,
        sample_obligation: Obligation,
        sample_market_data: MarketData,
        sample_prices: dict,
        sample_metadata: dict,
    ) -> None:
        v = compute_valuation(sample_obligation, sample_market_data, sample_prices, sample_metadata)
        assert v.total_collateral_value == Decimal("1000")
        assert v.total_borrow_capacity_value == Decimal("800")
        assert v.total_liquidation_threshold_value == Decimal("850")
        assert v.total_debt_value == Decimal("110")
        assert v.total_debt_value_with_weight == Decimal("110")
        assert v.available_capacity == Decimal("690")
        assert v.skipped_collaterals == ()

    def test_empty_collateral_yields_zero(
        self, sample_obligation: Obligation, sample_market_data, sample_prices, sample_metadata
    ) -> None:
        obligation = replace(sample_obligation, collaterals=())
        v = compute_valuation(obligation, sample_market_data, sample_prices, sample_metadata)
        assert v.available_capacity == 0

    def test_empty_obligation_yields_zero(self, sample_market_data) -> None:
        v = compute_valuation(Obligation(id="0x1", key_id="0x2"), sample_market_data, {}, {})
        assert v.available_capacity == 0

    def test_single_collateral_no_debt(
        self, sample_market_data, sample_metadata
    ) -> None:
        # 12.345678901 SUI at $3.21, factor 0.6
        obligation = Obligation(
            id="0x1",
            key_id="0x2",
            collaterals=(CollateralEntry(coin_type=SUI_TYPE, amount=12_345_678_901),),
        )
        prices = {SUI_TYPE: Decimal("3.21")}
        v = compute_valuation(obligation, sample_market_data, prices, sample_metadata)
        expected = Decimal("12.345678901") * Decimal("3.21") * Decimal("0.6")
        assert v.available_capacity == expected
        assert abs(v.available_capacity - expected) <= expected * Decimal("1e-9")

    def test_collaterals_are_summed(self, sample_market_data, sample_metadata) -> None:
        obligation = Obligation(
            id="0x1",
            key_id="0x2",
            collaterals=(
                CollateralEntry(coin_type=USDC_TYPE, amount=100_000_000),
                CollateralEntry(coin_type=SUI_TYPE, amount=10_000_000_000),
            ),
        )
        prices = {USDC_TYPE: Decimal("1"), SUI_TYPE: Decimal("2")}
        v = compute_valuation(obligation, sample_market_data, prices, sample_metadata)
        # 100 × 0.8 + 20 × 0.6
        assert v.total_collateral_value == Decimal("120")
        assert v.available_capacity == Decimal("92")

    def test_debt_accrual_from_index_ratio(self, sample_metadata) -> None:
        market = MarketData(
            assets={
                USDC_TYPE: AssetMarketInfo(
                    coin="usdc",
                    coin_type=USDC_TYPE,
                    borrow_weight=Decimal("1"),
                    current_borrow_index=Decimal("110"),
                )
            }
        )
        obligation = Obligation(
            id="0x1",
            key_id="0x2",
            debts=(
                DebtEntry(
                    coin_type=USDC_TYPE,
                    amount=50_000_000,
                    borrow_index_at_entry=Decimal("100"),
                ),
            ),
        )
        v = compute_valuation(obligation, market, {USDC_TYPE: Decimal("1")}, sample_metadata)
        assert v.total_debt_value == Decimal("55.0")
        assert v.available_capacity == 0

    def test_borrow_weight_inflates_debt(
        self, sample_obligation: Obligation, sample_market_data, sample_metadata
    ) -> None:
        obligation = replace(
            sample_obligation,
            debts=(
                DebtEntry(
                    coin_type=SUI_TYPE,
                    amount=10_000_000_000,
                    borrow_index_at_entry=Decimal("1000000000"),
                ),
            ),
        )
        prices = {USDC_TYPE: Decimal("1"), SUI_TYPE: Decimal("3.5")}
        v = compute_valuation(obligation, sample_market_data, prices, sample_metadata)
        # 10 SUI × 1.05 × $3.5 = 36.75, × 1.25 weight
        assert v.total_debt_value == Decimal("36.75")
        assert v.total_debt_value_with_weight == Decimal("45.9375")
        assert v.available_capacity == Decimal("800") - Decimal("45.9375")

    def test_capacity_never_negative(
        self, sample_obligation: Obligation, sample_market_data, sample_metadata
    ) -> None:
        obligation = replace(
            sample_obligation,
            debts=(
                DebtEntry(
                    coin_type=USDC_TYPE,
                    amount=900_000_000,
                    borrow_index_at_entry=Decimal("1000000000"),
                ),
            ),
        )
        prices = {USDC_TYPE: Decimal("1")}
        v = compute_valuation(obligation, sample_market_data, prices, sample_metadata)
        assert v.total_debt_value_with_weight > v.total_borrow_capacity_value
        assert v.available_capacity == 0

    @pytest.mark.parametrize("missing", ["price", "metadata", "pool"])
    def test_collateral_with_missing_data_is_skipped(
        self, missing: str, sample_market_data, sample_metadata
    ) -> None:
        obligation = Obligation(
            id="0x1",
            key_id="0x2",
            collaterals=(
                CollateralEntry(coin_type=SUI_TYPE, amount=10_000_000_000),
                CollateralEntry(coin_type=USDC_TYPE, amount=100_000_000),
            ),
        )
        prices = {USDC_TYPE: Decimal("1"), SUI_TYPE: Decimal("2")}
        market = sample_market_data
        if missing == "price":
            prices[SUI_TYPE] = None
        elif missing == "metadata":
            sample_metadata = {USDC_TYPE: sample_metadata[USDC_TYPE]}
        else:
            market = MarketData(
                assets=sample_market_data.assets,
                collaterals={USDC_TYPE: sample_market_data.collaterals[USDC_TYPE]},
            )

        v = compute_valuation(obligation, market, prices, sample_metadata)

        assert v.available_capacity == Decimal("80")
        assert len(v.skipped_collaterals) == 1
        assert v.skipped_collaterals[0].coin_type == SUI_TYPE
        assert "unavailable" in v.skipped_collaterals[0].reason

    def test_zero_price_is_valued_not_skipped(self, sample_market_data, sample_metadata) -> None:
        obligation = Obligation(
            id="0x1",
            key_id="0x2",
            collaterals=(CollateralEntry(coin_type=SUI_TYPE, amount=10_000_000_000),),
        )
        v = compute_valuation(obligation, sample_market_data, {SUI_TYPE: Decimal(0)}, sample_metadata)
        assert v.available_capacity == 0
        assert v.skipped_collaterals == ()

    def test_debt_without_asset_info_raises(
        self, sample_obligation: Obligation, sample_prices, sample_metadata
    ) -> None:
        market = MarketData(assets={}, collaterals={})
        with pytest.raises(DebtDataUnavailable) as exc:
            compute_valuation(sample_obligation, market, sample_prices, sample_metadata)
        assert isinstance(exc.value, FetchError)
        assert isinstance(exc.value, DataUnavailable)
        assert exc.value.coin_type == USDC_TYPE

    def test_debt_without_price_raises(
        self, sample_obligation: Obligation, sample_market_data, sample_metadata
    ) -> None:
        with pytest.raises(DebtDataUnavailable, match="price"):
            compute_valuation(
                sample_obligation, sample_market_data, {USDC_TYPE: None}, sample_metadata
            )

    def test_debt_without_metadata_raises(
        self, sample_obligation: Obligation, sample_market_data, sample_prices
    ) -> None:
        with pytest.raises(DebtDataUnavailable, match="metadata"):
            compute_valuation(sample_obligation, sample_market_data, sample_prices, {})


class TestMonotonicity:
    @pytest.fixture()
    def mixed_obligation(self) -> Obligation:
        return Obligation(
            id="0x1",
            key_id="0x2",
            collaterals=(
                CollateralEntry(coin_type=SUI_TYPE, amount=500_000_000_000),
                CollateralEntry(coin_type=USDC_TYPE, amount=100_000_000),
            ),
            debts=(
                DebtEntry(
                    coin_type=USDC_TYPE,
                    amount=200_000_000,
                    borrow_index_at_entry=Decimal("1000000000"),
                ),
            ),
        )

    def test_non_decreasing_in_collateral_price(
        self, mixed_obligation, sample_market_data, sample_metadata
    ) -> None:
        capacities = [
            compute_valuation(
                mixed_obligation,
                sample_market_data,
                {SUI_TYPE: Decimal(p), USDC_TYPE: Decimal("1")},
                sample_metadata,
            ).available_capacity
            for p in ("0", "0.5", "1", "3.5", "10")
        ]
        assert capacities == sorted(capacities)

    def test_non_increasing_in_debt_price(
        self, mixed_obligation, sample_market_data, sample_metadata
    ) -> None:
        debt_only = replace(mixed_obligation, collaterals=mixed_obligation.collaterals[:1])
        capacities = [
            compute_valuation(
                debt_only,
                sample_market_data,
                {SUI_TYPE: Decimal("3.5"), USDC_TYPE: Decimal(p)},
                sample_metadata,
            ).available_capacity
            for p in ("0", "0.5", "1", "2", "100")
        ]
        assert capacities == sorted(capacities, reverse=True)


class TestHelpers:
    def test_accrual_growth(self) -> None:
        assert accrual_growth(Decimal("110"), Decimal("100"), USDC_TYPE) == Decimal("1.1")

    def test_accrual_growth_clamps_regression(self) -> None:
        assert accrual_growth(Decimal("90"), Decimal("100"), USDC_TYPE) == Decimal(1)

    def test_accrual_growth_rejects_zero_entry_index(self) -> None:
        with pytest.raises(DebtDataUnavailable):
            accrual_growth(Decimal("110"), Decimal(0), USDC_TYPE)

    def test_coin_name_prefers_asset_pool(self, sample_market_data) -> None:
        assert coin_name(SUI_TYPE, sample_market_data) == "sui"

    def test_coin_name_unknown(self, sample_market_data) -> None:
        assert coin_name("0xdead::x::X", sample_market_data) is None


class TestPositionValuator:
    @pytest.mark.asyncio
    async def test_resolves_lookups_then_values(
        self, sample_obligation: Obligation, sample_market_data, sample_metadata
    ) -> None:
        oracle = AsyncMock()
        oracle.get_price.side_effect = lambda coin: {"usdc": Decimal("1")}[coin]
        market = AsyncMock()
        market.get_coin_metadata.side_effect = lambda ct: sample_metadata[ct]

        valuation = await PositionValuator(oracle, market).valuate(
            sample_obligation, sample_market_data
        )

        assert valuation.available_capacity == Decimal("690")
        # one lookup per distinct coin type
        oracle.get_price.assert_awaited_once_with("usdc")
        market.get_coin_metadata.assert_awaited_once_with(USDC_TYPE)

    @pytest.mark.asyncio
    async def test_unknown_coin_is_unpriced(
        self, sample_market_data, sample_metadata
    ) -> None:
        stray = "0x" + "a" * 64 + "::stray::STRAY"
        obligation = Obligation(
            id="0x1",
            key_id="0x2",
            collaterals=(CollateralEntry(coin_type=stray, amount=1),),
        )
        oracle = AsyncMock()
        market = AsyncMock()
        market.get_coin_metadata.return_value = CoinMetadata(coin_type=stray, decimals=0)

        valuation = await PositionValuator(oracle, market).valuate(obligation, sample_market_data)

        oracle.get_price.assert_not_awaited()
        assert valuation.available_capacity == 0
        assert valuation.skipped_collaterals[0].coin_type == stray

    @pytest.mark.asyncio
    async def test_fetch_error_propagates(
        self, sample_obligation: Obligation, sample_market_data
    ) -> None:
        oracle = AsyncMock()
        oracle.get_price.side_effect = FetchError("rpc down")
        market = AsyncMock()

        with pytest.raises(FetchError, match="rpc down"):
            await PositionValuator(oracle, market).valuate(sample_obligation, sample_market_data)


def _renamed(market_data: MarketData, **names: str) -> MarketData:
    """Copy of ``market_data`` with the indexer's coin names replaced."""
    return MarketData(
        assets={
            ct: replace(info, coin=names.get(info.coin, info.coin))
            for ct, info in market_data.assets.items()
        },
        collaterals={
            ct: replace(pool, coin=names.get(pool.coin, pool.coin))
            for ct, pool in market_data.collaterals.items()
        },
    )


class TestOracleKeys:
    @pytest.mark.asyncio
    async def test_registry_name_wins_over_market_name(
        self, sample_obligation: Obligation, sample_market_data, sample_metadata
    ) -> None:
        market_data = _renamed(sample_market_data, usdc="wusdc")
        oracle = AsyncMock()
        oracle.get_price.side_effect = lambda coin: {"usdc": Decimal("1")}.get(coin)
        market = AsyncMock()
        market.get_coin_metadata.side_effect = lambda ct: sample_metadata[ct]

        valuator = PositionValuator(oracle, market, {USDC_TYPE: "usdc"})
        valuation = await valuator.valuate(sample_obligation, market_data)

        assert valuation.skipped_collaterals == ()
        assert valuation.total_borrow_capacity_value == Decimal("800")
        assert valuation.available_capacity == Decimal("690")
        oracle.get_price.assert_awaited_once_with("usdc")

    @pytest.mark.asyncio
    async def test_registry_accepts_short_coin_types(
        self, sample_market_data, sample_metadata
    ) -> None:
        obligation = Obligation(
            id="0x1",
            key_id="0x2",
            collaterals=(CollateralEntry(coin_type=SUI_TYPE, amount=2_000_000_000),),
        )
        market_data = _renamed(sample_market_data, sui="wsui")
        oracle = AsyncMock()
        oracle.get_price.side_effect = lambda coin: {"sui": Decimal("3.5")}.get(coin)
        market = AsyncMock()
        market.get_coin_metadata.side_effect = lambda ct: sample_metadata[ct]

        valuator = PositionValuator(oracle, market, {"0x2::sui::SUI": "sui"})
        valuation = await valuator.valuate(obligation, market_data)

        assert valuation.total_collateral_value == Decimal("7")
        oracle.get_price.assert_awaited_once_with("sui")

    @pytest.mark.asyncio
    async def test_market_name_is_the_fallback(
        self, sample_obligation: Obligation, sample_market_data, sample_metadata
    ) -> None:
        market_data = _renamed(sample_market_data, usdc="wusdc")
        oracle = AsyncMock()
        oracle.get_price.side_effect = lambda coin: {"wusdc": Decimal("1")}.get(coin)
        market = AsyncMock()
        market.get_coin_metadata.side_effect = lambda ct: sample_metadata[ct]

        valuation = await PositionValuator(oracle, market).valuate(sample_obligation, market_data)

        assert valuation.available_capacity == Decimal("690")
        oracle.get_price.assert_awaited_once_with("wusdc")


class TestCollateralValue:
    @pytest.mark.asyncio
    async def test_ignores_unpriceable_debt(
        self, sample_obligation: Obligation, sample_market_data, sample_metadata
    ) -> None:
        delisted = "0x" + "b" * 64 + "::gone::GONE"
        obligation = replace(
            sample_obligation,
            debts=(
                DebtEntry(
                    coin_type=delisted,
                    amount=1,
                    borrow_index_at_entry=Decimal("1000000000"),
                ),
            ),
        )
        oracle = AsyncMock()
        oracle.get_price.side_effect = lambda coin: {"usdc": Decimal("1")}.get(coin)
        market = AsyncMock()
        market.get_coin_metadata.side_effect = lambda ct: sample_metadata.get(ct)
        valuator = PositionValuator(oracle, market, {USDC_TYPE: "usdc"})

        assert await valuator.collateral_value(obligation, sample_market_data) == Decimal("1000")
        market.get_coin_metadata.assert_awaited_once_with(USDC_TYPE)
        with pytest.raises(DebtDataUnavailable):
            await valuator.valuate(obligation, sample_market_data)
