"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from decimal import Decimal
from pathlib import Path

import pytest

from scallop_leverage.config import (
    AppConfig,
    AssetConfig,
    ChainConfig,
    NotificationsConfig,
    ScallopConfig,
    StrategyConfig,
    TelegramConfig,
    WalletConfig,
)
from scallop_leverage.models import (
    AssetMarketInfo,
    CoinMetadata,
    CollateralEntry,
    CollateralPoolInfo,
    DebtEntry,
    MarketData,
    Obligation,
)

USDC_TYPE = "0x5d4b302506645c37ff133b98c4b50a5ae14841659738d6d733d59d0d217a93bf::coin::COIN"
SUI_TYPE = "0x" + "0" * 63 + "2::sui::SUI"


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
    )


@pytest.fixture()
def sample_assets() -> dict[str, AssetConfig]:
    return {
        "usdc": AssetConfig(coin_type=USDC_TYPE, pyth_feed_object="0xFEEDUSDC"),
        "sui": AssetConfig(coin_type=SUI_TYPE, pyth_feed_object="0xFEEDSUI"),
    }


@pytest.fixture()
def sample_app_config(
    sample_chain_config: ChainConfig, sample_assets: dict[str, AssetConfig]
) -> AppConfig:
    return AppConfig(
        wallet=WalletConfig(label="test-wallet", chain="sui", address="0xWALLET123"),
        chains={"sui": sample_chain_config},
        scallop=ScallopConfig(market_api_url="https://market.example.com/api/market"),
        assets=sample_assets,
        strategy=StrategyConfig(
            max_iterations=1,
            min_cycle_delay_seconds=0,
            request_timeout_seconds=5,
            max_consecutive_failures=2,
            retry_base_delay_seconds=0,
            retry_max_delay_seconds=0,
        ),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_market_data() -> MarketData:
    return MarketData(
        assets={
            USDC_TYPE: AssetMarketInfo(
                coin="usdc",
                coin_type=USDC_TYPE,
                borrow_weight=Decimal("1"),
                current_borrow_index=Decimal("1100000000"),
            ),
            SUI_TYPE: AssetMarketInfo(
                coin="sui",
                coin_type=SUI_TYPE,
                borrow_weight=Decimal("1.25"),
                current_borrow_index=Decimal("1050000000"),
            ),
        },
        collaterals={
            USDC_TYPE: CollateralPoolInfo(
                coin="usdc",
                coin_type=USDC_TYPE,
                collateral_factor=Decimal("0.8"),
                liquidation_factor=Decimal("0.85"),
            ),
            SUI_TYPE: CollateralPoolInfo(
                coin="sui",
                coin_type=SUI_TYPE,
                collateral_factor=Decimal("0.6"),
                liquidation_factor=Decimal("0.7"),
            ),
        },
    )


@pytest.fixture()
def sample_metadata() -> dict[str, CoinMetadata]:
    return {
        USDC_TYPE: CoinMetadata(coin_type=USDC_TYPE, decimals=6, symbol="USDC"),
        SUI_TYPE: CoinMetadata(coin_type=SUI_TYPE, decimals=9, symbol="SUI"),
    }


@pytest.fixture()
def sample_prices() -> dict[str, Decimal]:
    return {USDC_TYPE: Decimal("1"), SUI_TYPE: Decimal("3.5")}


@pytest.fixture()
def sample_obligation() -> Obligation:
    """1000 USDC of collateral and 100 USDC of debt opened at index 1.0e9."""
    return Obligation(
        id="0xOBL1",
        key_id="0xKEY1",
        collaterals=(CollateralEntry(coin_type=USDC_TYPE, amount=1_000_000_000),),
        debts=(
            DebtEntry(
                coin_type=USDC_TYPE,
                amount=100_000_000,
                borrow_index_at_entry=Decimal("1000000000"),
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent(f"""\
    wallet:
      label: test-wallet
      chain: sui
      address: "0xTEST"
    chains:
      sui:
        rpc_endpoints: ["https://rpc.example.com"]
        rpc_timeout: 10
    scallop:
      obligation_key_type: "0xabc::obligation::ObligationKey"
      market_api_url: "https://market.example.com/api/market"
    assets:
      USDC:
        coin_type: "{USDC_TYPE}"
        pyth_feed_object: "0xFEED"
    strategy:
      deposit_coin: usdc
      borrow_coin: usdc
      fixed_buffer_usd: 0.1
      safety_multiplier: 0.99
      selection_policy: last_non_empty
      max_iterations: 3
      min_cycle_delay_seconds: 12
    executor:
      kind: dry_run
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: 999
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


# ---------------------------------------------------------------------------
# Sample on-chain data
# ---------------------------------------------------------------------------


def make_price_feed_fields(
    magnitude: int, expo: int, negative: bool = False
) -> dict:
    """Fields of a Pyth ``PriceInfoObject`` as returned by ``sui_getObject``."""
    return {
        "price_info": {
            "fields": {
                "price_feed": {
                    "fields": {
                        "price": {
                            "fields": {
                                "price": {
                                    "fields": {"magnitude": str(magnitude), "negative": negative}
                                },
                                "expo": {
                                    "fields": {"magnitude": str(abs(expo)), "negative": expo < 0}
                                },
                            }
                        }
                    }
                }
            }
        }
    }


@pytest.fixture()
def sample_market_snapshot() -> dict:
    return {
        "pools": [
            {
                "coinName": "usdc",
                "coinType": USDC_TYPE,
                "borrowWeight": Decimal("1"),
                "currentBorrowIndex": Decimal("1100000000"),
            },
            {
                "coin": "sui",
                "coinType": "0x2::sui::SUI",
                "origin": {"borrowWeight": Decimal("1.25")},
                "calculated": {"currentBorrowIndex": Decimal("1050000000")},
            },
        ],
        "collaterals": [
            {
                "coinName": "usdc",
                "coinType": USDC_TYPE,
                "collateralFactor": Decimal("0.8"),
                "liquidationFactor": Decimal("0.85"),
            },
        ],
    }
