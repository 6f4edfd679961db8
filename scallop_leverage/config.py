"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

SELECTION_POLICIES = ("first_non_empty", "last_non_empty", "largest_collateral_value")
EXECUTORS = ("dry_run",)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ChainConfig:
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30


@dataclass(frozen=True)
class WalletConfig:
    label: str = ""
    chain: str = "sui"
    address: str = ""


@dataclass(frozen=True)
class ScallopConfig:
    obligation_key_type: str = ""
    market_api_url: str = "https://sdk.api.scallop.io/api/market"
    market_api_timeout: int = 30


@dataclass(frozen=True)
class AssetConfig:
    """Registry entry: where an asset lives on chain and which feed prices it."""

    coin_type: str = ""
    pyth_feed_object: str = ""


@dataclass(frozen=True)
class StrategyConfig:
    deposit_coin: str = "usdc"
    borrow_coin: str = "usdc"
    fixed_buffer_usd: Decimal = Decimal("0.1")
    safety_multiplier: Decimal = Decimal("0.99")
    selection_policy: str = "first_non_empty"
    max_iterations: int = 0
    min_cycle_delay_seconds: float = 30.0
    request_timeout_seconds: float = 30.0
    max_consecutive_failures: int = 5
    retry_base_delay_seconds: float = 5.0
    retry_max_delay_seconds: float = 300.0


@dataclass(frozen=True)
class ExecutorConfig:
    kind: str = "dry_run"


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)


@dataclass(frozen=True)
class AppConfig:
    wallet: WalletConfig = field(default_factory=WalletConfig)
    chains: dict[str, ChainConfig] = field(default_factory=dict)
    scallop: ScallopConfig = field(default_factory=ScallopConfig)
    assets: dict[str, AssetConfig] = field(default_factory=dict)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _decimal(value: Any) -> Decimal:
    # str() first so YAML floats like 0.1 stay 0.1
    return Decimal(str(value))


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_wallet(raw: dict[str, Any]) -> WalletConfig:
    return WalletConfig(
        label=raw.get("label", ""),
        chain=raw.get("chain", "sui"),
        address=raw.get("address", ""),
    )


def _build_chains(raw: dict[str, Any]) -> dict[str, ChainConfig]:
    chains: dict[str, ChainConfig] = {}
    for name, cfg in raw.items():
        chains[name] = ChainConfig(
            rpc_endpoints=tuple(cfg.get("rpc_endpoints", [])),
            rpc_timeout=int(cfg.get("rpc_timeout", 30)),
        )
    return chains


def _build_scallop(raw: dict[str, Any]) -> ScallopConfig:
    return ScallopConfig(
        obligation_key_type=raw.get("obligation_key_type", ""),
        market_api_url=raw.get("market_api_url", ScallopConfig.market_api_url),
        market_api_timeout=int(raw.get("market_api_timeout", 30)),
    )


def _build_assets(raw: dict[str, Any]) -> dict[str, AssetConfig]:
    assets: dict[str, AssetConfig] = {}
    for coin, cfg in raw.items():
        assets[coin.lower()] = AssetConfig(
            coin_type=cfg.get("coin_type", ""),
            pyth_feed_object=cfg.get("pyth_feed_object", ""),
        )
    return assets


def _build_strategy(raw: dict[str, Any]) -> StrategyConfig:
    defaults = StrategyConfig()
    return StrategyConfig(
        deposit_coin=str(raw.get("deposit_coin", defaults.deposit_coin)).lower(),
        borrow_coin=str(raw.get("borrow_coin", defaults.borrow_coin)).lower(),
        fixed_buffer_usd=_decimal(raw.get("fixed_buffer_usd", defaults.fixed_buffer_usd)),
        safety_multiplier=_decimal(
            raw.get("safety_multiplier", defaults.safety_multiplier)
        ),
        selection_policy=raw.get("selection_policy", defaults.selection_policy),
        max_iterations=int(raw.get("max_iterations", defaults.max_iterations)),
        min_cycle_delay_seconds=float(
            raw.get("min_cycle_delay_seconds", defaults.min_cycle_delay_seconds)
        ),
        request_timeout_seconds=float(
            raw.get("request_timeout_seconds", defaults.request_timeout_seconds)
        ),
        max_consecutive_failures=int(
            raw.get("max_consecutive_failures", defaults.max_consecutive_failures)
        ),
        retry_base_delay_seconds=float(
            raw.get("retry_base_delay_seconds", defaults.retry_base_delay_seconds)
        ),
        retry_max_delay_seconds=float(
            raw.get("retry_max_delay_seconds", defaults.retry_max_delay_seconds)
        ),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        wallet=_build_wallet(raw.get("wallet", {})),
        chains=_build_chains(raw.get("chains", {})),
        scallop=_build_scallop(raw.get("scallop", {})),
        assets=_build_assets(raw.get("assets", {})),
        strategy=_build_strategy(raw.get("strategy", {})),
        executor=ExecutorConfig(kind=raw.get("executor", {}).get("kind", "dry_run")),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.wallet.address:
        raise ValueError(f"Wallet '{cfg.wallet.label}' has no address")
    if cfg.wallet.chain not in cfg.chains:
        raise ValueError(
            f"Wallet '{cfg.wallet.label}' references unknown chain '{cfg.wallet.chain}'"
        )

    strategy = cfg.strategy
    for role, coin in (("deposit", strategy.deposit_coin), ("borrow", strategy.borrow_coin)):
        asset = cfg.assets.get(coin)
        if asset is None:
            raise ValueError(f"The {role} coin '{coin}' is not listed under assets")
        if not asset.coin_type:
            raise ValueError(f"Asset '{coin}' has no coin_type")

    if not Decimal(0) < strategy.safety_multiplier <= Decimal(1):
        raise ValueError("safety_multiplier must be in (0, 1]")
    if strategy.fixed_buffer_usd < 0:
        raise ValueError("fixed_buffer_usd must not be negative")
    if strategy.selection_policy not in SELECTION_POLICIES:
        raise ValueError(f"Unknown selection policy '{strategy.selection_policy}'")
    if strategy.max_iterations < 0:
        raise ValueError("max_iterations must not be negative")
    if cfg.executor.kind not in EXECUTORS:
        raise ValueError(f"Unknown executor '{cfg.executor.kind}'")
