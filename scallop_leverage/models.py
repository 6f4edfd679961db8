"""Data models — all frozen (immutable) per-cycle snapshots."""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class AssetMarketInfo:
    """Borrow-side parameters of one lending pool."""

    coin: str
    coin_type: str
    borrow_weight: Decimal
    current_borrow_index: Decimal


@dataclass(frozen=True)
class CollateralPoolInfo:
    """Risk parameters of one collateral pool."""

    coin: str
    coin_type: str
    collateral_factor: Decimal
    liquidation_factor: Decimal


@dataclass(frozen=True)
class MarketData:
    """Market snapshot keyed by coin type."""

    assets: dict[str, AssetMarketInfo] = field(default_factory=dict)
    collaterals: dict[str, CollateralPoolInfo] = field(default_factory=dict)


@dataclass(frozen=True)
class CollateralEntry:
    coin_type: str
    amount: int


@dataclass(frozen=True)
class DebtEntry:
    coin_type: str
    amount: int
    borrow_index_at_entry: Decimal


@dataclass(frozen=True)
class ObligationRef:
    """An obligation id together with the key object that authorizes it."""

    id: str
    key_id: str


@dataclass(frozen=True)
class Obligation:
    id: str
    key_id: str
    collaterals: tuple[CollateralEntry, ...] = ()
    debts: tuple[DebtEntry, ...] = ()


@dataclass(frozen=True)
class CoinMetadata:
    coin_type: str
    decimals: int
    symbol: str = ""


@dataclass(frozen=True)
class SkippedCollateral:
    coin_type: str
    reason: str


@dataclass(frozen=True)
class Valuation:
    """Aggregated health figures for one obligation, all in USD."""

    available_capacity: Decimal
    total_collateral_value: Decimal = Decimal(0)
    total_borrow_capacity_value: Decimal = Decimal(0)
    total_liquidation_threshold_value: Decimal = Decimal(0)
    total_debt_value: Decimal = Decimal(0)
    total_debt_value_with_weight: Decimal = Decimal(0)
    skipped_collaterals: tuple[SkippedCollateral, ...] = ()


@dataclass(frozen=True)
class TransactionResult:
    digest: str
    dry_run: bool = False


@dataclass(frozen=True)
class CycleReport:
    """What one deposit → borrow cycle did."""

    obligation_id: str
    deposit_amount: int = 0
    deposit_digest: str | None = None
    valuation: Valuation | None = None
    borrow_amount: int = 0
    borrow_digest: str | None = None
