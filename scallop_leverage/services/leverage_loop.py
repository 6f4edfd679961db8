"""Leverage loop orchestration — deposit collateral, borrow against it, repeat."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable, TypeVar

from ..chains.sui import SuiClient
from ..config import AppConfig
from ..errors import (
    CycleCancelled,
    DataUnavailable,
    ExecutionFailure,
    FetchError,
    LeverageError,
)
from ..executors import DryRunExecutor
from ..interfaces.executor import TransactionExecutor
from ..interfaces.lending_market import LendingMarket
from ..interfaces.notifier import Notifier
from ..interfaces.price_oracle import PriceOracle
from ..models import CycleReport, MarketData, Obligation, ObligationRef, Valuation
from ..notifications import TelegramNotifier
from ..oracles import PythOracle
from ..protocols.scallop import ScallopAdapter
from ..protocols.scallop.parser import normalize_coin_type
from .selector import SelectionPolicy, select_obligation
from .sizing import size_borrow
from .valuator import PositionValuator

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Registry of transaction executor factories keyed by config name.
_EXECUTOR_FACTORIES: dict[str, Any] = {
    "dry_run": lambda: DryRunExecutor(),
}


class LeverageLoop:
    """Runs deposit → borrow cycles for one wallet's Scallop obligation.

    Every ledger, oracle and executor call goes through :meth:`_call`, which
    checks the stop event first and bounds the call with the configured
    timeout.
    """

    def __init__(self, config: AppConfig, stop_event: asyncio.Event | None = None) -> None:
        self._config = config
        self._strategy = config.strategy
        self._policy = SelectionPolicy(config.strategy.selection_policy)
        self.stop_event = stop_event or asyncio.Event()

        self._chain = SuiClient(config.chains[config.wallet.chain])
        self._market: LendingMarket = ScallopAdapter(self._chain, config.scallop)
        self._oracle: PriceOracle = PythOracle(self._chain, config.assets)
        self._executor: TransactionExecutor = _EXECUTOR_FACTORIES[config.executor.kind]()

        self._notifiers: list[Notifier] = []
        if config.notifications.telegram.enabled:
            self._notifiers.append(TelegramNotifier(config.notifications.telegram))

    # ------------------------------------------------------------------
    # Suspension points
    # ------------------------------------------------------------------

    def _checkpoint(self, label: str) -> None:
        if self.stop_event.is_set():
            raise CycleCancelled(f"Stop requested before {label}")

    async def _call(
        self,
        label: str,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        on_timeout: type[LeverageError] = FetchError,
    ) -> T:
        self._checkpoint(label)
        try:
            return await asyncio.wait_for(
                func(*args), timeout=self._strategy.request_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise on_timeout(
                f"{label} timed out after {self._strategy.request_timeout_seconds}s"
            ) from e

    async def _sleep(self, seconds: float) -> None:
        """Sleep unless the stop event fires first."""
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # ------------------------------------------------------------------
    # Notification dispatch
    # ------------------------------------------------------------------

    async def _send_log(self, message: str, silent: bool = True) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_log(message, silent=silent)
            except Exception as e:
                logger.error("Notifier send_log failed: %s", e)

    async def _send_alert(self, message: str, subject: str = "") -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(message, subject=subject)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    def _build_cycle_message(self, report: CycleReport) -> str:
        valuation = report.valuation
        capacity = valuation.available_capacity if valuation else Decimal(0)
        return (
            f"🔁 Scallop cycle · {self._config.wallet.label}\n"
            f"\n"
            f"Obligation: {report.obligation_id}\n"
            f"Deposited: {report.deposit_amount} {self._strategy.deposit_coin}"
            f" ({report.deposit_digest or '—'})\n"
            f"Capacity: ${capacity:,.2f}\n"
            f"Borrowed: {report.borrow_amount} {self._strategy.borrow_coin}"
            f" ({report.borrow_digest or '—'})\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _coin_type(self, coin: str) -> str:
        return normalize_coin_type(self._config.assets[coin].coin_type)

    def _valuator(self) -> PositionValuator:
        coin_names = {asset.coin_type: coin for coin, asset in self._config.assets.items()}
        return PositionValuator(self._oracle, self._market, coin_names)

    async def select(self) -> Obligation | None:
        """Fetch the wallet's obligations and pick one per the configured policy."""
        refs = await self._call(
            "list_obligations", self._market.list_obligations, self._config.wallet.address
        )
        obligations = [
            await self._call("query_obligation", self._market.query_obligation, ref)
            for ref in refs
        ]

        collateral_values: dict[str, Decimal] | None = None
        if self._policy is SelectionPolicy.LARGEST_COLLATERAL_VALUE:
            market_data = await self._call("fetch_market_data", self._market.fetch_market_data)
            valuator = self._valuator()
            collateral_values = {}
            for obligation in obligations:
                if obligation.collaterals:
                    collateral_values[obligation.id] = await self._call(
                        "collateral_value", valuator.collateral_value, obligation, market_data
                    )

        selected = select_obligation(obligations, self._policy, collateral_values)
        if selected is None:
            logger.warning("No obligation with collateral among %d found", len(obligations))
        else:
            logger.info("Selected obligation %s (%s)", selected.id, self._policy.value)
        return selected

    async def deposit(self, obligation: Obligation) -> tuple[int, str | None]:
        """Deposit the wallet's whole balance of the deposit coin as collateral."""
        coin = self._strategy.deposit_coin
        balance = await self._call(
            "get_balance", self._chain.get_balance,
            self._config.wallet.address, self._coin_type(coin),
        )
        if balance <= 0:
            logger.info("No %s balance to deposit", coin)
            return 0, None

        result = await self._call(
            "deposit_collateral", self._executor.deposit_collateral,
            coin, balance, True, obligation.id,
            on_timeout=ExecutionFailure,
        )
        logger.info("Deposit %d %s: %s", balance, coin, result.digest)
        return balance, result.digest

    async def size(
        self, obligation: Obligation, market_data: MarketData
    ) -> tuple[Valuation, int]:
        """Value the obligation and size the next borrow, without submitting it."""
        valuator = self._valuator()
        valuation = await self._call("valuate", valuator.valuate, obligation, market_data)

        coin = self._strategy.borrow_coin
        coin_type = self._coin_type(coin)
        asset = market_data.assets.get(coin_type)
        if asset is None:
            raise DataUnavailable(coin_type, "asset market info")
        price = await self._call("get_price", self._oracle.get_price, coin)
        if price is None or price <= 0:
            raise DataUnavailable(coin_type, "price")
        metadata = await self._call(
            "get_coin_metadata", self._market.get_coin_metadata, coin_type
        )
        if metadata is None:
            raise DataUnavailable(coin_type, "coin metadata")

        amount = size_borrow(
            valuation.available_capacity,
            price,
            asset.borrow_weight,
            metadata.decimals,
            fixed_buffer=self._strategy.fixed_buffer_usd,
            safety_multiplier=self._strategy.safety_multiplier,
        )
        logger.info(
            "Sized borrow: %d raw %s (capacity $%.4f, price $%s)",
            amount, coin, valuation.available_capacity, price,
        )
        return valuation, amount

    async def borrow(self, obligation: Obligation) -> tuple[Valuation, int, str | None]:
        """Re-read the obligation, size the borrow and submit it if non-zero."""
        current = await self._call(
            "query_obligation", self._market.query_obligation,
            ObligationRef(id=obligation.id, key_id=obligation.key_id),
        )
        market_data = await self._call("fetch_market_data", self._market.fetch_market_data)
        valuation, amount = await self.size(current, market_data)

        if valuation.skipped_collaterals:
            skipped = ", ".join(
                f"{s.coin_type} ({s.reason})" for s in valuation.skipped_collaterals
            )
            await self._send_alert(
                f"Collateral left out of the capacity figure: {skipped}",
                subject="⚠️ Incomplete collateral data",
            )

        if amount <= 0:
            logger.info("Nothing to borrow this cycle")
            return valuation, 0, None

        result = await self._call(
            "borrow", self._executor.borrow,
            self._strategy.borrow_coin, amount, True, current.id, current.key_id,
            on_timeout=ExecutionFailure,
        )
        logger.info("Borrow %d %s: %s", amount, self._strategy.borrow_coin, result.digest)
        return valuation, amount, result.digest

    # ------------------------------------------------------------------
    # Workflows
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleReport | None:
        """One deposit → borrow pass. Returns None when no obligation qualifies."""
        self._checkpoint("cycle")
        obligation = await self.select()
        if obligation is None:
            return None

        deposit_amount, deposit_digest = await self.deposit(obligation)
        valuation, borrow_amount, borrow_digest = await self.borrow(obligation)

        report = CycleReport(
            obligation_id=obligation.id,
            deposit_amount=deposit_amount,
            deposit_digest=deposit_digest,
            valuation=valuation,
            borrow_amount=borrow_amount,
            borrow_digest=borrow_digest,
        )
        await self._send_log(self._build_cycle_message(report))
        return report

    async def status(self) -> tuple[Obligation, Valuation, int] | None:
        """Report capacity and the borrow that would be sized, submitting nothing."""
        obligation = await self.select()
        if obligation is None:
            await self._send_log("📊 No obligation with collateral found.", silent=False)
            return None

        market_data = await self._call("fetch_market_data", self._market.fetch_market_data)
        valuation, amount = await self.size(obligation, market_data)
        await self._send_log(
            f"📊 {self._config.wallet.label} · scallop\n"
            f"\n"
            f"Collateral: ${valuation.total_collateral_value:,.2f}\n"
            f"Weighted debt: ${valuation.total_debt_value_with_weight:,.2f}\n"
            f"Capacity: ${valuation.available_capacity:,.2f}\n"
            f"Next borrow: {amount} raw {self._strategy.borrow_coin}\n"
            f"\n"
            f"{self._now_str()} UTC",
            silent=False,
        )
        return obligation, valuation, amount

    async def run(self, max_iterations: int | None = None) -> int:
        """Run cycles until the iteration cap, a stop signal or a fatal error.

        Fetch and data failures are retried with exponential backoff up to
        ``max_consecutive_failures``; execution failures are fatal at once.
        Returns the number of completed cycles.
        """
        limit = self._strategy.max_iterations if max_iterations is None else max_iterations
        logger.info(
            "Starting leverage loop (%s iterations, %.0fs minimum delay)",
            limit or "unbounded", self._strategy.min_cycle_delay_seconds,
        )

        completed = 0
        failures = 0
        while not limit or completed < limit:
            try:
                report = await self.run_cycle()
            except CycleCancelled as e:
                logger.info("Leverage loop stopped: %s", e)
                break
            except ExecutionFailure as e:
                await self._send_alert(str(e), subject="🚨 Transaction failed")
                raise
            except (FetchError, DataUnavailable) as e:
                failures += 1
                logger.error(
                    "Cycle failed (%d/%d): %s",
                    failures, self._strategy.max_consecutive_failures, e,
                )
                if failures >= self._strategy.max_consecutive_failures:
                    await self._send_alert(str(e), subject="🚨 Leverage loop giving up")
                    raise
                delay = min(
                    self._strategy.retry_base_delay_seconds * 2 ** (failures - 1),
                    self._strategy.retry_max_delay_seconds,
                )
                logger.info("Retrying in %.0fs", delay)
                await self._sleep(delay)
                continue

            if report is None:
                break

            failures = 0
            completed += 1
            if not limit or completed < limit:
                await self._sleep(self._strategy.min_cycle_delay_seconds)

        logger.info("Leverage loop finished after %d cycle(s)", completed)
        return completed
