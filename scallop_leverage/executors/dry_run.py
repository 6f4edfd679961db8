"""Executor that logs the transactions it would submit."""
import logging
from itertools import count

from ..models import TransactionResult

logger = logging.getLogger(__name__)


class DryRunExecutor:
    """Record deposit and borrow intents without signing anything."""

    def __init__(self) -> None:
        self._sequence = count(1)
        self.submitted: list[tuple[str, dict]] = []

    def _record(self, action: str, **params) -> TransactionResult:
        digest = f"dry-run-{next(self._sequence)}"
        self.submitted.append((action, params))
        logger.info("[dry-run] %s %s -> %s", action, params, digest)
        return TransactionResult(digest=digest, dry_run=True)

    async def deposit_collateral(
        self, coin: str, amount: int, is_raw: bool, obligation_id: str
    ) -> TransactionResult:
        return self._record(
            "deposit_collateral",
            coin=coin, amount=amount, is_raw=is_raw, obligation_id=obligation_id,
        )

    async def borrow(
        self, coin: str, amount: int, is_raw: bool, obligation_id: str, key_id: str
    ) -> TransactionResult:
        return self._record(
            "borrow",
            coin=coin, amount=amount, is_raw=is_raw,
            obligation_id=obligation_id, key_id=key_id,
        )
