"""Transaction executor protocol — signing and submission live behind this seam."""
from typing import Protocol

from ..models import TransactionResult


class TransactionExecutor(Protocol):
    """Submit deposit and borrow transactions.

    Implementations raise ``ExecutionFailure`` when the ledger rejects a
    transaction; they never retry.
    """

    async def deposit_collateral(
        self, coin: str, amount: int, is_raw: bool, obligation_id: str
    ) -> TransactionResult: ...

    async def borrow(
        self, coin: str, amount: int, is_raw: bool, obligation_id: str, key_id: str
    ) -> TransactionResult: ...
