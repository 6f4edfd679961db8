"""Notifier protocol — where cycle summaries and alerts are delivered."""
from typing import Protocol


class Notifier(Protocol):
    """Abstract interface for sending operator notifications."""

    async def send_alert(self, message: str, subject: str = "") -> bool: ...

    async def send_log(self, message: str, silent: bool = True) -> bool: ...
