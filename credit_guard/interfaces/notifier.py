"""Notifier protocol: alert delivery channel abstraction."""
from typing import Protocol

from ..models import Alert


class Notifier(Protocol):
    """Abstract interface for delivering alerts."""

    async def send_alert(self, alert: Alert) -> bool: ...
