"""Alert publish/subscribe bus with per-listener error isolation."""
from __future__ import annotations

import inspect
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Union

from ..errors import AlertCallbackError
from ..models import Alert

logger = logging.getLogger(__name__)

AlertListener = Callable[[Alert], Union[None, Awaitable[object], object]]


class AlertBus:
    """Broadcasts every alert to every registered listener.

    Listeners may be plain functions or coroutines. A listener that raises is
    logged and skipped; delivery to the others continues and ``publish``
    never raises.
    """

    def __init__(self, history_size: int = 100) -> None:
        self._listeners: list[AlertListener] = []
        self.recent: deque[Alert] = deque(maxlen=history_size)

    def subscribe(self, listener: AlertListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def publish(self, alert: Alert) -> list[AlertCallbackError]:
        """Deliver ``alert``; returns the failures that were isolated."""
        self.recent.append(alert)
        logger.info("Alert %s for %s: %s", alert.type.value, alert.owner, alert.message)

        failures: list[AlertCallbackError] = []
        for listener in list(self._listeners):
            try:
                result = listener(alert)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                failure = AlertCallbackError(listener, e)
                failures.append(failure)
                logger.error("%s", failure)
        return failures
