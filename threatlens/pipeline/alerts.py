"""Alert fan-out to subscribed observers."""

from __future__ import annotations

import inspect
import logging
import threading
from typing import Awaitable, Callable, Union

from ..analyzer.models import ThreatVerdict

logger = logging.getLogger(__name__)

AlertCallback = Callable[[ThreatVerdict], Union[None, Awaitable[None]]]


class AlertHub:
    """Holds alert callbacks; each one is isolated from the others' failures."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._callbacks: dict[int, AlertCallback] = {}
        self._next_id = 0

    def subscribe(self, callback: AlertCallback) -> Callable[[], None]:
        """Register a sync or async callback; returns an unsubscribe function."""
        with self._lock:
            token = self._next_id
            self._next_id += 1
            self._callbacks[token] = callback

        def unsubscribe() -> None:
            with self._lock:
                self._callbacks.pop(token, None)

        return unsubscribe

    def clear(self) -> None:
        with self._lock:
            self._callbacks.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)

    async def broadcast(self, verdict: ThreatVerdict) -> int:
        """Deliver a verdict to every callback. Returns how many succeeded."""
        with self._lock:
            callbacks = list(self._callbacks.values())

        delivered = 0
        for callback in callbacks:
            try:
                result = callback(verdict)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as exc:
                logger.error("Alert callback %r failed for %s: %s", callback, verdict.url, exc)
        return delivered
