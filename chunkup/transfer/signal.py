"""Cooperative cancellation."""

import logging
from typing import Callable, List

logger = logging.getLogger(__name__)

AbortListener = Callable[[], None]


class AbortSignal:
    """Fires its listeners once, when the owning controller aborts."""

    def __init__(self):
        self.aborted = False
        self._listeners: List[AbortListener] = []

    def add_listener(self, listener: AbortListener):
        self._listeners.append(listener)

    def remove_listener(self, listener: AbortListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _fire(self):
        if self.aborted:
            return
        self.aborted = True
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Abort listener failed")


class AbortController:
    """Owner side of an AbortSignal."""

    def __init__(self):
        self.signal = AbortSignal()

    def abort(self):
        self.signal._fire()
