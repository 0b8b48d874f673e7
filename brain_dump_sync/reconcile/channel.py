"""
Reconcile channel.

The single path by which producers reach the Reconciler. Publishing is
synchronous: the Reconciler applies the message before ``publish``
returns, so a placeholder is in view before any network call starts.
Listeners (notices, re-render hooks) see each message after it has been
applied.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from .messages import ReconcileMessage
from .reconciler import Reconciler

logger = logging.getLogger(__name__)

Listener = Callable[[ReconcileMessage], None]


class ReconcileChannel:
    """Delivers messages to the Reconciler, then to subscribed listeners."""

    def __init__(self, reconciler: Reconciler):
        self.reconciler = reconciler
        self._listeners: list[Listener] = []
        self._published = 0

    @property
    def published_count(self) -> int:
        return self._published

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, message: ReconcileMessage) -> None:
        """Apply ``message`` to the view and notify listeners.

        Listener failures are logged and never reach the producer.
        """
        self._published += 1
        self.reconciler.handle(message)

        for listener in list(self._listeners):
            try:
                listener(message)
            except Exception:
                logger.exception(f"Reconcile listener failed on {type(message).__name__}")
