"""
Viewport Event Bus

Subscribe/notify channel carrying viewport-change events from the map
widget to the orchestrator. An event carries a ``Viewport``, or ``None``
when the map has not established its visible region yet.
"""

import threading
from typing import Callable, List, Optional

import structlog

from ..tiles.models import Viewport


ViewportHandler = Callable[[Optional[Viewport]], object]


class ViewportEventBus:
    """Delivers viewport-change events to subscribed handlers in subscription order."""

    def __init__(self):
        self._handlers: List[ViewportHandler] = []
        self._lock = threading.Lock()
        self.logger = structlog.get_logger(component="ViewportEventBus")

    def subscribe(self, handler: ViewportHandler) -> Callable[[], None]:
        """
        Register a handler.

        Returns:
            A callable that removes the handler again
        """
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    def publish(self, viewport: Optional[Viewport]) -> int:
        """
        Notify every handler of a viewport change.

        A handler that raises is logged and does not prevent later handlers
        from running.

        Returns:
            Number of handlers notified
        """
        with self._lock:
            handlers = list(self._handlers)

        for handler in handlers:
            try:
                handler(viewport)
            except Exception as e:
                self.logger.error(
                    "Viewport handler failed",
                    handler=getattr(handler, '__qualname__', repr(handler)),
                    error=str(e)
                )

        return len(handlers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)
