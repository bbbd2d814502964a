"""Minimal in-process event emitter."""

import logging
from collections.abc import Callable
from typing import Generic
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Emitter(Generic[T]):
    """
    Synchronous event emitter.

    Listeners run in subscription order. A failing listener is logged and does
    not prevent delivery to the others.
    """

    def __init__(self, name: str = "event") -> None:
        self.name = name
        self._listeners: list[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """Register listener, returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return dispose

    def fire(self, value: T) -> None:
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception as e:
                logger.error(f"Listener for '{self.name}' failed: {e}", exc_info=True)

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)
