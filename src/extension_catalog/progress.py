"""Default progress sinks."""

import logging
from collections.abc import Awaitable
from collections.abc import Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NullProgressSink:
    """Progress sink that shows nothing."""

    async def with_progress(self, label: str, category: str, operation: Callable[[], Awaitable[T]]) -> T:
        return await operation()


class LoggingProgressSink:
    """Progress sink that reports operation start and end to the log."""

    def __init__(self, level: int = logging.DEBUG):
        self.level = level
        self.active = 0

    async def with_progress(self, label: str, category: str, operation: Callable[[], Awaitable[T]]) -> T:
        self.active += 1
        logger.log(self.level, f"[{category}] started {label or 'operation'} ({self.active} active)")
        try:
            return await operation()
        finally:
            self.active -= 1
            logger.log(self.level, f"[{category}] finished {label or 'operation'} ({self.active} active)")
