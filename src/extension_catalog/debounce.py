"""Trailing-edge debouncer for asyncio.

Collapses bursts of triggers into a single run of the action, started once no
trigger arrived for ``delay`` seconds.
"""

import asyncio
import logging
from collections.abc import Awaitable
from collections.abc import Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Debounce an async action.

    Every ``trigger()`` restarts the quiescence window. When the window elapses
    the action is started as a task. Runs that already started are never
    canceled by later triggers; superseding their results is the action's job.

    Must be triggered from inside a running event loop.
    """

    def __init__(self, delay: float, action: Callable[[], Awaitable[None]]):
        self.delay = delay
        self._action = action
        self._handle: asyncio.TimerHandle | None = None
        self._running: set[asyncio.Task] = set()

    def trigger(self) -> None:
        """(Re)start the quiescence window."""
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        task = asyncio.ensure_future(self._action())
        self._running.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._running.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Debounced action failed: {error}", exc_info=error)

    @property
    def pending(self) -> bool:
        """True while a window is open or a started action is still running."""
        return self._handle is not None or bool(self._running)

    async def wait(self) -> None:
        """Wait until no window is open and no started action is running."""
        loop = asyncio.get_running_loop()
        while self.pending:
            if self._handle is not None:
                await asyncio.sleep(max(0.0, self._handle.when() - loop.time()))
                # Let the timer callback run before re-checking
                await asyncio.sleep(0)
            else:
                await asyncio.gather(*self._running, return_exceptions=True)

    def cancel(self) -> list[asyncio.Task]:
        """Close any open window and cancel started actions.

        Returns:
            The canceled tasks, for the caller to await
        """
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        tasks = list(self._running)
        for task in tasks:
            task.cancel()
        return tasks
