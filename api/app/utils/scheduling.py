"""Cancellable periodic background task."""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

TickCallback = Callable[[], Union[Awaitable[Any], Any]]


class PeriodicTask:
    """Run a callback every ``interval_s`` seconds until stopped.

    The first tick fires after one full interval. Errors raised by a tick are
    logged and the loop keeps going; only cancellation ends it.
    """

    def __init__(self, name: str, interval_s: float, callback: TickCallback):
        if interval_s <= 0:
            raise ValueError(f"Interval for '{name}' must be positive")
        self.name = name
        self.interval_s = interval_s
        self.callback = callback
        self._task: Optional[asyncio.Task] = None
        self.ticks = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop. No-op if already running."""
        if self.is_running:
            return
        logger.info(f"Starting periodic task '{self.name}' every {self.interval_s}s")
        self._task = asyncio.create_task(self._run(), name=f"periodic:{self.name}")

    async def stop(self) -> None:
        """Cancel the loop. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is None:
            return
        logger.info(f"Stopping periodic task '{self.name}'")
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug(f"Periodic task '{self.name}' cancelled successfully")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                result = self.callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    f"Error in periodic task '{self.name}': {e}", exc_info=True
                )
            finally:
                self.ticks += 1
