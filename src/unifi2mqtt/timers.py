"""Named single-shot timers on the running event loop.

Scheduling a name that already has a pending timer cancels the pending one, so
the latest scheduling always wins. Callbacks are coroutine functions and run
in their own task once the delay elapses.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from unifi2mqtt.logging_abstraction import get_logger

logger = get_logger(__name__)

type TimerCallback = Callable[[], Awaitable[object]]


class TimerSet:
    """Registry of pending one-shot timers keyed by name."""

    lp: str = "timers:"

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Task[None]] = {}

    def schedule(self, name: str, delay: float, callback: TimerCallback) -> asyncio.Task[None]:
        """Run ``callback`` after ``delay`` seconds, superseding any pending timer of the same name."""
        self.cancel(name)
        task = asyncio.create_task(self._fire(name, delay, callback), name=f"timer:{name}")
        self._pending[name] = task
        logger.debug("%s scheduled '%s' in %.2fs", self.lp, name, delay)
        return task

    async def _fire(self, name: str, delay: float, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        # Once the callback starts it is no longer pending and can't be superseded
        if self._pending.get(name) is asyncio.current_task():
            del self._pending[name]
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s callback for timer '%s' failed", self.lp, name)

    def cancel(self, name: str) -> bool:
        task = self._pending.pop(name, None)
        if task is None or task.done():
            return False
        _ = task.cancel()
        logger.debug("%s cancelled pending '%s'", self.lp, name)
        return True

    def is_pending(self, name: str) -> bool:
        task = self._pending.get(name)
        return task is not None and not task.done()

    def cancel_all(self) -> None:
        for name in list(self._pending):
            _ = self.cancel(name)
