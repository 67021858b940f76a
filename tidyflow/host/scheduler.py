"""
Cancellable wait timers keyed by workflow id.

A workflow in a wait period does not block the call that put it there.
Instead the scheduler owns one asyncio task per workflow id that sleeps for
the remaining duration and then hands control back to the host. Timers are
not durable on their own: after a restart the host rehydrates waiting
workflows, which re-arm their timers from the persisted wait start time.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict

logger = logging.getLogger(__name__)


class WaitScheduler:
    def __init__(self, on_elapsed: Callable[[str], Awaitable[None]]) -> None:
        self._on_elapsed = on_elapsed
        self._tasks: Dict[str, asyncio.Task] = {}

    def schedule(self, key: str, delay: float) -> None:
        """Arm the timer for ``key``, replacing any pending one."""
        self.cancel(key)
        delay = max(delay, 0.0)
        self._tasks[key] = asyncio.create_task(
            self._run(key, delay), name=f"tidyflow-wait-{key}"
        )
        logger.info(f"Timer for {key} scheduled in {delay:.3f}s")

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()
        logger.info(f"Timer for {key} cancelled")
        return True

    def pending(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    def timer_for(self, key: str) -> "WorkflowTimer":
        return WorkflowTimer(self, key)

    async def _run(self, key: str, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
            await self._on_elapsed(key)
        except Exception:
            # Nothing awaits this task, so log instead of losing the error.
            logger.exception(f"Timer callback for {key} failed")
        finally:
            # The callback may have armed a new timer for the same key.
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]

    async def join(self) -> None:
        """Wait until no timers are pending, including ones armed meanwhile."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class WorkflowTimer:
    """Handle bound to a live workflow so it can arm its own wait timer."""

    def __init__(self, scheduler: WaitScheduler, key: str) -> None:
        self._scheduler = scheduler
        self.key = key

    def schedule(self, delay: float) -> None:
        self._scheduler.schedule(self.key, delay)

    def cancel(self) -> bool:
        return self._scheduler.cancel(self.key)

    @property
    def pending(self) -> bool:
        return self._scheduler.pending(self.key)
