"""Periodic background task runner for plugin instances.

Slowmode expiry and outdated voice alerts are both "run this every N seconds
for as long as the plugin is loaded"; this module owns that loop so plugins
only supply the coroutine.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from zeppelin.util.logger import get_logger

logger = get_logger("loops")


class PeriodicTask:
    """
    Reusable runner that calls a coroutine function on a fixed interval.

    Args:
        name: Human-readable name for logging (e.g., "slowmode-clear:1234").
        coro_fn: Async callable taking no arguments.
        interval: Seconds to sleep between runs.
        run_immediately: Run once right away instead of after the first interval.
    """

    def __init__(
        self,
        name: str,
        coro_fn: Callable[[], Awaitable[Any]],
        interval: float,
        *,
        run_immediately: bool = False,
    ) -> None:
        self.name = name
        self._coro_fn = coro_fn
        self.interval = interval
        self.run_immediately = run_immediately
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run_loop(self) -> None:
        """Infinite loop: run, sleep, repeat."""
        try:
            if not self.run_immediately:
                await asyncio.sleep(self.interval)
            while True:
                try:
                    await self._coro_fn()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error("[%s] Unexpected error during periodic run: %s", self.name, exc, exc_info=exc)
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            logger.debug("[%s] Periodic task cancelled", self.name)
            raise

    def start(self) -> None:
        """Start the background task if not already running. Requires a running loop."""
        if self.running:
            logger.warning("[%s] Task already running", self.name)
            return
        logger.debug("[%s] Starting periodic task (interval=%.1fs)", self.name, self.interval)
        self._task = asyncio.get_running_loop().create_task(self._run_loop(), name=f"zeppelin-{self.name}")

    async def stop(self) -> None:
        """Cancel the task and wait for it to finish."""
        task, self._task = self._task, None
        if task is None or task.done():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
