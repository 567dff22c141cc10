"""Periodic background tasks with an explicit start/stop lifecycle."""

import asyncio
from typing import Any, Awaitable, Callable

from repocdn.observability import get_logger

logger = get_logger(__name__)


class PeriodicTask:
    """Runs an async callback immediately, then every `interval_seconds`.

    The task is owned by whoever calls start(); stop() cancels it and waits
    for it to finish. A failing callback is logged and the schedule continues.

    Example:
        refresher = PeriodicTask(lambda: index.resync(store), 3600, name="resync")
        refresher.start()
        ...
        await refresher.stop()
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        name: str = "periodic",
    ) -> None:
        """Initialize the task.

        Args:
            callback: Async function to run each period
            interval_seconds: Delay between the end of one run and the next
            name: Name used for the asyncio task and in logs
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.callback = callback
        self.interval_seconds = interval_seconds
        self.name = name
        self._task: asyncio.Task[None] | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        """Whether the background task is active."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the background loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.info(
            "Periodic task started",
            context={"task": self.name, "interval_seconds": self.interval_seconds},
        )

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to exit."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Periodic task stopped", context={"task": self.name, "runs": self.runs})

    async def run_once(self) -> None:
        """Run the callback once, logging instead of raising on failure."""
        try:
            await self.callback()
        except Exception as e:
            logger.error("Periodic task run failed", context={"task": self.name}, error=e)
        finally:
            self.runs += 1

    async def _run(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)
