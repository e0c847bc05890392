import asyncio
import logging
from asyncio import Task
from typing import Any, Callable, Optional


class PollScheduler:
    """Runs ``poll`` once on start and then every interval until stopped."""

    def __init__(self, poll: Callable[[], None]):
        self._logger = logging.getLogger(__name__)
        self._poll = poll
        self._poll_task: Optional[Task[Any]] = None
        self._interval_ms: int = 0

    @property
    def running(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    def start(self, interval_ms: int):
        """Start polling. An interval of 0 or less disables polling."""
        self.stop()
        if interval_ms <= 0:
            self._logger.debug("Polling disabled")
            return
        self._interval_ms = interval_ms
        self._logger.debug(f"Starting data polling every {interval_ms}ms")
        self._run_poll()
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop(interval_ms / 1000))

    def stop(self):
        if self._poll_task is not None:
            if not self._poll_task.done():
                self._poll_task.cancel()
                self._logger.debug("Stopped data polling")
            self._poll_task = None

    async def _poll_loop(self, interval: float):
        while True:
            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                self._logger.debug("Poll task cancelled")
                break
            self._run_poll()

    def _run_poll(self):
        try:
            self._poll()
        except Exception as e:
            self._logger.error(f"Error while polling device: {e}", exc_info=True)
