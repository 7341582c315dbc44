"""Cancellable fixed-interval repetition for the QR poll step."""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 2.0

PollStep = Callable[[], Awaitable[bool]]


class AuthPoller:
    """Runs a poll step every ``interval`` seconds until it returns False.

    The interval is measured from the end of one step to the start of the next,
    so steps never overlap. ``cancel()`` stops the loop within one tick.
    """

    def __init__(self, interval: float = POLL_INTERVAL_SECONDS) -> None:
        self.interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, step: PollStep) -> None:
        """Start polling with step, replacing any loop already running."""
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(step))

    async def _run(self, step: PollStep) -> None:
        ticks = 0
        while True:
            await asyncio.sleep(self.interval)
            ticks += 1
            keep_polling = await step()
            if not keep_polling or self._task is not asyncio.current_task():
                logger.debug("Polling finished after %d tick(s)", ticks)
                return

    def cancel(self) -> None:
        """Stop polling. Safe to call from inside the step itself."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        # A step that cancels its own loop just lets it end after returning
        if task is asyncio.current_task():
            return
        task.cancel()
        logger.debug("Polling cancelled")

    async def wait(self) -> None:
        """Wait until the current loop ends, by finishing or by cancellation."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
