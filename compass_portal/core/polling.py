"""Supervised interval polling.

A :class:`PollingTask` owns one background asyncio task that evaluates a
condition on a fixed interval. The owner cancels it on teardown and the
cancel call returns only once the task has actually stopped, so no
completion callback can fire afterwards.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

Check = Callable[[], Any]
Callback = Callable[[], Awaitable[None] | None]


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class PollingTask:
    """Poll ``check`` every ``interval`` seconds until it returns truthy.

    Args:
        check: Sync or async callable; a truthy result ends polling
        interval: Seconds between checks (the first check waits one interval)
        on_complete: Called once after the condition is met
        delay: Extra seconds to wait between detection and ``on_complete``
        name: Task name used in logs
    """

    def __init__(
        self,
        check: Check,
        interval: float,
        on_complete: Callback | None = None,
        delay: float = 0.0,
        name: str = "poll",
    ):
        self.check = check
        self.interval = interval
        self.on_complete = on_complete
        self.delay = delay
        self.name = name
        self._task: asyncio.Task | None = None
        self.checks = 0

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "PollingTask":
        if self._task is not None:
            raise RuntimeError(f"Polling task {self.name} already started")
        self._task = asyncio.create_task(self._run(), name=self.name)
        self._task.add_done_callback(self._report)
        logger.debug(f"Started polling task {self.name} every {self.interval}s")
        return self

    async def _run(self) -> Any:
        while True:
            await asyncio.sleep(self.interval)
            self.checks += 1
            result = await _maybe_await(self.check())
            if result:
                break

        if self.delay:
            await asyncio.sleep(self.delay)
        if self.on_complete is not None:
            await _maybe_await(self.on_complete())
        return result

    def _report(self, task: asyncio.Task) -> None:
        if task.cancelled():
            logger.debug(f"Polling task {self.name} cancelled")
        elif task.exception() is not None:
            logger.error(f"Polling task {self.name} failed: {task.exception()}")
        else:
            logger.debug(f"Polling task {self.name} finished after {self.checks} checks")

    async def wait(self) -> Any:
        """Wait for completion and return the final check result.

        Raises whatever the check or the completion callback raised.
        """
        if self._task is None:
            raise RuntimeError(f"Polling task {self.name} was never started")
        return await self._task

    async def cancel(self) -> None:
        """Stop polling and wait until the task has finished."""
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
