"""
Timer helpers for discovery: cancel-and-reschedule debouncing.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional, Set


class Debouncer:
    """
    Runs `callback` once `delay_s` seconds after the most recent trigger().

    Repeated triggers inside the window push the deadline back, so a burst
    of triggers produces a single call. The callback may be a plain
    function or return an awaitable; awaitables run as tracked tasks and
    their failures are logged rather than lost.
    """

    def __init__(self, delay_s: float, callback: Callable[[], Any], name: str = "debounce"):
        self.delay_s = delay_s
        self._callback = callback
        self.name = name
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self.fire_count = 0

    @property
    def pending(self) -> bool:
        """True while a call is scheduled but has not fired yet."""
        return self._handle is not None

    def trigger(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay_s, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self.fire_count += 1
        result = self._callback()
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logging.error(f"{self.name} callback failed: {exc}")

    async def wait_idle(self) -> None:
        """Wait for callbacks already fired to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel(self) -> None:
        """Drop the scheduled call and cancel callbacks still running."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        for task in list(self._tasks):
            task.cancel()
