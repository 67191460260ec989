"""
Bounded FIFO scheduler for pipeline runs.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Set

from models.config import SchedulerConfig
from models.element import ElementStatus, StatusTable
from models.model_state import ModelState
from .item import ItemOutcome, ItemResult, ItemStage


@dataclass
class PipelineStats:
    """Runtime statistics for the scheduler."""
    enqueued: int = 0
    admitted: int = 0
    completed: int = 0
    declined: int = 0
    peak_active: int = 0
    faces_blurred: int = 0
    outcomes: Dict[str, int] = field(default_factory=dict)
    start_time: float = field(default_factory=time.time)

    def record(self, result: ItemResult) -> None:
        self.completed += 1
        self.faces_blurred += result.regions
        key = result.outcome.value
        self.outcomes[key] = self.outcomes.get(key, 0) + 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enqueued": self.enqueued,
            "admitted": self.admitted,
            "completed": self.completed,
            "declined": self.declined,
            "peak_active": self.peak_active,
            "faces_blurred": self.faces_blurred,
            "outcomes": dict(self.outcomes),
            "uptime_seconds": int(time.time() - self.start_time),
        }


class Scheduler:
    """
    Admits queued elements into at most N concurrent pipeline runs.

    Admission is FIFO. When a run finishes, for any reason, its slot is
    handed to the head of the queue straight away. Runs are asyncio tasks
    interleaved on one event loop, so the queue and the active count need
    no locking; the status guards in enqueue() keep every element to a
    single run.

    Example:
        scheduler = Scheduler(pipeline.run, statuses, model_state, SchedulerConfig(max_concurrent=3))
        scheduler.enqueue(element)
        await scheduler.join()
    """

    def __init__(
        self,
        run_item: Callable[[Any], Awaitable[ItemResult]],
        statuses: StatusTable,
        model_state: ModelState,
        config: SchedulerConfig,
        on_done: Optional[Callable[[Any], None]] = None,
    ):
        if config.max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._run_item = run_item
        self._on_done = on_done
        self.statuses = statuses
        self.model_state = model_state
        self.config = config
        self.stats = PipelineStats()
        self._queue: Deque[Any] = deque()
        self._active = 0
        self._tasks: Set[asyncio.Task] = set()
        self._idle: Optional[asyncio.Event] = None

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def queued_count(self) -> int:
        return len(self._queue)

    @property
    def is_idle(self) -> bool:
        return self._active == 0 and not self._queue

    def enqueue(self, element: Any) -> bool:
        """
        Queue an element for processing.

        No-op (returns False) if the element is already queued, processing
        or done, or if the model is not ready.
        """
        if not self.model_state.is_ready:
            self.stats.declined += 1
            logging.debug(f"Model {self.model_state.status.value}; not enqueueing element")
            return False
        if self.statuses.get(element) >= ElementStatus.QUEUED:
            return False

        self.statuses.advance(element, ElementStatus.QUEUED)
        self._queue.append(element)
        self.stats.enqueued += 1
        self._admit()
        return True

    def _admit(self) -> None:
        while self._active < self.config.max_concurrent and self._queue:
            element = self._queue.popleft()
            self.statuses.advance(element, ElementStatus.PROCESSING)
            self._active += 1
            self.stats.admitted += 1
            self.stats.peak_active = max(self.stats.peak_active, self._active)
            self._idle_event().clear()
            task = asyncio.ensure_future(self._run(element))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, element: Any) -> None:
        try:
            result = await self._run_item(element)
            self.stats.record(result)
        except Exception as e:
            logging.error(f"Pipeline run raised unexpectedly: {e}", exc_info=e)
            self.stats.record(ItemResult(ItemOutcome.FAILED, stage=ItemStage.TERMINAL, error=e))
        finally:
            self.statuses.advance(element, ElementStatus.DONE)
            self._active -= 1
            if self._on_done is not None:
                try:
                    self._on_done(element)
                except Exception as e:
                    logging.warning(f"Done callback failed: {e}")
            self._admit()
            if self.is_idle:
                self._idle_event().set()

    def _idle_event(self) -> asyncio.Event:
        if self._idle is None:
            self._idle = asyncio.Event()
            if self.is_idle:
                self._idle.set()
        return self._idle

    async def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the queue is empty and no run is active.

        Returns False if `timeout` seconds passed first.
        """
        if self.is_idle:
            return True
        try:
            await asyncio.wait_for(self._idle_event().wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def cancel(self) -> None:
        """Drop queued elements and cancel active runs."""
        dropped = len(self._queue)
        self._queue.clear()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if dropped or tasks:
            logging.info(f"Scheduler cancelled: {dropped} queued dropped, {len(tasks)} run(s) cancelled")
