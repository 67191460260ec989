"""
One-time detection model loading with retry and exponential backoff.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from models.config import LoaderConfig
from models.errors import ResourceLoadError
from models.model_state import ModelState, ModelStatus
from .base import Detector


class ResourceLoader:
    """
    Loads the face detector once and gates all downstream work on it.

    The factory is a blocking callable (it reads or downloads weights) and
    runs in a worker thread. Each failed attempt waits base_delay * 2**n
    before the next; after max_attempts failures the ModelState becomes
    FAILED for good.

    Example:
        loader = ResourceLoader(ctx.model_state, lambda: create_detector_from_config(cfg), LoaderConfig())
        status = await loader.load()
    """

    def __init__(
        self,
        model_state: ModelState,
        factory: Callable[[], Detector],
        config: LoaderConfig,
        on_ready: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.model_state = model_state
        self._factory = factory
        self.config = config
        self._on_ready = on_ready
        self._task: Optional[asyncio.Task] = None

    async def load(self) -> ModelStatus:
        """
        Load the model, or join a load already in flight.

        Returns the final status (READY or FAILED). Calling again after the
        load settled returns the settled status without retrying.
        """
        if self._task is None:
            self._task = asyncio.ensure_future(self._load())
        return await self._task

    async def _load(self) -> ModelStatus:
        state = self.model_state
        if state.status is not ModelStatus.UNLOADED:
            return state.status

        state.begin_loading()
        max_attempts = max(1, self.config.max_attempts)
        last_error: Optional[BaseException] = None

        for attempt in range(max_attempts):
            try:
                detector = await asyncio.to_thread(self._factory)
            except Exception as e:
                last_error = e
                if attempt < max_attempts - 1:
                    wait_time = self.config.base_delay_s * (2 ** attempt)
                    logging.warning(f"Model load failed (attempt {attempt + 1}/{max_attempts}): {e}")
                    logging.info(f"Retrying model load in {wait_time:.2f} seconds...")
                    await asyncio.sleep(wait_time)
                continue

            state.mark_ready(detector)
            logging.info(f"Face detection model loaded (attempt {attempt + 1}/{max_attempts})")
            if self._on_ready is not None:
                await self._on_ready()
            return state.status

        error = ResourceLoadError(
            f"Model failed to load after {max_attempts} attempts: {last_error}",
            attempts=max_attempts,
        )
        error.__cause__ = last_error
        state.mark_failed(error)
        logging.error(f"{error}; face blurring is disabled")
        return state.status
