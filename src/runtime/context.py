from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, Optional

from acquisition.acquirer import ImageAcquirer
from detection.base import Detector
from detection.face import create_detector_from_config
from detection.loader import ResourceLoader
from models.config import Config
from models.element import StatusTable
from models.model_state import ModelState, ModelStatus
from observation.base import Document
from observation.discovery import Discovery
from pipeline.item import ItemPipeline
from pipeline.scheduler import Scheduler
from rendering.blur import BlurRenderer


@dataclass
class RuntimeContext:
    """Holds runtime state and service references for one document; avoids global singletons."""

    config: Config
    document: Document
    model_state: ModelState
    statuses: StatusTable
    acquirer: ImageAcquirer
    renderer: BlurRenderer
    pipeline: ItemPipeline
    scheduler: Scheduler
    discovery: Discovery
    loader: ResourceLoader

    async def start(self) -> ModelStatus:
        """Load the model; discovery starts only if that succeeds."""
        status = await self.loader.load()
        if status is ModelStatus.FAILED:
            logging.error("Model unavailable; no images will be processed")
        return status

    async def stop(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        """
        Stop discovery, let in-flight runs finish (up to `timeout` seconds),
        then release the HTTP client. Returns final statistics.
        """
        await self.discovery.stop()
        if not await self.scheduler.join(timeout=timeout):
            logging.warning("Timed out waiting for pipeline runs; cancelling")
            await self.scheduler.cancel()
        await self.acquirer.aclose()
        stats = self.get_stats()
        logging.info(f"Pipeline stats: {stats}")
        return stats

    def get_stats(self) -> Dict[str, Any]:
        stats = self.scheduler.stats.to_dict()
        stats["model"] = self.model_state.status.value
        stats["elements"] = self.statuses.counts()
        stats["scans"] = self.discovery.scan_count
        return stats


def build_runtime(
    config: Config,
    document: Document,
    detector_factory: Optional[Callable[[], Detector]] = None,
    acquirer: Optional[ImageAcquirer] = None,
    renderer: Optional[BlurRenderer] = None,
) -> RuntimeContext:
    """
    Factory function to wire a RuntimeContext from Config.

    Args:
        config: Application config.
        document: Where candidate images live.
        detector_factory: Builds the detector; defaults to the configured OpenCV backend.
        acquirer: Image acquirer; defaults to an httpx-backed one.
        renderer: Blur renderer; defaults to one built from config.blur.
    """
    model_state = ModelState()
    statuses = StatusTable()
    acquirer = acquirer or ImageAcquirer(config.acquisition)
    renderer = renderer or BlurRenderer(config.blur)

    pipeline = ItemPipeline(
        acquirer,
        renderer,
        model_state,
        statuses,
        score_threshold=config.detection.score_threshold,
        padding_px=config.blur.padding_px,
        skip_patterns=config.skip_patterns,
    )
    scheduler = Scheduler(pipeline.run, statuses, model_state, config.scheduler, on_done=document.release)
    discovery = Discovery(document, statuses, scheduler.enqueue, config.discovery)
    loader = ResourceLoader(
        model_state,
        detector_factory or partial(create_detector_from_config, config.detection),
        config.loader,
        on_ready=discovery.start,
    )

    return RuntimeContext(
        config=config,
        document=document,
        model_state=model_state,
        statuses=statuses,
        acquirer=acquirer,
        renderer=renderer,
        pipeline=pipeline,
        scheduler=scheduler,
        discovery=discovery,
        loader=loader,
    )
