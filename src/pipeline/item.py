"""
Per-element processing: acquire, detect, blur, replace.

Each run walks CREATED -> CHECKING -> ACQUIRING -> DETECTING -> RENDERING
-> TERMINAL, stopping early when there is nothing (more) to do. Whatever
happens, the element ends DONE and every buffer the run allocated is
released before the run returns.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from acquisition.acquirer import ImageAcquirer
from models.detection import DetectionRegion
from models.element import ElementStatus, StatusTable
from models.errors import DecodeError, FetchError, FetchTimeoutError, UnexpectedProcessingError
from models.image import AcquiredImage
from models.model_state import ModelState
from observation.base import CandidateElement
from rendering.blur import BlurRenderer, RenderedImage


class ItemStage(str, Enum):
    CREATED = "created"
    CHECKING = "checking"
    ACQUIRING = "acquiring"
    DETECTING = "detecting"
    RENDERING = "rendering"
    TERMINAL = "terminal"


class ItemOutcome(str, Enum):
    """How a pipeline run ended."""
    ALREADY_DONE = "already_done"
    MODEL_NOT_READY = "model_not_ready"
    SKIPPED = "skipped"
    FETCH_FAILED = "fetch_failed"
    TIMED_OUT = "timed_out"
    DECODE_FAILED = "decode_failed"
    EMPTY_IMAGE = "empty_image"
    NO_FACES = "no_faces"
    BLURRED = "blurred"
    FAILED = "failed"


@dataclass
class ItemResult:
    """
    Result of one pipeline run.

    Attributes:
        outcome: How the run ended.
        stage: Last stage entered before the run terminated.
        regions: Number of faces blurred.
        error: The contained error, for failed outcomes.
    """
    outcome: ItemOutcome
    stage: ItemStage
    regions: int = 0
    error: Optional[BaseException] = None

    @property
    def mutated(self) -> bool:
        return self.outcome is ItemOutcome.BLURRED


class ItemPipeline:
    """
    Drives one element through acquisition, detection and rendering.

    Errors never escape run(): expected failures (fetch, timeout, decode)
    are logged as warnings, anything else as an error, and the original
    image is left untouched in both cases.
    """

    def __init__(
        self,
        acquirer: ImageAcquirer,
        renderer: BlurRenderer,
        model_state: ModelState,
        statuses: StatusTable,
        score_threshold: float = 0.5,
        padding_px: int = 10,
        skip_patterns: Sequence[str] = (),
    ):
        self.acquirer = acquirer
        self.renderer = renderer
        self.model_state = model_state
        self.statuses = statuses
        self.score_threshold = score_threshold
        self.padding_px = padding_px
        self.skip_patterns = tuple(skip_patterns)

    def is_skipped_locator(self, locator: str) -> bool:
        """Empty locators and animated/video preview URLs are never processed."""
        return not locator or any(pattern in locator for pattern in self.skip_patterns)

    async def run(self, element: CandidateElement) -> ItemResult:
        stage = ItemStage.CREATED
        image: Optional[AcquiredImage] = None
        rendered: Optional[RenderedImage] = None
        locator = ""
        try:
            stage = ItemStage.CHECKING
            if self.statuses.get(element).is_terminal:
                return ItemResult(ItemOutcome.ALREADY_DONE, stage)
            if not self.model_state.is_ready:
                logging.debug("Model not ready; declining element")
                return ItemResult(ItemOutcome.MODEL_NOT_READY, stage)
            locator = element.src
            if self.is_skipped_locator(locator):
                logging.debug(f"Skipping likely video preview: {locator}")
                return ItemResult(ItemOutcome.SKIPPED, stage)

            stage = ItemStage.ACQUIRING
            try:
                image = await self.acquirer.acquire(locator)
            except FetchTimeoutError as e:
                logging.warning(f"Fetch timed out, leaving image unchanged: {locator} ({e})")
                return ItemResult(ItemOutcome.TIMED_OUT, stage, error=e)
            except FetchError as e:
                logging.warning(f"Fetch failed (likely preview skipped): {locator} ({e})")
                return ItemResult(ItemOutcome.FETCH_FAILED, stage, error=e)
            except DecodeError as e:
                logging.warning(f"Could not decode image: {locator} ({e})")
                return ItemResult(ItemOutcome.DECODE_FAILED, stage, error=e)
            except Exception as e:
                error = UnexpectedProcessingError(f"Error acquiring image: {e}")
                error.__cause__ = e
                logging.error(f"Error acquiring image {locator}: {e}", exc_info=e)
                return ItemResult(ItemOutcome.FAILED, stage, error=error)

            if image.is_empty:
                logging.warning(f"Skipping image with zero dimensions: {locator}")
                return ItemResult(ItemOutcome.EMPTY_IMAGE, stage)

            try:
                stage = ItemStage.DETECTING
                regions = await self._detect(image)
                if not regions:
                    return ItemResult(ItemOutcome.NO_FACES, stage)

                stage = ItemStage.RENDERING
                boxes = [r.padded_box(self.padding_px, image.width, image.height) for r in regions]
                rendered = await asyncio.to_thread(self.renderer.render, image.bitmap, boxes)
                await element.set_source(rendered.source)
                logging.info(f"Blurred {len(regions)} face(s) in {locator[:120]}")
                return ItemResult(ItemOutcome.BLURRED, stage, regions=len(regions))
            except Exception as e:
                error = UnexpectedProcessingError(f"Error processing image during {stage.value}: {e}")
                error.__cause__ = e
                logging.error(f"Error processing image {locator or 'Source URL not available'}: {e}", exc_info=e)
                return ItemResult(ItemOutcome.FAILED, stage, error=error)
        finally:
            if rendered is not None:
                rendered.release()
            if image is not None:
                image.release()
            # at most one attempt per element, whatever the outcome
            self.statuses.advance(element, ElementStatus.DONE)

    async def _detect(self, image: AcquiredImage) -> List[DetectionRegion]:
        detector = self.model_state.detector
        if inspect.iscoroutinefunction(detector.detect):
            found = await detector.detect(image.bitmap, self.score_threshold)
        else:
            found = await asyncio.to_thread(detector.detect, image.bitmap, self.score_threshold)
        return [r for r in found if r.confidence >= self.score_threshold]
