"""
Pipeline module for the face blur system.

The pipeline orchestrates per-element processing:
- Bounded FIFO admission of visible elements (Scheduler)
- Acquisition, detection, blurring and source replacement (ItemPipeline)
"""

from .item import ItemPipeline, ItemResult, ItemOutcome, ItemStage
from .scheduler import Scheduler, PipelineStats

__all__ = [
    "ItemPipeline",
    "ItemResult",
    "ItemOutcome",
    "ItemStage",
    "Scheduler",
    "PipelineStats",
]
