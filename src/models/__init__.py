"""
Typed models for the face blur pipeline.

Element status, detection regions, acquired images, model lifecycle,
errors and configuration.
"""

from .element import ElementStatus, StatusTable
from .detection import BoundingBox, DetectionRegion, regions_from_numpy
from .image import AcquiredImage
from .model_state import ModelState, ModelStatus
from .errors import (
    PipelineError,
    AcquisitionError,
    FetchError,
    FetchTimeoutError,
    DecodeError,
    ResourceLoadError,
    UnexpectedProcessingError,
)
from .config import (
    Config,
    BlurConfig,
    DiscoveryConfig,
    DetectionConfig,
    LoaderConfig,
    AcquisitionConfig,
    SchedulerConfig,
)

__all__ = [
    # Elements
    "ElementStatus",
    "StatusTable",
    # Detection
    "BoundingBox",
    "DetectionRegion",
    "regions_from_numpy",
    # Images
    "AcquiredImage",
    # Model lifecycle
    "ModelState",
    "ModelStatus",
    # Errors
    "PipelineError",
    "AcquisitionError",
    "FetchError",
    "FetchTimeoutError",
    "DecodeError",
    "ResourceLoadError",
    "UnexpectedProcessingError",
    # Config
    "Config",
    "BlurConfig",
    "DiscoveryConfig",
    "DetectionConfig",
    "LoaderConfig",
    "AcquisitionConfig",
    "SchedulerConfig",
]
