"""
Error taxonomy for the blur pipeline.

Per-item errors (acquisition and unexpected processing failures) are
contained inside one pipeline run. ResourceLoadError is terminal for the
whole runtime.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class AcquisitionError(PipelineError):
    """Raised when an image cannot be acquired for processing."""

    def __init__(self, message: str, locator: Optional[str] = None):
        super().__init__(message)
        self.locator = locator


class FetchError(AcquisitionError):
    """Network failure or a non-success HTTP response."""

    def __init__(self, message: str, locator: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, locator)
        self.status_code = status_code


class FetchTimeoutError(AcquisitionError, TimeoutError):
    """The fetch exceeded its wall-clock budget and was aborted."""


class DecodeError(AcquisitionError):
    """Bytes did not decode to a valid image, or the image has no area."""


class ResourceLoadError(PipelineError):
    """The detection model could not be loaded after exhausting retries."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class UnexpectedProcessingError(PipelineError):
    """Anything else that went wrong while detecting or rendering."""
