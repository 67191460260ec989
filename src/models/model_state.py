"""
Process-wide detection model lifecycle.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Optional

from .errors import ResourceLoadError


class ModelStatus(str, Enum):
    """Model lifecycle: UNLOADED -> LOADING -> READY | FAILED."""
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


_TRANSITIONS = {
    ModelStatus.UNLOADED: {ModelStatus.LOADING},
    ModelStatus.LOADING: {ModelStatus.READY, ModelStatus.FAILED},
    ModelStatus.READY: set(),
    ModelStatus.FAILED: set(),
}


class ModelState:
    """
    Holds the loaded detector and its lifecycle status.

    Only the ResourceLoader calls the transition methods; everything else
    reads `status`, `is_ready` and `detector`.
    """

    def __init__(self):
        self._status = ModelStatus.UNLOADED
        self._detector: Any = None
        self.error: Optional[ResourceLoadError] = None

    @property
    def status(self) -> ModelStatus:
        return self._status

    @property
    def is_ready(self) -> bool:
        return self._status is ModelStatus.READY

    @property
    def is_failed(self) -> bool:
        return self._status is ModelStatus.FAILED

    @property
    def detector(self) -> Any:
        """The loaded detector; None unless READY."""
        return self._detector

    def begin_loading(self) -> None:
        self._transition(ModelStatus.LOADING)

    def mark_ready(self, detector: Any) -> None:
        self._transition(ModelStatus.READY)
        self._detector = detector

    def mark_failed(self, error: ResourceLoadError) -> None:
        self._transition(ModelStatus.FAILED)
        self.error = error

    def _transition(self, target: ModelStatus) -> None:
        if target not in _TRANSITIONS[self._status]:
            raise ValueError(f"Invalid model state transition: {self._status.value} -> {target.value}")
        logging.debug(f"Model state: {self._status.value} -> {target.value}")
        self._status = target
