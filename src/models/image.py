"""
AcquiredImage model: a decoded bitmap plus the transient buffer backing it.
"""

from __future__ import annotations

from typing import Optional

import numpy as np


class AcquiredImage:
    """
    A decoded image owned by exactly one pipeline run.

    Holds the decoded bitmap (BGR numpy array) and the transient transfer
    buffer (a memoryview over the downloaded bytes). Both are dropped by
    release(), which is idempotent: only the first call frees anything.

    Can be used as a context manager:
        with image:
            detect(image.bitmap)
    """

    def __init__(self, bitmap: Optional[np.ndarray], buffer: Optional[memoryview] = None, locator: str = ""):
        self._bitmap = bitmap
        self._buffer = buffer
        self.locator = locator
        self.release_count = 0

    @property
    def bitmap(self) -> np.ndarray:
        if self._bitmap is None:
            raise RuntimeError("AcquiredImage has been released")
        return self._bitmap

    @property
    def width(self) -> int:
        if self._bitmap is None or self._bitmap.ndim < 2:
            return 0
        return int(self._bitmap.shape[1])

    @property
    def height(self) -> int:
        if self._bitmap is None or self._bitmap.ndim < 2:
            return 0
        return int(self._bitmap.shape[0])

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    @property
    def released(self) -> bool:
        return self.release_count > 0

    def release(self) -> None:
        """Free the transfer buffer and the bitmap. Safe to call multiple times."""
        if self.release_count:
            return
        self.release_count += 1
        if self._buffer is not None:
            self._buffer.release()
            self._buffer = None
        self._bitmap = None

    def __enter__(self) -> "AcquiredImage":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
