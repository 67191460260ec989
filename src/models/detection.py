"""
Detection models for face detection results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np


@dataclass(frozen=True)
class BoundingBox:
    """
    A bounding box in pixel coordinates.

    Attributes:
        x1: Left edge x coordinate.
        y1: Top edge y coordinate.
        x2: Right edge x coordinate (exclusive).
        y2: Bottom edge y coordinate (exclusive).
    """
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        return max(self.width, 0) * max(self.height, 0)

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def as_int_tuple(self) -> Tuple[int, int, int, int]:
        """Return as integer (x1, y1, x2, y2) tuple."""
        return (int(self.x1), int(self.y1), int(self.x2), int(self.y2))

    def expand(self, padding: float) -> "BoundingBox":
        """Grow the box by `padding` on every side."""
        return BoundingBox(
            x1=self.x1 - padding,
            y1=self.y1 - padding,
            x2=self.x2 + padding,
            y2=self.y2 + padding,
        )

    def clamp(self, width: int, height: int) -> "BoundingBox":
        """
        Clip the box to an image of the given size, snapping outward to whole pixels.

        The result always satisfies 0 <= x1 <= x2 <= width and
        0 <= y1 <= y2 <= height; a box fully outside the image comes back empty.
        """
        x1 = min(max(int(np.floor(self.x1)), 0), width)
        y1 = min(max(int(np.floor(self.y1)), 0), height)
        x2 = min(max(int(np.ceil(self.x2)), x1), width)
        y2 = min(max(int(np.ceil(self.y2)), y1), height)
        return BoundingBox(x1=x1, y1=y1, x2=x2, y2=y2)

    @classmethod
    def from_xywh(cls, x: float, y: float, w: float, h: float) -> "BoundingBox":
        """Create from (x, y, width, height) format."""
        return cls(x1=x, y1=y, x2=x + w, y2=y + h)


@dataclass(frozen=True)
class DetectionRegion:
    """
    A detected region of interest (a face) within one decoded image.

    Attributes:
        x: Left edge in pixels.
        y: Top edge in pixels.
        width: Region width in pixels.
        height: Region height in pixels.
        confidence: Detector score (0-1).
    """
    x: float
    y: float
    width: float
    height: float
    confidence: float = 1.0

    @property
    def box(self) -> BoundingBox:
        return BoundingBox.from_xywh(self.x, self.y, self.width, self.height)

    def padded_box(self, padding: float, image_width: int, image_height: int) -> BoundingBox:
        """The region grown by `padding` on all sides and clamped to the image bounds."""
        return self.box.expand(padding).clamp(image_width, image_height)

    @classmethod
    def from_numpy_row(cls, row: np.ndarray, score_index: int = -1) -> "DetectionRegion":
        """
        Adapter: Convert from a numpy row [x, y, w, h, ..., score].

        OpenCV's FaceDetectorYN emits 15 columns with the score last.
        """
        return cls(
            x=float(row[0]),
            y=float(row[1]),
            width=float(row[2]),
            height=float(row[3]),
            confidence=float(row[score_index]) if len(row) > 4 else 1.0,
        )


def regions_from_numpy(arr: np.ndarray) -> List[DetectionRegion]:
    """
    Adapter: Convert numpy array of detections to list of DetectionRegion objects.

    Args:
        arr: Array of shape (N, 4+) where each row is [x, y, w, h, ...].
    """
    if arr is None or len(arr) == 0:
        return []
    return [DetectionRegion.from_numpy_row(row) for row in arr]
