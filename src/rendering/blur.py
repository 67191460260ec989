"""
Blur renderer: obscures face regions and re-encodes the result.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import cv2
import numpy as np

from models.config import BlurConfig
from models.detection import BoundingBox

_MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "webp": "image/webp",
}


def encode_data_url(image: np.ndarray, fmt: str = "png") -> str:
    """Encode a BGR image as a base64 data URL."""
    fmt = fmt.lower()
    if fmt not in _MIME_TYPES:
        raise ValueError(f"Unsupported output format: {fmt}")
    ok, encoded = cv2.imencode(f".{fmt}", image)
    if not ok:
        raise RuntimeError(f"Failed to encode image as {fmt}")
    b64 = base64.b64encode(encoded.tobytes()).decode("ascii")
    return f"data:{_MIME_TYPES[fmt]};base64,{b64}"


@dataclass
class RenderedImage:
    """
    The off-screen surface a run drew on, plus its encoded form.

    Attributes:
        surface: Mutated BGR copy of the source bitmap (None once released).
        source: Data URL to assign to the element.
        boxes: Regions that were actually blurred.
    """
    surface: Optional[np.ndarray]
    source: str
    boxes: List[BoundingBox] = field(default_factory=list)

    def release(self) -> None:
        self.surface = None


class BlurRenderer:
    """
    Applies a Gaussian blur to each region of a copy of the bitmap.

    intensity_px is used as the Gaussian standard deviation, the same
    meaning as a CSS blur() radius. Each region is blurred from the
    untouched source pixels, so overlapping regions do not compound.
    """

    def __init__(self, config: BlurConfig):
        self.config = config

    def render(self, bitmap: np.ndarray, boxes: Sequence[BoundingBox]) -> RenderedImage:
        h, w = bitmap.shape[:2]
        surface = bitmap.copy()
        applied: List[BoundingBox] = []

        for box in boxes:
            box = box.clamp(w, h)
            if box.is_empty:
                continue
            x1, y1, x2, y2 = box.as_int_tuple()
            surface[y1:y2, x1:x2] = cv2.GaussianBlur(
                bitmap[y1:y2, x1:x2],
                (0, 0),
                sigmaX=self.config.intensity_px,
                borderType=cv2.BORDER_REPLICATE,
            )
            applied.append(box)

        source = encode_data_url(surface, self.config.output_format)
        return RenderedImage(surface=surface, source=source, boxes=applied)
