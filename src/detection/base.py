"""
Detection interfaces.

We keep this lightweight so the project can support multiple face
detection backends:
- Haar cascades bundled with OpenCV (no download needed)
- YuNet (ONNX) through cv2.FaceDetectorYN

Detectors are synchronous and may be slow; the pipeline runs them off the
event loop.
"""

from __future__ import annotations

from typing import List

import numpy as np

from models.detection import DetectionRegion


class Detector:
    """Detector interface returning face regions in pixel-space."""

    def detect(self, frame: np.ndarray, score_threshold: float = 0.5) -> List[DetectionRegion]:
        raise NotImplementedError
