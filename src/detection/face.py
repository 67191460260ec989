"""
OpenCV face detection backends and model resolution.

The model source is a base location (local directory or http(s) URL)
that the configured model file is resolved against. Remote weights are
downloaded once into a local cache directory.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from typing import List, Optional

import cv2
import httpx
import numpy as np

from models.config import DetectionConfig
from models.detection import DetectionRegion, regions_from_numpy
from .base import Detector

MODEL_CACHE_DIR = os.path.join(tempfile.gettempdir(), "face_blur_models")


class HaarFaceDetector(Detector):
    """
    Frontal face detector built on an OpenCV Haar cascade.

    Cascades carry no calibrated score, so every region is reported with
    confidence 1.0.
    """

    def __init__(
        self,
        cascade_path: str,
        min_face_px: int = 24,
        scale_factor: float = 1.1,
        min_neighbors: int = 5,
    ):
        self._cascade = cv2.CascadeClassifier(cascade_path)
        if self._cascade.empty():
            raise RuntimeError(f"Failed to load Haar cascade from {cascade_path}")
        self.min_face_px = min_face_px
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        # CascadeClassifier is not safe to share between threads
        self._lock = threading.Lock()

    def detect(self, frame: np.ndarray, score_threshold: float = 0.5) -> List[DetectionRegion]:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame
        gray = cv2.equalizeHist(gray)
        with self._lock:
            faces = self._cascade.detectMultiScale(
                gray,
                scaleFactor=self.scale_factor,
                minNeighbors=self.min_neighbors,
                minSize=(self.min_face_px, self.min_face_px),
            )

        out: List[DetectionRegion] = []
        for (x, y, w, h) in faces:
            region = DetectionRegion(x=float(x), y=float(y), width=float(w), height=float(h), confidence=1.0)
            if region.confidence >= score_threshold:
                out.append(region)
        return out


class YuNetFaceDetector(Detector):
    """Face detector using the YuNet ONNX model through cv2.FaceDetectorYN."""

    def __init__(self, model_path: str, score_threshold: float = 0.5):
        if not os.path.isfile(model_path):
            raise FileNotFoundError(f"YuNet model not found: {model_path}")
        self._detector = cv2.FaceDetectorYN.create(model_path, "", (320, 320), score_threshold)
        self._lock = threading.Lock()

    def detect(self, frame: np.ndarray, score_threshold: float = 0.5) -> List[DetectionRegion]:
        h, w = frame.shape[:2]
        with self._lock:
            self._detector.setInputSize((w, h))
            self._detector.setScoreThreshold(score_threshold)
            _, faces = self._detector.detect(frame)
        if faces is None:
            return []
        return [r for r in regions_from_numpy(faces) if r.confidence >= score_threshold]


def resolve_model_path(cfg: DetectionConfig, cache_dir: Optional[str] = None) -> str:
    """
    Resolve the configured model file against the model source.

    Local bases are joined directly. Remote bases are fetched once into
    `cache_dir` and the cached copy is returned.
    """
    base = cfg.model_base
    if base is None:
        if cfg.backend != "haar":
            raise ValueError(f"detection.model_base is required for backend '{cfg.backend}'")
        base = cv2.data.haarcascades

    if not base.startswith(("http://", "https://")):
        return os.path.join(base, cfg.model_file)

    cache_dir = cache_dir or MODEL_CACHE_DIR
    local_path = os.path.join(cache_dir, cfg.model_file)
    if os.path.isfile(local_path):
        return local_path

    url = base.rstrip("/") + "/" + cfg.model_file
    logging.info(f"Downloading model weights: {url}")
    response = httpx.get(url, follow_redirects=True, timeout=30.0)
    response.raise_for_status()

    os.makedirs(cache_dir, exist_ok=True)
    tmp_path = local_path + ".part"
    with open(tmp_path, "wb") as f:
        f.write(response.content)
    os.replace(tmp_path, local_path)
    return local_path


def create_detector_from_config(cfg: DetectionConfig) -> Detector:
    """
    Factory function to build a face detector from DetectionConfig.

    Raises on any failure so the caller can retry.
    """
    model_path = resolve_model_path(cfg)
    if cfg.backend == "haar":
        detector: Detector = HaarFaceDetector(model_path, min_face_px=cfg.min_face_px)
    elif cfg.backend == "yunet":
        detector = YuNetFaceDetector(model_path, score_threshold=cfg.score_threshold)
    else:
        raise ValueError(f"Unknown detection backend: {cfg.backend}")
    logging.info(f"Face detector created: backend={cfg.backend}, model={model_path}")
    return detector
