"""
Face Blur - Detection Module

Face detector interface, OpenCV backends and the one-time model loader.
"""

from .base import Detector
from .face import HaarFaceDetector, YuNetFaceDetector, create_detector_from_config, resolve_model_path
from .loader import ResourceLoader

__all__ = [
    'Detector',
    'HaarFaceDetector',
    'YuNetFaceDetector',
    'create_detector_from_config',
    'resolve_model_path',
    'ResourceLoader',
]
