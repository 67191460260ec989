"""
Pytest configuration and shared fixtures.
"""

import os
import sys

import cv2
import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
blur:
  intensity_px: 15
  padding_px: 10

detection:
  backend: "haar"
  model_file: "haarcascade_frontalface_default.xml"
  score_threshold: 0.5

scheduler:
  max_concurrent: 3

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "blur": {
            "intensity_px": 15,
            "padding_px": 10,
            "output_format": "png",
        },
        "discovery": {
            "debounce_ms": 250,
            "navigation_settle_ms": 500,
            "root_margin_px": 200,
            "threshold": 0.01,
        },
        "detection": {
            "backend": "haar",
            "model_file": "haarcascade_frontalface_default.xml",
            "score_threshold": 0.5,
        },
        "loader": {
            "max_attempts": 3,
            "base_delay_ms": 1000,
        },
        "acquisition": {
            "timeout_ms": 15000,
        },
        "scheduler": {
            "max_concurrent": 3,
        },
        "skip_patterns": ["/an_webp/", ".mp4", ".webm"],
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }


@pytest.fixture
def make_bitmap():
    """Build a BGR test image filled with one color, or with noise when color is None."""
    def _make(width=64, height=48, color=(0, 0, 0), seed=0):
        if color is None:
            rng = np.random.default_rng(seed)
            return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
        bitmap = np.zeros((height, width, 3), dtype=np.uint8)
        bitmap[:] = color
        return bitmap
    return _make


@pytest.fixture
def png_bytes(make_bitmap):
    """Encode a test image as PNG bytes."""
    def _encode(width=64, height=48, color=(0, 0, 0)):
        ok, encoded = cv2.imencode(".png", make_bitmap(width, height, color))
        assert ok
        return encoded.tobytes()
    return _encode
