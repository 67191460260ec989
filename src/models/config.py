"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DEFAULT_SELECTORS = [
    "img.yt-core-image",
    "ytd-thumbnail img",
    "ytd-rich-grid-media img.yt-img-shadow",
    "ytd-compact-video-renderer img",
    "ytd-grid-video-renderer img",
    "ytd-reel-item-renderer img",
]

DEFAULT_NAVIGATION_EVENTS = ["yt-navigate-finish", "popstate"]

# Animated previews and video previews are never still images
DEFAULT_SKIP_PATTERNS = ["/an_webp/", ".mp4", ".webm"]


@dataclass
class BlurConfig:
    """Obscuring mutation applied to each detected face."""
    intensity_px: float = 15.0
    padding_px: int = 10
    output_format: str = "png"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BlurConfig":
        return cls(
            intensity_px=d.get("intensity_px", 15.0),
            padding_px=d.get("padding_px", 10),
            output_format=d.get("output_format", "png"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intensity_px": self.intensity_px,
            "padding_px": self.padding_px,
            "output_format": self.output_format,
        }


@dataclass
class DiscoveryConfig:
    """Candidate discovery and triggering."""
    selectors: List[str] = field(default_factory=lambda: list(DEFAULT_SELECTORS))
    debounce_ms: int = 250
    navigation_settle_ms: int = 500
    root_margin_px: int = 200
    threshold: float = 0.01
    navigation_events: List[str] = field(default_factory=lambda: list(DEFAULT_NAVIGATION_EVENTS))

    @property
    def debounce_s(self) -> float:
        return self.debounce_ms / 1000.0

    @property
    def navigation_settle_s(self) -> float:
        return self.navigation_settle_ms / 1000.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DiscoveryConfig":
        return cls(
            selectors=d.get("selectors") or list(DEFAULT_SELECTORS),
            debounce_ms=d.get("debounce_ms", 250),
            navigation_settle_ms=d.get("navigation_settle_ms", 500),
            root_margin_px=d.get("root_margin_px", 200),
            threshold=d.get("threshold", 0.01),
            navigation_events=d.get("navigation_events") or list(DEFAULT_NAVIGATION_EVENTS),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "selectors": self.selectors,
            "debounce_ms": self.debounce_ms,
            "navigation_settle_ms": self.navigation_settle_ms,
            "root_margin_px": self.root_margin_px,
            "threshold": self.threshold,
            "navigation_events": self.navigation_events,
        }


@dataclass
class DetectionConfig:
    """
    Face detector configuration.

    model_base is the location the model weights are resolved against;
    None means OpenCV's bundled cascade directory (haar backend only).
    """
    backend: str = "haar"
    model_base: Optional[str] = None
    model_file: str = "haarcascade_frontalface_default.xml"
    score_threshold: float = 0.5
    min_face_px: int = 24

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetectionConfig":
        return cls(
            backend=d.get("backend", "haar"),
            model_base=d.get("model_base"),
            model_file=d.get("model_file", "haarcascade_frontalface_default.xml"),
            score_threshold=d.get("score_threshold", 0.5),
            min_face_px=d.get("min_face_px", 24),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "backend": self.backend,
            "model_file": self.model_file,
            "score_threshold": self.score_threshold,
            "min_face_px": self.min_face_px,
        }
        if self.model_base is not None:
            d["model_base"] = self.model_base
        return d


@dataclass
class LoaderConfig:
    """Model load retry policy."""
    max_attempts: int = 3
    base_delay_ms: int = 1000

    @property
    def base_delay_s(self) -> float:
        return self.base_delay_ms / 1000.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LoaderConfig":
        return cls(
            max_attempts=d.get("max_attempts", 3),
            base_delay_ms=d.get("base_delay_ms", 1000),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "base_delay_ms": self.base_delay_ms,
        }


@dataclass
class AcquisitionConfig:
    """Per-image fetch settings."""
    timeout_ms: int = 15000
    user_agent: Optional[str] = None
    follow_redirects: bool = True

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "AcquisitionConfig":
        return cls(
            timeout_ms=d.get("timeout_ms", 15000),
            user_agent=d.get("user_agent"),
            follow_redirects=d.get("follow_redirects", True),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "timeout_ms": self.timeout_ms,
            "follow_redirects": self.follow_redirects,
        }
        if self.user_agent:
            d["user_agent"] = self.user_agent
        return d


@dataclass
class SchedulerConfig:
    """Concurrency ceiling for pipeline runs."""
    max_concurrent: int = 3

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SchedulerConfig":
        return cls(max_concurrent=d.get("max_concurrent", 3))

    def to_dict(self) -> Dict[str, Any]:
        return {"max_concurrent": self.max_concurrent}


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    """
    blur: BlurConfig = field(default_factory=BlurConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    loader: LoaderConfig = field(default_factory=LoaderConfig)
    acquisition: AcquisitionConfig = field(default_factory=AcquisitionConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    skip_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_SKIP_PATTERNS))
    log_path: str = "logs/face_blur.log"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            blur=BlurConfig.from_dict(d.get("blur") or {}),
            discovery=DiscoveryConfig.from_dict(d.get("discovery") or {}),
            detection=DetectionConfig.from_dict(d.get("detection") or {}),
            loader=LoaderConfig.from_dict(d.get("loader") or {}),
            acquisition=AcquisitionConfig.from_dict(d.get("acquisition") or {}),
            scheduler=SchedulerConfig.from_dict(d.get("scheduler") or {}),
            skip_patterns=d.get("skip_patterns", list(DEFAULT_SKIP_PATTERNS)),
            log_path=d.get("log_path", "logs/face_blur.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary (for saving or passing to existing code)."""
        return {
            "blur": self.blur.to_dict(),
            "discovery": self.discovery.to_dict(),
            "detection": self.detection.to_dict(),
            "loader": self.loader.to_dict(),
            "acquisition": self.acquisition.to_dict(),
            "scheduler": self.scheduler.to_dict(),
            "skip_patterns": self.skip_patterns,
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
