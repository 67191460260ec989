"""
Tests for domain models.
"""

import gc

import numpy as np
import pytest

from models.config import Config, BlurConfig, DiscoveryConfig, LoaderConfig, DEFAULT_SKIP_PATTERNS
from models.detection import BoundingBox, DetectionRegion, regions_from_numpy
from models.element import ElementStatus, StatusTable
from models.errors import FetchTimeoutError, AcquisitionError, ResourceLoadError
from models.image import AcquiredImage
from models.model_state import ModelState, ModelStatus


class _Element:
    """Weak-referenceable stand-in for a page element."""


class TestBoundingBox:
    def test_properties(self):
        bbox = BoundingBox(x1=10, y1=20, x2=110, y2=70)
        assert bbox.width == 100
        assert bbox.height == 50
        assert bbox.area == 5000
        assert not bbox.is_empty

    def test_expand(self):
        bbox = BoundingBox(10, 10, 20, 20).expand(5)
        assert bbox == BoundingBox(5, 5, 25, 25)

    def test_clamp_inside_is_unchanged(self):
        assert BoundingBox(2, 3, 8, 9).clamp(10, 10) == BoundingBox(2, 3, 8, 9)

    def test_clamp_clips_to_bounds(self):
        assert BoundingBox(-5, -5, 20, 20).clamp(10, 12) == BoundingBox(0, 0, 10, 12)

    def test_clamp_snaps_outward(self):
        assert BoundingBox(1.4, 1.6, 3.2, 3.7).clamp(10, 10).as_int_tuple() == (1, 1, 4, 4)

    def test_clamp_outside_image_is_empty(self):
        assert BoundingBox(50, 50, 60, 60).clamp(10, 10).is_empty
        assert BoundingBox(-30, -30, -10, -10).clamp(10, 10).is_empty

    def test_from_xywh(self):
        assert BoundingBox.from_xywh(10, 20, 30, 40) == BoundingBox(10, 20, 40, 60)


class TestDetectionRegion:
    def test_padded_box_is_clamped(self):
        region = DetectionRegion(x=5, y=5, width=20, height=20)
        assert region.padded_box(10, 100, 100) == BoundingBox(0, 0, 35, 35)

    def test_padded_box_at_far_edge(self):
        region = DetectionRegion(x=90, y=40, width=10, height=10)
        assert region.padded_box(10, 100, 50) == BoundingBox(80, 30, 100, 50)

    def test_from_yunet_row(self):
        row = np.array([10, 20, 30, 40] + [0] * 10 + [0.87], dtype=np.float32)
        region = DetectionRegion.from_numpy_row(row)
        assert region.width == 30
        assert region.confidence == pytest.approx(0.87)

    def test_from_plain_row_defaults_confidence(self):
        region = DetectionRegion.from_numpy_row(np.array([1, 2, 3, 4]))
        assert region.confidence == 1.0

    def test_regions_from_empty(self):
        assert regions_from_numpy(None) == []
        assert regions_from_numpy(np.zeros((0, 15))) == []


class TestStatusTable:
    def test_unseen_by_default(self):
        table = StatusTable()
        el = _Element()
        assert table.get(el) is ElementStatus.UNSEEN
        assert table.is_untouched(el)

    def test_advance_forward(self):
        table = StatusTable()
        el = _Element()
        assert table.advance(el, ElementStatus.OBSERVED)
        assert table.advance(el, ElementStatus.DONE)
        assert table.get(el) is ElementStatus.DONE

    def test_never_regresses(self):
        table = StatusTable()
        el = _Element()
        table.advance(el, ElementStatus.PROCESSING)
        assert table.advance(el, ElementStatus.OBSERVED) is False
        assert table.advance(el, ElementStatus.PROCESSING) is False
        assert table.get(el) is ElementStatus.PROCESSING

    def test_done_is_terminal(self):
        assert ElementStatus.DONE.is_terminal
        assert not ElementStatus.PROCESSING.is_terminal

    def test_counts(self):
        table = StatusTable()
        a, b, c = _Element(), _Element(), _Element()
        table.advance(a, ElementStatus.OBSERVED)
        table.advance(b, ElementStatus.DONE)
        table.advance(c, ElementStatus.DONE)
        assert table.counts() == {"observed": 1, "queued": 0, "processing": 0, "done": 2}

    def test_entries_are_weak(self):
        table = StatusTable()
        el = _Element()
        table.advance(el, ElementStatus.DONE)
        assert len(table) == 1
        del el
        gc.collect()
        assert len(table) == 0


class TestModelState:
    def test_load_success(self):
        state = ModelState()
        assert state.status is ModelStatus.UNLOADED
        state.begin_loading()
        detector = object()
        state.mark_ready(detector)
        assert state.is_ready
        assert state.detector is detector

    def test_load_failure(self):
        state = ModelState()
        state.begin_loading()
        error = ResourceLoadError("gone", attempts=3)
        state.mark_failed(error)
        assert state.is_failed
        assert state.error is error
        assert state.detector is None

    def test_cannot_skip_loading(self):
        with pytest.raises(ValueError):
            ModelState().mark_ready(object())

    def test_failed_is_permanent(self):
        state = ModelState()
        state.begin_loading()
        state.mark_failed(ResourceLoadError("gone"))
        with pytest.raises(ValueError):
            state.begin_loading()


class TestAcquiredImage:
    def test_dimensions(self):
        image = AcquiredImage(np.zeros((48, 64, 3), dtype=np.uint8))
        assert (image.width, image.height) == (64, 48)
        assert not image.is_empty

    def test_zero_size_is_empty(self):
        assert AcquiredImage(np.zeros((0, 0, 3), dtype=np.uint8)).is_empty

    def test_release_is_idempotent(self):
        buffer = memoryview(b"encoded bytes")
        image = AcquiredImage(np.zeros((4, 4, 3), dtype=np.uint8), buffer)
        image.release()
        image.release()
        assert image.release_count == 1
        assert image.released
        with pytest.raises(ValueError):
            buffer.tobytes()
        with pytest.raises(RuntimeError):
            image.bitmap

    def test_context_manager_releases(self):
        with AcquiredImage(np.zeros((4, 4, 3), dtype=np.uint8)) as image:
            assert not image.released
        assert image.released


class TestErrors:
    def test_timeout_is_acquisition_and_timeout(self):
        err = FetchTimeoutError("slow", "https://example.com/a.jpg")
        assert isinstance(err, AcquisitionError)
        assert isinstance(err, TimeoutError)
        assert err.locator == "https://example.com/a.jpg"


class TestConfig:
    def test_defaults(self):
        config = Config()
        assert config.blur.intensity_px == 15.0
        assert config.blur.padding_px == 10
        assert config.scheduler.max_concurrent == 3
        assert config.loader.max_attempts == 3
        assert config.acquisition.timeout_s == 15.0
        assert config.discovery.debounce_s == 0.25
        assert config.discovery.navigation_settle_s == 0.5
        assert config.skip_patterns == DEFAULT_SKIP_PATTERNS

    def test_from_dict_partial(self):
        config = Config.from_dict({"blur": {"padding_px": 4}, "scheduler": {"max_concurrent": 1}})
        assert config.blur.padding_px == 4
        assert config.blur.intensity_px == 15.0
        assert config.scheduler.max_concurrent == 1
        assert config.detection.backend == "haar"

    def test_from_valid_config(self, valid_config):
        config = Config.from_dict(valid_config)
        assert config.log_level == "INFO"
        assert config.detection.score_threshold == 0.5
        assert len(config.discovery.selectors) > 0

    def test_to_dict_round_trip(self, valid_config):
        config = Config.from_dict(valid_config)
        assert Config.from_dict(config.to_dict()) == config

    def test_section_conversions(self):
        assert LoaderConfig(base_delay_ms=250).base_delay_s == 0.25
        assert BlurConfig.from_dict({}).output_format == "png"
        assert DiscoveryConfig.from_dict({"selectors": []}).selectors  # empty falls back to defaults
