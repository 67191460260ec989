"""
Tests for one-time model loading with retry/backoff.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from detection.loader import ResourceLoader
from models.config import LoaderConfig
from models.errors import ResourceLoadError
from models.model_state import ModelState, ModelStatus


class FlakyFactory:
    """Fails a given number of times, then returns a detector."""

    def __init__(self, failures):
        self.failures = failures
        self.calls = 0
        self.detector = object()

    def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise OSError(f"model fetch failed (call {self.calls})")
        return self.detector


def _load(factory, config=None, on_ready=None):
    state = ModelState()
    loader = ResourceLoader(state, factory, config or LoaderConfig(), on_ready=on_ready)

    async def _go():
        with patch("detection.loader.asyncio.sleep", new=AsyncMock()) as sleep:
            status = await loader.load()
        return status, sleep

    status, sleep = asyncio.run(_go())
    return state, status, sleep


class TestResourceLoader:
    def test_first_attempt_succeeds(self):
        factory = FlakyFactory(failures=0)
        on_ready = AsyncMock()

        state, status, sleep = _load(factory, on_ready=on_ready)

        assert status is ModelStatus.READY
        assert state.detector is factory.detector
        assert factory.calls == 1
        on_ready.assert_awaited_once()
        sleep.assert_not_awaited()

    def test_recovers_after_retries(self):
        factory = FlakyFactory(failures=2)
        on_ready = AsyncMock()

        state, status, sleep = _load(factory, LoaderConfig(base_delay_ms=1000), on_ready)

        assert status is ModelStatus.READY
        assert factory.calls == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]
        on_ready.assert_awaited_once()

    def test_fails_after_max_attempts(self):
        factory = FlakyFactory(failures=99)
        on_ready = AsyncMock()

        state, status, sleep = _load(factory, LoaderConfig(max_attempts=3, base_delay_ms=500), on_ready)

        assert status is ModelStatus.FAILED
        assert factory.calls == 3
        # no wait after the final attempt
        assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]
        on_ready.assert_not_awaited()
        assert isinstance(state.error, ResourceLoadError)
        assert state.error.attempts == 3
        assert isinstance(state.error.__cause__, OSError)
        assert state.detector is None

    def test_concurrent_loads_share_one_attempt(self):
        factory = FlakyFactory(failures=0)
        state = ModelState()
        loader = ResourceLoader(state, factory, LoaderConfig())

        async def _go():
            return await asyncio.gather(loader.load(), loader.load())

        assert asyncio.run(_go()) == [ModelStatus.READY, ModelStatus.READY]
        assert factory.calls == 1

    def test_settled_failure_is_not_retried(self):
        factory = FlakyFactory(failures=99)
        state = ModelState()
        loader = ResourceLoader(state, factory, LoaderConfig(max_attempts=2, base_delay_ms=0))

        async def _go():
            first = await loader.load()
            second = await loader.load()
            return first, second

        assert asyncio.run(_go()) == (ModelStatus.FAILED, ModelStatus.FAILED)
        assert factory.calls == 2

    @pytest.mark.parametrize("attempts", [1, 5])
    def test_attempt_count_configurable(self, attempts):
        factory = FlakyFactory(failures=99)

        _, status, sleep = _load(factory, LoaderConfig(max_attempts=attempts, base_delay_ms=100))

        assert status is ModelStatus.FAILED
        assert factory.calls == attempts
        assert sleep.await_count == attempts - 1
