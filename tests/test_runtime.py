"""
End-to-end tests: document -> discovery -> scheduler -> pipeline -> replaced source.
"""

import asyncio
import base64

import cv2
import httpx
import numpy as np
import pytest

from acquisition.acquirer import ImageAcquirer
from detection.base import Detector
from main import run_batch
from models.config import Config, LoaderConfig
from models.detection import DetectionRegion
from models.element import ElementStatus
from models.model_state import ModelStatus
from observation.memory import MemoryDocument, MemoryElement
from runtime.context import build_runtime

FACE = "https://i.ytimg.com/vi/face/hqdefault.jpg"
PLAIN = "https://i.ytimg.com/vi/plain/hqdefault.jpg"
MISSING = "https://i.ytimg.com/vi/missing/hqdefault.jpg"
PREVIEW = "https://i.ytimg.com/an_webp/face/mqdefault_6s.webp"
OFFSCREEN = "https://i.ytimg.com/vi/offscreen/hqdefault.jpg"


class RedFaceDetector(Detector):
    """Reports one face for any image whose top-left pixel is pure red."""

    def detect(self, frame, score_threshold=0.5):
        b, g, r = frame[0, 0]
        if (b, g, r) == (0, 0, 255):
            return [DetectionRegion(8, 8, 24, 24, confidence=0.99)]
        return []


class ImageServer:
    """httpx handler serving red images for face URLs and gray ones otherwise."""

    def __init__(self, png_bytes):
        self.face = png_bytes(width=64, height=48, color=(0, 0, 255))
        self.plain = png_bytes(width=64, height=48, color=(128, 128, 128))
        self.requests = []

    def __call__(self, request):
        url = str(request.url)
        self.requests.append(url)
        if "missing" in url:
            return httpx.Response(404)
        body = self.face if ("face" in url or "offscreen" in url) else self.plain
        return httpx.Response(200, content=body, headers={"Content-Type": "image/png"})


def _config():
    config = Config()
    config.discovery.debounce_ms = 20
    config.discovery.navigation_settle_ms = 20
    config.loader = LoaderConfig(max_attempts=2, base_delay_ms=0)
    return config


async def _settle(ctx):
    await asyncio.sleep(0.02)
    assert await ctx.scheduler.join(timeout=5)


class TestRuntime:
    def test_blurs_visible_face_thumbnails(self, png_bytes):
        server = ImageServer(png_bytes)
        doc = MemoryDocument("https://www.youtube.com/")
        face, plain, missing, preview = (
            MemoryElement(FACE, visible=True),
            MemoryElement(PLAIN, visible=True),
            MemoryElement(MISSING, visible=True),
            MemoryElement(PREVIEW, visible=True),
        )
        offscreen = MemoryElement(OFFSCREEN)
        doc.elements.extend([face, plain, missing, preview, offscreen])

        async def _go():
            client = httpx.AsyncClient(transport=httpx.MockTransport(server))
            ctx = build_runtime(
                _config(), doc,
                detector_factory=RedFaceDetector,
                acquirer=ImageAcquirer(_config().acquisition, client=client),
            )
            status = await ctx.start()
            await _settle(ctx)
            before_scroll = offscreen.src
            doc.scroll_into_view(offscreen)
            await _settle(ctx)
            stats = await ctx.stop(timeout=5)
            await client.aclose()
            return ctx, status, before_scroll, stats

        ctx, status, before_scroll, stats = asyncio.run(_go())

        assert status is ModelStatus.READY
        assert face.src.startswith("data:image/png;base64,")
        assert plain.src == PLAIN
        assert missing.src == MISSING
        assert preview.src == PREVIEW
        assert before_scroll == OFFSCREEN
        assert offscreen.src.startswith("data:image/png;base64,")
        assert PREVIEW not in server.requests
        assert all(ctx.statuses.get(el) is ElementStatus.DONE for el in doc.elements)
        assert stats["completed"] == 5
        assert stats["faces_blurred"] == 2
        assert stats["outcomes"] == {"blurred": 2, "no_faces": 1, "fetch_failed": 1, "skipped": 1}
        assert stats["peak_active"] <= 3

    def test_blurred_output_keeps_size(self, png_bytes):
        server = ImageServer(png_bytes)
        doc = MemoryDocument()
        face = MemoryElement(FACE, visible=True)
        doc.elements.append(face)

        async def _go():
            client = httpx.AsyncClient(transport=httpx.MockTransport(server))
            ctx = build_runtime(
                _config(), doc,
                detector_factory=RedFaceDetector,
                acquirer=ImageAcquirer(_config().acquisition, client=client),
            )
            await ctx.start()
            await _settle(ctx)
            await ctx.stop()
            await client.aclose()

        asyncio.run(_go())

        payload = face.src.partition(",")[2]
        decoded = cv2.imdecode(np.frombuffer(base64.b64decode(payload), dtype=np.uint8), cv2.IMREAD_COLOR)
        assert decoded.shape == (48, 64, 3)

    def test_thumbnails_added_later_are_processed(self, png_bytes):
        server = ImageServer(png_bytes)
        doc = MemoryDocument()
        late = MemoryElement(FACE, visible=True)

        async def _go():
            client = httpx.AsyncClient(transport=httpx.MockTransport(server))
            ctx = build_runtime(
                _config(), doc,
                detector_factory=RedFaceDetector,
                acquirer=ImageAcquirer(_config().acquisition, client=client),
            )
            await ctx.start()
            doc.add(late)
            await asyncio.sleep(0.06)
            await _settle(ctx)
            await ctx.stop()
            await client.aclose()

        asyncio.run(_go())

        assert late.was_mutated

    def test_model_failure_disables_everything(self, png_bytes):
        server = ImageServer(png_bytes)
        doc = MemoryDocument()
        el = MemoryElement(FACE, visible=True)
        doc.elements.append(el)
        attempts = []

        def broken_factory():
            attempts.append(1)
            raise OSError("weights unavailable")

        async def _go():
            client = httpx.AsyncClient(transport=httpx.MockTransport(server))
            ctx = build_runtime(
                _config(), doc,
                detector_factory=broken_factory,
                acquirer=ImageAcquirer(_config().acquisition, client=client),
            )
            status = await ctx.start()
            doc.add(MemoryElement(PLAIN, visible=True))
            await asyncio.sleep(0.05)
            stats = await ctx.stop()
            await client.aclose()
            return status, stats

        status, stats = asyncio.run(_go())

        assert status is ModelStatus.FAILED
        assert len(attempts) == 2
        assert doc.query_count == 0
        assert server.requests == []
        assert el.src == FACE
        assert stats["model"] == "failed"
        assert stats["completed"] == 0


    def test_hung_fetch_times_out_and_frees_the_only_slot(self, png_bytes):
        server = ImageServer(png_bytes)
        hung = MemoryElement("https://i.ytimg.com/vi/hang/hqdefault.jpg", visible=True)
        face = MemoryElement(FACE, visible=True)
        doc = MemoryDocument()
        doc.elements.extend([hung, face])
        config = _config()
        config.scheduler.max_concurrent = 1
        config.acquisition.timeout_ms = 100

        async def handler(request):
            if "hang" in str(request.url):
                await asyncio.sleep(5)
            return server(request)

        async def _go():
            client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            ctx = build_runtime(
                config, doc,
                detector_factory=RedFaceDetector,
                acquirer=ImageAcquirer(config.acquisition, client=client),
            )
            await ctx.start()
            await _settle(ctx)
            stats = await ctx.stop(timeout=5)
            await client.aclose()
            return ctx, stats

        ctx, stats = asyncio.run(_go())

        assert hung.src.endswith("/hang/hqdefault.jpg")
        assert not hung.was_mutated
        assert face.src.startswith("data:image/png;base64,")
        assert ctx.statuses.get(hung) is ElementStatus.DONE
        assert ctx.statuses.get(face) is ElementStatus.DONE
        assert stats["peak_active"] == 1
        assert stats["outcomes"] == {"timed_out": 1, "blurred": 1}

class TestBatchMode:
    def test_writes_only_blurred_images(self, tmp_path, png_bytes):
        payload = base64.b64encode(png_bytes(width=32, height=32, color=(90, 90, 90))).decode("ascii")
        config = Config()
        config.loader = LoaderConfig(max_attempts=1, base_delay_ms=0)

        stats = asyncio.run(run_batch(config, [f"data:image/png;base64,{payload}"], str(tmp_path / "out")))

        assert stats["model"] == "ready"
        assert stats["completed"] == 1
        assert stats["outcomes"] == {"no_faces": 1}
        assert list((tmp_path / "out").iterdir()) == []
