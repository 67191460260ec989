"""
Image acquisition: fetch raw bytes, decode in-process.

Fetching the bytes directly and decoding them ourselves means the bitmap
never depends on the page's own (possibly cross-origin) copy of the image,
so every pixel can be read back and re-encoded freely.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from typing import Optional
from urllib.parse import unquote_to_bytes

import cv2
import httpx
import numpy as np

from models.config import AcquisitionConfig
from models.errors import DecodeError, FetchError, FetchTimeoutError
from models.image import AcquiredImage


def decode_image(buffer: memoryview, locator: str = "") -> np.ndarray:
    """
    Decode an encoded image buffer into a BGR bitmap.

    Raises:
        DecodeError: If the bytes are not an image or the image has no area.
    """
    encoded = np.frombuffer(buffer, dtype=np.uint8)
    try:
        bitmap = cv2.imdecode(encoded, cv2.IMREAD_COLOR) if encoded.size else None
    except cv2.error as e:
        raise DecodeError(f"Failed to decode image: {e}", locator) from None
    finally:
        # the buffer cannot be released while an array still views it
        del encoded

    if bitmap is None:
        raise DecodeError("Bytes did not decode to an image", locator)
    if bitmap.shape[0] == 0 or bitmap.shape[1] == 0:
        raise DecodeError(f"Decoded image has zero size {bitmap.shape[1]}x{bitmap.shape[0]}", locator)
    return bitmap


def read_data_url(locator: str) -> bytes:
    """Payload bytes of a data: URL."""
    header, sep, payload = locator.partition(",")
    if not sep:
        raise FetchError("Malformed data URL", locator)
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            raise FetchError(f"Malformed base64 data URL: {e}", locator) from None
    return unquote_to_bytes(payload)


class ImageAcquirer:
    """
    Fetches and decodes one image per call under a wall-clock timeout.

    The whole request (connect, headers and body) shares one budget; when it
    runs out the request is cancelled and FetchTimeoutError is raised.

    Example:
        async with ImageAcquirer(AcquisitionConfig()) as acquirer:
            with await acquirer.acquire(url) as image:
                process(image.bitmap)
    """

    def __init__(self, config: AcquisitionConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._owns_client = client is None
        if client is None:
            headers = {"User-Agent": config.user_agent} if config.user_agent else None
            client = httpx.AsyncClient(
                headers=headers,
                follow_redirects=config.follow_redirects,
                timeout=httpx.Timeout(config.timeout_s),
            )
        self._client = client

    async def acquire(self, locator: str) -> AcquiredImage:
        """
        Fetch and decode the image at `locator`.

        Raises:
            FetchError: Network failure or non-success response.
            FetchTimeoutError: The fetch exceeded the timeout budget.
            DecodeError: The bytes are not a usable image.
        """
        data = await self._fetch(locator)
        buffer = memoryview(data)
        try:
            bitmap = decode_image(buffer, locator)
        except BaseException:
            buffer.release()
            raise
        return AcquiredImage(bitmap, buffer, locator)

    async def _fetch(self, locator: str) -> bytes:
        if locator.startswith("data:"):
            return read_data_url(locator)

        try:
            response = await asyncio.wait_for(self._client.get(locator), timeout=self.config.timeout_s)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise FetchTimeoutError(
                f"Fetch exceeded {self.config.timeout_ms} ms", locator
            ) from None
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchError(f"Failed to fetch image: {e}", locator) from e

        if not response.is_success:
            raise FetchError(
                f"Failed to fetch image: {response.status_code} {response.reason_phrase}",
                locator,
                status_code=response.status_code,
            )
        logging.debug(f"Fetched {len(response.content)} bytes from {locator}")
        return response.content

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ImageAcquirer":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
