"""
Acquisition layer: turns an image locator into a decoded, owned bitmap.
"""

from .acquirer import ImageAcquirer, decode_image, read_data_url

__all__ = [
    "ImageAcquirer",
    "decode_image",
    "read_data_url",
]
