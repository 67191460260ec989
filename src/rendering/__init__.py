"""
Rendering layer: the visible mutation applied to detected faces.
"""

from .blur import BlurRenderer, RenderedImage, encode_data_url

__all__ = [
    "BlurRenderer",
    "RenderedImage",
    "encode_data_url",
]
