"""Utilities for decoding captured frames."""

from .image_utils import (
    decode_base64_image,
    image_from_base64,
    load_rgb_array,
    strip_data_url,
)

__all__ = [
    "decode_base64_image",
    "image_from_base64",
    "load_rgb_array",
    "strip_data_url",
]
