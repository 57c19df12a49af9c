"""
Image decoding utilities for face capture payloads.

Captured frames arrive as base64 strings, either raw or wrapped in a data URL
(`data:image/jpeg;base64,...`) as produced by browser canvas capture.
"""

import base64
import binascii
import io
import logging
import re

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..exceptions import ImageDecodingError

logger = logging.getLogger(__name__)

_DATA_URL_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")

# Largest accepted frame, checked against the header before decoding
MAX_IMAGE_PIXELS = 4096 * 4096


def strip_data_url(image: str) -> str:
    """Remove a `data:image/...;base64,` prefix if present."""
    return _DATA_URL_PREFIX.sub("", image.strip(), count=1)


def decode_base64_image(image: str) -> bytes:
    """
    Decode a base64 image payload to raw bytes.

    Raises:
        ImageDecodingError: If the payload is not valid base64 or is empty
    """
    try:
        data = base64.b64decode(strip_data_url(image), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodingError(f"Image is not valid base64: {e}")

    if not data:
        raise ImageDecodingError("Decoded image is empty")
    return data


def load_rgb_array(image_bytes: bytes, max_pixels: int = MAX_IMAGE_PIXELS) -> np.ndarray:
    """
    Load encoded image bytes (JPEG, PNG, ...) as an RGB uint8 array.

    The declared dimensions are checked before any pixel data is decoded.

    Raises:
        ImageDecodingError: If the bytes are not a readable image or the
            image has more than `max_pixels` pixels
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            width, height = img.size
            if width * height > max_pixels:
                raise ImageDecodingError(
                    f"Image is too large: {width}x{height} exceeds {max_pixels} pixels"
                )
            rgb = img.convert("RGB")
            array = np.array(rgb, dtype=np.uint8)
    except Image.DecompressionBombError as e:
        raise ImageDecodingError(f"Image is too large: {e}")
    except (UnidentifiedImageError, OSError) as e:
        raise ImageDecodingError(f"Could not read image: {e}")

    logger.debug(f"Decoded image with shape {array.shape}")
    return array


def image_from_base64(image: str) -> np.ndarray:
    """Decode a base64 (or data URL) image straight to an RGB array."""
    return load_rgb_array(decode_base64_image(image))
