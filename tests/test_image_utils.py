"""
Tests for image decoding utilities.
"""

import base64
import io

import numpy as np
import pytest
from PIL import Image

from faceguard.exceptions import ImageDecodingError, ValidationError
from faceguard.utils.image_utils import (
    decode_base64_image,
    image_from_base64,
    load_rgb_array,
    strip_data_url
)


def encode_image(mode: str = "RGB", size=(8, 6), fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color=0).save(buffer, format=fmt)
    return buffer.getvalue()


class TestImageUtils:
    """Test cases for image utility functions."""

    def test_strip_data_url(self):
        assert strip_data_url("data:image/jpeg;base64,QUJD") == "QUJD"
        assert strip_data_url("data:image/png;base64,QUJD") == "QUJD"
        assert strip_data_url("QUJD") == "QUJD"

    def test_decode_raw_and_data_url(self):
        payload = base64.b64encode(b"frame-bytes").decode()

        assert decode_base64_image(payload) == b"frame-bytes"
        assert decode_base64_image(f"data:image/jpeg;base64,{payload}") == b"frame-bytes"

    def test_decode_invalid_base64(self):
        with pytest.raises(ImageDecodingError, match="not valid base64"):
            decode_base64_image("not base64 at all!")

    def test_decode_empty_payload(self):
        with pytest.raises(ImageDecodingError, match="empty"):
            decode_base64_image("data:image/jpeg;base64,")

    def test_load_rgb_array(self):
        array = load_rgb_array(encode_image(size=(8, 6)))

        assert array.shape == (6, 8, 3)
        assert array.dtype == np.uint8

    def test_grayscale_is_converted_to_rgb(self):
        array = load_rgb_array(encode_image(mode="L", fmt="JPEG"))

        assert array.shape[-1] == 3

    def test_unreadable_image(self):
        with pytest.raises(ImageDecodingError, match="Could not read image"):
            load_rgb_array(b"definitely not an image")

    def test_image_from_base64(self):
        payload = base64.b64encode(encode_image(fmt="JPEG")).decode()

        array = image_from_base64(f"data:image/jpeg;base64,{payload}")

        assert array.shape == (6, 8, 3)

    def test_decoding_error_is_a_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            image_from_base64("%%%")

        assert exc_info.value.fields == ["image"]

    def test_image_above_pixel_cap_is_rejected(self):
        with pytest.raises(ImageDecodingError, match="too large"):
            load_rgb_array(encode_image(mode="L", size=(64, 64)), max_pixels=1000)

    def test_oversized_frame_is_rejected_before_decoding(self):
        payload = base64.b64encode(encode_image(mode="1", size=(5000, 5000))).decode()

        with pytest.raises(ImageDecodingError, match="too large"):
            image_from_base64(payload)

    def test_decompression_bomb_is_a_decoding_error(self, monkeypatch):
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 100)

        with pytest.raises(ImageDecodingError, match="too large") as exc_info:
            load_rgb_array(encode_image(mode="1", size=(64, 64)), max_pixels=10_000)

        assert exc_info.value.fields == ["image"]
