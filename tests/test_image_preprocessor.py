"""
Tests for photo preprocessing before it reaches the model.
"""

from __future__ import annotations

import base64
import io

import pytest
from PIL import Image

from skinconsult.application.exceptions import ImagePreprocessingError
from skinconsult.infrastructure.imaging.pillow_preprocessor import PillowImagePreprocessor, decode_image_payload


def _png_bytes(width: int, height: int, mode: str = "RGBA") -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color=(200, 150, 120, 255) if mode == "RGBA" else 128).save(buffer, format="PNG")
    return buffer.getvalue()


def test_large_photo_is_resized_to_jpeg():
    """Longest side is capped and the output is always JPEG."""
    processed = PillowImagePreprocessor().preprocess(_png_bytes(2048, 1024))
    assert processed.mime_type == "image/jpeg"
    assert (processed.width, processed.height) == (1024, 512)

    decoded = Image.open(io.BytesIO(base64.b64decode(processed.base64)))
    assert decoded.format == "JPEG"
    assert decoded.mode == "RGB"


def test_small_photo_keeps_its_size():
    processed = PillowImagePreprocessor().preprocess(_png_bytes(300, 200, mode="L"))
    assert (processed.width, processed.height) == (300, 200)


def test_oversized_output_is_reduced_again():
    """When the first encoding exceeds the byte cap, the smaller fallback size is used."""
    processed = PillowImagePreprocessor(max_bytes=1).preprocess(_png_bytes(2000, 2000))
    assert (processed.width, processed.height) == (800, 800)


def test_data_url_and_base64_inputs():
    raw = _png_bytes(10, 10)
    encoded = base64.b64encode(raw).decode("ascii")
    assert decode_image_payload(f"data:image/png;base64,{encoded}") == raw
    assert decode_image_payload(encoded) == raw
    assert decode_image_payload(raw) == raw


def test_invalid_payloads_raise():
    with pytest.raises(ImagePreprocessingError):
        decode_image_payload("non è base64!")
    with pytest.raises(ImagePreprocessingError):
        PillowImagePreprocessor().preprocess(b"not an image at all")
