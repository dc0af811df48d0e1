from __future__ import annotations

import base64
import binascii
import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from skinconsult.application.exceptions import ImagePreprocessingError
from skinconsult.application.ports.image_processor import ImageProcessorPort
from skinconsult.domain.entities.image import ProcessedImage

logger = logging.getLogger(__name__)

MAX_DIMENSION = 1024
JPEG_QUALITY = 85
MAX_BYTES = 4 * 1024 * 1024
REDUCED_DIMENSION = 800
REDUCED_QUALITY = 70


def decode_image_payload(raw: str | bytes) -> bytes:
    """Accept raw bytes, a base64 string, or a data URL ('data:image/png;base64,...')."""
    if isinstance(raw, bytes):
        return raw
    payload = raw.strip()
    if payload.startswith("data:"):
        _, _, payload = payload.partition(",")
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImagePreprocessingError(f"Image is not valid base64: {e}") from e


class PillowImagePreprocessor(ImageProcessorPort):
    def __init__(self, max_dimension: int = MAX_DIMENSION, quality: int = JPEG_QUALITY, max_bytes: int = MAX_BYTES) -> None:
        self._max_dimension = max_dimension
        self._quality = quality
        self._max_bytes = max_bytes

    def preprocess(self, raw: str | bytes) -> ProcessedImage:
        data = decode_image_payload(raw)
        try:
            with Image.open(io.BytesIO(data)) as opened:
                image = ImageOps.exif_transpose(opened)
                image = image.convert("RGB")
        except (UnidentifiedImageError, OSError) as e:
            raise ImagePreprocessingError(f"Image cannot be decoded: {e}") from e

        encoded = self._encode(image, self._max_dimension, self._quality)
        if len(encoded[0]) > self._max_bytes:
            logger.info("Image still too large, reducing", extra={"reason": f"bytes={len(encoded[0])}"})
            encoded = self._encode(image, REDUCED_DIMENSION, REDUCED_QUALITY)

        payload, width, height = encoded
        return ProcessedImage(
            base64=base64.b64encode(payload).decode("ascii"),
            mime_type="image/jpeg",
            width=width,
            height=height,
        )

    @staticmethod
    def _encode(image: Image.Image, max_dimension: int, quality: int) -> tuple[bytes, int, int]:
        resized = image.copy()
        resized.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
        buffer = io.BytesIO()
        resized.save(buffer, format="JPEG", quality=quality, optimize=True)
        return buffer.getvalue(), resized.width, resized.height
