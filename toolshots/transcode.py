"""Transcoder: converts raw captures to a compact web format with Pillow."""

from __future__ import annotations

import io
import logging

from PIL import Image, UnidentifiedImageError

from toolshots.errors import EncodeError
from toolshots.models.capture import CapturedImage, TranscodedAsset
from toolshots.models.config import TranscodeConfig

logger = logging.getLogger(__name__)

_FORMATS = {
    "WEBP": ("webp", "image/webp"),
    "JPEG": ("jpg", "image/jpeg"),
    "PNG": ("png", "image/png"),
}


def sniff_format(data: bytes) -> tuple[str, str]:
    """Extension and MIME type of an untouched buffer, from its magic bytes."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png", "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "jpg", "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "webp", "image/webp"
    return "bin", "application/octet-stream"


class Transcoder:
    def __init__(self, config: TranscodeConfig):
        self.config = config

    def encode(self, data: bytes) -> bytes:
        """Encode raw image bytes. Raises EncodeError on corrupt or unsupported input."""
        try:
            with Image.open(io.BytesIO(data)) as img:
                img.load()
                if self.config.format == "JPEG" and img.mode != "RGB":
                    img = img.convert("RGB")
                elif img.mode not in ("RGB", "RGBA"):
                    img = img.convert("RGBA")

                limit = self.config.max_dimension
                if img.width > limit or img.height > limit:
                    # Very tall full-page captures exceed WebP limits
                    img.thumbnail((limit, limit), Image.LANCZOS)

                buf = io.BytesIO()
                img.save(buf, format=self.config.format, quality=self.config.quality)
                return buf.getvalue()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError) as e:
            raise EncodeError(f"Could not encode image as {self.config.format}: {e}") from e

    def transcode(self, image: CapturedImage) -> TranscodedAsset:
        """Encode one capture; on failure pass the raw buffer through untouched."""
        extension, content_type = _FORMATS[self.config.format]
        try:
            encoded = self.encode(image.data)
        except EncodeError as e:
            logger.warning("%s region: %s. Uploading original bytes.", image.region.value, e)
            extension, content_type = sniff_format(image.data)
            return TranscodedAsset(
                region=image.region, data=image.data,
                extension=extension, content_type=content_type, transcoded=False,
            )

        logger.debug("%s: %.1f KB -> %.1f KB %s",
                     image.region.value, len(image.data) / 1024, len(encoded) / 1024, extension)
        return TranscodedAsset(
            region=image.region, data=encoded, extension=extension, content_type=content_type,
        )
