"""Tests for the Pillow transcoder."""

import io
import struct
import zlib

import pytest
from PIL import Image

from toolshots.capture.dedup import fingerprint
from toolshots.errors import EncodeError
from toolshots.models.capture import CapturedImage, Region
from toolshots.models.config import TranscodeConfig
from toolshots.transcode import Transcoder, sniff_format


def _image(region, data):
    return CapturedImage(region=region, data=data, fingerprint=fingerprint(data))


class TestEncode:
    def test_png_to_webp(self, png_factory):
        asset = Transcoder(TranscodeConfig()).transcode(_image(Region.HERO, png_factory()))

        assert asset.transcoded is True
        assert asset.extension == "webp"
        assert asset.content_type == "image/webp"
        assert asset.data[:4] == b"RIFF"
        assert asset.data[8:12] == b"WEBP"
        assert asset.object_path("tool-1") == "tools/tool-1/hero.webp"

    def test_jpeg_output(self, png_factory):
        asset = Transcoder(TranscodeConfig(format="JPEG")).transcode(_image(Region.PRICING, png_factory()))

        assert asset.extension == "jpg"
        assert asset.content_type == "image/jpeg"
        assert asset.data.startswith(b"\xff\xd8\xff")

    def test_rgba_to_jpeg(self):
        buf = io.BytesIO()
        Image.new("RGBA", (20, 20), (10, 20, 30, 128)).save(buf, format="PNG")
        encoded = Transcoder(TranscodeConfig(format="JPEG")).encode(buf.getvalue())
        assert encoded.startswith(b"\xff\xd8\xff")

    def test_oversized_image_scaled_down(self, png_factory):
        transcoder = Transcoder(TranscodeConfig(max_dimension=50))
        encoded = transcoder.encode(png_factory(size=(100, 20)))

        with Image.open(io.BytesIO(encoded)) as img:
            assert img.width == 50
            assert img.height == 10

    def test_encode_raises_on_garbage(self):
        with pytest.raises(EncodeError):
            Transcoder(TranscodeConfig()).encode(b"definitely not an image")


class TestPassthrough:
    def test_corrupt_bytes_pass_through(self):
        data = b"not an image at all"
        asset = Transcoder(TranscodeConfig()).transcode(_image(Region.FEATURES, data))

        assert asset.transcoded is False
        assert asset.data == data
        assert asset.extension == "bin"
        assert asset.content_type == "application/octet-stream"

    def test_truncated_png_keeps_png_extension(self, png_factory):
        data = png_factory()[:40]
        asset = Transcoder(TranscodeConfig()).transcode(_image(Region.HERO, data))

        assert asset.transcoded is False
        assert asset.data == data
        assert asset.extension == "png"
        assert asset.object_path("t") == "tools/t/hero.png"

    def test_decompression_bomb_passes_through(self, monkeypatch):
        # Pin the limit so 1200x200000 is over it on every Pillow release
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1_000_000)
        data = _png_header(1200, 200_000)
        transcoder = Transcoder(TranscodeConfig())

        with pytest.raises(EncodeError, match="decompression bomb"):
            transcoder.encode(data)

        asset = transcoder.transcode(_image(Region.FULLPAGE, data))
        assert asset.transcoded is False
        assert asset.data == data
        assert asset.extension == "png"


def _png_header(width, height):
    """Signature, IHDR and an empty IDAT: enough for Image.open to read the size."""
    def chunk(kind, payload):
        return (struct.pack(">I", len(payload)) + kind + payload
                + struct.pack(">I", zlib.crc32(kind + payload) & 0xFFFFFFFF))

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", b"")


class TestSniffFormat:
    def test_png(self, png_factory):
        assert sniff_format(png_factory()) == ("png", "image/png")

    def test_jpeg(self):
        assert sniff_format(b"\xff\xd8\xff\xe0rest") == ("jpg", "image/jpeg")

    def test_webp(self):
        assert sniff_format(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == ("webp", "image/webp")

    def test_unknown(self):
        assert sniff_format(b"????") == ("bin", "application/octet-stream")
