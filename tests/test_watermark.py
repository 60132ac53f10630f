"""
Tests for the image watermark
"""

import io

from PIL import Image

from src.services.watermark_service import add_watermark, watermark_mime_type


def image_bytes(mode: str, fmt: str, color) -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, (200, 120), color).save(buffer, format=fmt)
    return buffer.getvalue()


def test_rgb_image_becomes_jpeg():
    source = image_bytes("RGB", "PNG", (10, 10, 10))

    marked = add_watermark(source)

    result = Image.open(io.BytesIO(marked))
    assert result.format == "JPEG"
    assert result.size == (200, 120)
    assert watermark_mime_type(source) == "image/jpeg"


def test_alpha_image_stays_png():
    source = image_bytes("RGBA", "PNG", (10, 10, 10, 128))

    marked = add_watermark(source)

    result = Image.open(io.BytesIO(marked))
    assert result.format == "PNG"
    assert result.mode == "RGBA"
    assert watermark_mime_type(source) == "image/png"


def test_watermark_changes_top_left_pixels():
    source = image_bytes("RGB", "PNG", (0, 0, 0))

    marked = Image.open(io.BytesIO(add_watermark(source))).convert("RGB")

    # Text is drawn from (20, 20); somewhere in that box pixels got lighter
    box = marked.crop((20, 20, 120, 60))
    assert max(max(pixel) for pixel in box.getdata()) > 100
