"""
Watermark for images generated on the free tier and the base plan
"""
import io

from PIL import Image, ImageDraw, ImageFont


WATERMARK_TEXT = "Fanova"
WATERMARK_POSITION = (20, 20)
WATERMARK_OPACITY = 0.6
FONT_SIZE = 36


def _font(size: int):
    try:
        return ImageFont.truetype("DejaVuSans-Bold.ttf", size)
    except OSError:
        return ImageFont.load_default()


def add_watermark(image_bytes: bytes, text: str = WATERMARK_TEXT) -> bytes:
    """
    Draw the watermark text in the top-left corner

    White text at 60% opacity with a thin dark outline. Images without an
    alpha channel come back as JPEG, others as PNG.
    """
    source = Image.open(io.BytesIO(image_bytes))
    has_alpha = source.mode in ("RGBA", "LA") or "transparency" in source.info

    base = source.convert("RGBA")
    overlay = Image.new("RGBA", base.size, (255, 255, 255, 0))
    draw = ImageDraw.Draw(overlay)

    alpha = int(255 * WATERMARK_OPACITY)
    draw.text(
        WATERMARK_POSITION,
        text,
        font=_font(FONT_SIZE),
        fill=(255, 255, 255, alpha),
        stroke_width=1,
        stroke_fill=(0, 0, 0, alpha),
    )

    composed = Image.alpha_composite(base, overlay)

    output = io.BytesIO()
    if has_alpha:
        composed.save(output, format="PNG")
    else:
        composed.convert("RGB").save(output, format="JPEG", quality=92)
    return output.getvalue()


def watermark_mime_type(image_bytes: bytes) -> str:
    """Mime type add_watermark produces for these bytes"""
    source = Image.open(io.BytesIO(image_bytes))
    if source.mode in ("RGBA", "LA") or "transparency" in source.info:
        return "image/png"
    return "image/jpeg"
