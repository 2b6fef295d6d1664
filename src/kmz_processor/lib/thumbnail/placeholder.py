"""Locally drawn placeholder thumbnail using Pillow."""

import io

from PIL import Image, ImageDraw, ImageFont

from kmz_processor.lib.kmz.parser import BBox
from kmz_processor.lib.thumbnail.renderer import THUMBNAIL_HEIGHT, THUMBNAIL_WIDTH

_BACKGROUND = "#f7f7f7"
_FOREGROUND = "#333333"


def placeholder_caption(kmz_id: int, bbox: BBox) -> str:
    """Text drawn on the placeholder: the job id and its extent."""
    return f"KMZ {kmz_id} - bbox: {', '.join(f'{v:.3f}' for v in bbox)}"


def render_placeholder(kmz_id: int, bbox: BBox) -> bytes:
    """Draw a 400x200 PNG framing the job id and bounding box as text."""
    image = Image.new("RGB", (THUMBNAIL_WIDTH, THUMBNAIL_HEIGHT), _BACKGROUND)
    draw = ImageDraw.Draw(image)
    draw.rectangle((4, 4, THUMBNAIL_WIDTH - 4, THUMBNAIL_HEIGHT - 4), outline=_FOREGROUND, width=2)
    draw.text((12, 16), placeholder_caption(kmz_id, bbox), fill=_FOREGROUND, font=ImageFont.load_default())

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()
