# backend/app/geometry.py

import io
from typing import Iterable, NamedTuple, Optional, Tuple

from PIL import Image, ImageDraw

from .errors import RenderError
from .logging_config import inc_metric, log
from .models import BoundingBox, Layer

SELECTED_OUTLINE = (59, 130, 246, 255)  # #3b82f6
SELECTED_FILL = (59, 130, 246, 50)
DEFAULT_OUTLINE = (255, 255, 255, 110)


class PixelRect(NamedTuple):
    x: float
    y: float
    w: float
    h: float


def open_image(image_bytes: bytes) -> Image.Image:
    """Decode raw bytes into a PIL Image."""
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
        return img
    except Exception as e:
        raise ValueError(f"Could not decode image: {e}")


def box_to_pixel_rect(box: BoundingBox, image_width: int, image_height: int) -> PixelRect:
    """
    Map a normalized box onto an image of the given size.

    No clamping: a malformed box gives a rect with a negative width/height,
    which the renderers below treat as "nothing to draw".
    """
    return PixelRect(
        x=box.left * image_width,
        y=box.top * image_height,
        w=(box.right - box.left) * image_width,
        h=(box.bottom - box.top) * image_height,
    )


def _pixel_bounds(rect: PixelRect) -> Tuple[int, int, int, int]:
    left = int(round(rect.x))
    top = int(round(rect.y))
    return left, top, left + int(round(rect.w)), top + int(round(rect.h))


def _encode_png(img: Image.Image) -> bytes:
    buffered = io.BytesIO()
    try:
        img.save(buffered, format="PNG")
    except (OSError, ValueError) as e:
        raise RenderError(f"PNG encoding failed: {e}") from e
    return buffered.getvalue()


def _render_crop(source_image: Image.Image, box: BoundingBox) -> Image.Image:
    w, h = source_image.size
    left, top, right, bottom = _pixel_bounds(box_to_pixel_rect(box, w, h))
    if right - left <= 0 or bottom - top <= 0:
        raise RenderError(f"Degenerate crop {right - left}x{bottom - top}")

    try:
        # Pixels outside the source come back fully transparent.
        return source_image.convert("RGBA").crop((left, top, right, bottom))
    except (OSError, ValueError) as e:
        raise RenderError(str(e)) from e


def extract_crop(source_image: Image.Image, box: BoundingBox) -> bytes:
    """
    Cut the box out of the source image, 1:1, as a standalone PNG.

    Returns b"" when the crop cannot be rendered; callers show a
    placeholder instead.
    """
    try:
        data = _encode_png(_render_crop(source_image, box))
    except RenderError as e:
        log.warning(f"⚠️ Crop unavailable: {e}")
        inc_metric("crops_unavailable")
        return b""
    inc_metric("crops_rendered")
    return data


def render_overlay(
    source_image: Image.Image,
    layers: Iterable[Layer],
    selected_layer_id: Optional[str] = None,
) -> bytes:
    """
    Draw the outline of every visible layer over the source image.

    The selected layer gets a highlighted outline, a light fill and its label.
    Returns b"" when the overlay cannot be rendered.
    """
    try:
        base = source_image.convert("RGBA")
        overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)
        stroke = max(2, round(min(base.size) / 300))

        for layer in layers:
            if not layer.visible:
                continue
            left, top, right, bottom = _pixel_bounds(
                box_to_pixel_rect(layer.box, base.width, base.height)
            )
            if right - left <= 0 or bottom - top <= 0:
                continue

            if layer.id == selected_layer_id:
                draw.rectangle(
                    [left, top, right - 1, bottom - 1],
                    outline=SELECTED_OUTLINE,
                    fill=SELECTED_FILL,
                    width=stroke,
                )
                draw.text((left + stroke + 2, top + stroke + 2), layer.label, fill=(255, 255, 255, 255))
            else:
                draw.rectangle(
                    [left, top, right - 1, bottom - 1],
                    outline=DEFAULT_OUTLINE,
                    width=stroke,
                )

        return _encode_png(Image.alpha_composite(base, overlay))
    except (RenderError, OSError, ValueError) as e:
        log.warning(f"⚠️ Overlay unavailable: {e}")
        inc_metric("overlays_unavailable")
        return b""
