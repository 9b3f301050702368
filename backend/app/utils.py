# backend/app/utils.py
import base64
import os
import re
import unicodedata
from urllib.parse import quote

from fastapi.responses import Response
from PIL import Image

CROP_SOURCES = ("canvas", "list")


def image_to_base64(image_bytes: bytes) -> str:
    """Plain base64 (no data: prefix), the form Gemini expects for inline images."""
    return base64.b64encode(image_bytes).decode("utf-8")


def mime_type_for(img: Image.Image) -> str:
    return Image.MIME.get(img.format or "", "image/jpeg")


def crop_filename(label: str, source: str = "list") -> str:
    """
    "Man in red shirt" -> "Man_in_red_shirt.png" (layer list)
                       -> "Man_in_red_shirt_crop.png" (isolated canvas view)
    """
    if source not in CROP_SOURCES:
        raise ValueError(f"Unknown crop source: {source}")
    stem = re.sub(r"\s+", "_", label)
    return f"{stem}_crop.png" if source == "canvas" else f"{stem}.png"


def _fold_ascii(text: str) -> str:
    folded = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    return re.sub(r'[\x00-\x1f\x7f"\\]', "", folded)


def ascii_filename(filename: str) -> str:
    """ASCII stand-in for clients that ignore filename*; quotes and backslashes dropped."""
    stem, ext = (_fold_ascii(part) for part in os.path.splitext(filename))
    if not stem.strip("_. "):
        stem = "download"
    return f"{stem}{ext}"


def content_disposition(filename: str) -> str:
    """RFC 6266 attachment header: ASCII filename plus the UTF-8 filename* form."""
    return f"attachment; filename=\"{ascii_filename(filename)}\"; filename*=UTF-8''{quote(filename, safe='')}"


def download_response(data: bytes, filename: str, media_type: str) -> Response:
    """Response that makes the browser save `data` under `filename`."""
    return Response(
        content=data,
        media_type=media_type,
        headers={"Content-Disposition": content_disposition(filename)},
    )
