# frontend/helpers.py
import html
import re
from typing import Mapping
from urllib.parse import unquote


def filename_from(headers: Mapping[str, str], fallback: str) -> str:
    """Download name from Content-Disposition, preferring the UTF-8 filename* form."""
    header = headers.get("content-disposition", "")
    match = re.search(r"filename\*=UTF-8''([^;]+)", header, re.IGNORECASE)
    if match:
        return unquote(match.group(1).strip())
    match = re.search(r'filename="([^"]*)"', header) or re.search(r"filename=([^;]+)", header)
    return match.group(1).strip() if match and match.group(1).strip() else fallback


# Model-supplied text goes through html.escape before it reaches unsafe_allow_html markdown.
def pill(text: str) -> str:
    return f"<span class='pill'>{html.escape(str(text))}</span>"


def suggestion_html(text: str) -> str:
    return f"<div class='suggestion'>• {html.escape(str(text))}</div>"
