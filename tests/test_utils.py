import io

import pytest
from PIL import Image

from backend.app.utils import (
    ascii_filename,
    content_disposition,
    crop_filename,
    download_response,
    image_to_base64,
    mime_type_for,
)

from conftest import make_image_bytes


@pytest.mark.parametrize(
    "label,source,expected",
    [
        ("Man in red shirt", "list", "Man_in_red_shirt.png"),
        ("Man in red shirt", "canvas", "Man_in_red_shirt_crop.png"),
        ("Big   bold\ttitle", "list", "Big_bold_title.png"),
        ("Logo", "canvas", "Logo_crop.png"),
    ],
)
def test_crop_filename(label, source, expected):
    assert crop_filename(label, source) == expected


def test_crop_filename_defaults_to_list():
    assert crop_filename("Sky") == "Sky.png"


def test_crop_filename_unknown_source():
    with pytest.raises(ValueError):
        crop_filename("Sky", "sidebar")


def test_download_response():
    resp = download_response(b"{}", "thumbnail_data.json", "application/json")

    assert resp.body == b"{}"
    assert resp.media_type == "application/json"
    assert resp.headers["content-disposition"] == (
        "attachment; filename=\"thumbnail_data.json\"; filename*=UTF-8''thumbnail_data.json"
    )


@pytest.mark.parametrize(
    "filename,expected",
    [
        ("Man_in_red_shirt.png", "Man_in_red_shirt.png"),
        ("Caf\u00e9_sign.png", "Cafe_sign.png"),
        ("Title_\u201cEPIC\u201d.png", "Title_EPIC.png"),
        ("Text_\"WIN\".png", "Text_WIN.png"),
        ("Back\\slash.png", "Backslash.png"),
        ("\u0422\u0438\u0442\u0443\u043b_\u041f\u041e\u0411\u0415\u0414\u0410.png", "download.png"),
        ("\u0422.png", "download.png"),
    ],
)
def test_ascii_filename(filename, expected):
    assert ascii_filename(filename) == expected


def test_content_disposition_keeps_utf8_name():
    header = content_disposition("Fire_\U0001f525.png")

    header.encode("latin-1")
    assert header == "attachment; filename=\"Fire_.png\"; filename*=UTF-8''Fire_%F0%9F%94%A5.png"


@pytest.mark.parametrize("fmt,mime", [("PNG", "image/png"), ("JPEG", "image/jpeg")])
def test_mime_type_for(fmt, mime):
    img = Image.open(io.BytesIO(make_image_bytes(fmt=fmt)))

    assert mime_type_for(img) == mime


def test_mime_type_for_unsaved_image():
    assert mime_type_for(Image.new("RGB", (4, 4))) == "image/jpeg"


def test_image_to_base64_has_no_data_prefix():
    assert image_to_base64(b"abc") == "YWJj"
