import pytest

from backend.app.utils import content_disposition, crop_filename
from frontend.helpers import filename_from, pill, suggestion_html


@pytest.mark.parametrize("label", ["Man in red shirt", 'Text "WIN"', "Титул ПОБЕДА", "Fire 🔥"])
def test_filename_round_trips_through_header(label):
    name = crop_filename(label, "list")

    headers = {"content-disposition": content_disposition(name)}

    assert filename_from(headers, "layer.png") == name


def test_filename_from_plain_header():
    headers = {"content-disposition": 'attachment; filename="thumbnail_data.json"'}

    assert filename_from(headers, "x.json") == "thumbnail_data.json"


def test_filename_from_missing_header():
    assert filename_from({}, "layer.png") == "layer.png"


def test_pill_escapes_markup():
    assert pill("<b>Logo</b>") == "<span class='pill'>&lt;b&gt;Logo&lt;/b&gt;</span>"


def test_suggestion_escapes_markup():
    html_text = suggestion_html("Use < 3 words & keep it \"bold\"")

    assert "<" not in html_text.removeprefix("<div class='suggestion'>").removesuffix("</div>")
    assert "&lt; 3 words &amp; keep it &quot;bold&quot;" in html_text
