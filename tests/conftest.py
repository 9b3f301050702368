"""Shared fixtures: sample images, canned Gemini responses, clean global state."""
import copy
import io

import pytest
from PIL import Image

from backend.app import gemini_client
from backend.app.config import API_KEY_NAMES
from backend.app.logging_config import reset_metrics
from backend.app.state import store

RED = (255, 0, 0)
BLUE = (0, 0, 255)

RAW_RESPONSE = {
    "layers": [
        {
            "label": "Man in red shirt",
            "type": "PERSON",
            "subtype": "Male",
            "confidence": 0.97,
            "ymin": 100,
            "xmin": 0,
            "ymax": 1000,
            "xmax": 500,
            "zIndex": 5,
            "dominantColor": "#ff0000",
        },
        {
            "label": "Sky",
            "type": "BACKGROUND",
            "ymin": 0,
            "xmin": 0,
            "ymax": 1000,
            "xmax": 1000,
            "zIndex": 1,
            "dominantColor": "#0000ff",
        },
    ],
    "analysis": {
        "ruleOfThirdsScore": 72,
        "visualBalanceScore": 64,
        "dominantColors": ["#FF0000", "#00f"],
        "brightnessMap": "Bright center",
        "contrastLevel": "High",
        "suggestions": ["Make the title bigger", "Add a rim light"],
        "eyeContact": True,
        "weightCenterX": 40,
        "weightCenterY": 55,
    },
}


def make_image_bytes(width: int = 200, height: int = 100, fmt: str = "PNG") -> bytes:
    """Left half red, right half blue."""
    img = Image.new("RGB", (width, height), BLUE)
    img.paste(Image.new("RGB", (width // 2, height), RED), (0, 0))
    buffered = io.BytesIO()
    img.save(buffered, format=fmt)
    return buffered.getvalue()


@pytest.fixture(autouse=True)
def clean_state():
    store.clear_sessions()
    gemini_client.reset_client()
    reset_metrics()
    yield
    store.clear_sessions()
    gemini_client.reset_client()


@pytest.fixture
def no_api_key(monkeypatch):
    for name in API_KEY_NAMES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def api_key(monkeypatch, no_api_key):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    return "test-key"


@pytest.fixture
def raw_response():
    return copy.deepcopy(RAW_RESPONSE)


@pytest.fixture
def image_bytes():
    return make_image_bytes()


@pytest.fixture
def source_image(image_bytes):
    return Image.open(io.BytesIO(image_bytes))
