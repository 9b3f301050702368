# backend/app/agents/layer_agent.py

import asyncio
import logging
import uuid
from typing import Any, Dict, List

from google.genai import types
from pydantic import ValidationError

from ..config import REQUEST_TIMEOUT
from ..errors import RemoteCallError, ResponseShapeError
from ..gemini_client import generate_json_from_image, get_client
from ..logging_config import measure
from ..models import (
    AnalysisResult,
    BoundingBox,
    CompositionAnalysis,
    ElementType,
    Layer,
    WeightCenter,
)

log = logging.getLogger("thumbnail-separator")

LAYER_AGENT_PROMPT = """
You are a professional graphic design AI tool named "Thumbnail Separator".

Task: Deconstruct this YouTube/Gaming thumbnail into constituent visual layers.

1. Detect every distinct element: People (primary, secondary), Text blocks, Objects, Logos, Backgrounds, Effects.
2. Provide a precise bounding box for each element.
3. Estimate the Z-index (stacking order) to separate foreground from background.
4. Analyze the composition rules and provide critique.

Return strict JSON matching the schema.
For bounding boxes, use a scale of 0 to 1000.
"""

BOX_SCALE = 1000.0
DEFAULT_CONFIDENCE = 0.9
DEFAULT_BRIGHTNESS = "Balanced"
DEFAULT_CONTRAST = "Medium"
DEFAULT_WEIGHT_CENTER = 50.0

LAYER_REQUIRED = ("label", "type", "ymin", "xmin", "ymax", "xmax", "zIndex", "dominantColor")
ANALYSIS_REQUIRED = (
    "ruleOfThirdsScore",
    "visualBalanceScore",
    "dominantColors",
    "suggestions",
    "eyeContact",
)

_S = types.Schema
_T = types.Type

LAYER_SCHEMA = _S(
    type=_T.OBJECT,
    properties={
        "label": _S(type=_T.STRING, description="Short descriptive name (e.g., 'Man in red shirt', 'Game Title')"),
        "type": _S(type=_T.STRING, enum=[e.name for e in ElementType]),
        "subtype": _S(type=_T.STRING, description="More specific detail (e.g., 'Male', 'Sword', 'Grunge Overlay')"),
        "confidence": _S(type=_T.NUMBER, description="Confidence score 0.0 to 1.0"),
        "ymin": _S(type=_T.NUMBER, description="Bounding box top (0-1000)"),
        "xmin": _S(type=_T.NUMBER, description="Bounding box left (0-1000)"),
        "ymax": _S(type=_T.NUMBER, description="Bounding box bottom (0-1000)"),
        "xmax": _S(type=_T.NUMBER, description="Bounding box right (0-1000)"),
        "zIndex": _S(type=_T.INTEGER, description="Layer order estimate (1 is background, 10 is foreground)"),
        "dominantColor": _S(type=_T.STRING, description="Hex color code of the element"),
    },
    required=list(LAYER_REQUIRED),
)

ANALYSIS_SCHEMA = _S(
    type=_T.OBJECT,
    properties={
        "ruleOfThirdsScore": _S(type=_T.NUMBER, description="Score 0-100 on how well it fits rule of thirds"),
        "visualBalanceScore": _S(type=_T.NUMBER, description="Score 0-100 on visual weight balance"),
        "dominantColors": _S(type=_T.ARRAY, items=_S(type=_T.STRING), description="Array of hex codes"),
        "brightnessMap": _S(type=_T.STRING, description="Description of lighting distribution"),
        "contrastLevel": _S(type=_T.STRING, description="Low, Medium, High"),
        "suggestions": _S(type=_T.ARRAY, items=_S(type=_T.STRING), description="3-5 actionable design improvements"),
        "eyeContact": _S(type=_T.BOOLEAN, description="If a person is looking at the camera"),
        "weightCenterX": _S(type=_T.NUMBER, description="Center of visual mass X (0-100)"),
        "weightCenterY": _S(type=_T.NUMBER, description="Center of visual mass Y (0-100)"),
    },
    required=list(ANALYSIS_REQUIRED),
)

RESPONSE_SCHEMA = _S(
    type=_T.OBJECT,
    properties={
        "layers": _S(type=_T.ARRAY, items=LAYER_SCHEMA),
        "analysis": ANALYSIS_SCHEMA,
    },
    required=["layers", "analysis"],
)


# ---------- Field helpers ----------

def _missing(data: Dict[str, Any], keys) -> List[str]:
    return [k for k in keys if data.get(k) is None]


def _number(value: Any, field: str) -> float:
    if isinstance(value, bool):
        raise ResponseShapeError(f"Field '{field}' is not a number: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ResponseShapeError(f"Field '{field}' is not a number: {value!r}")


def _clamp01(x: float) -> float:
    return max(0.0, min(1.0, x))


def _string_list(value: Any, field: str) -> List[str]:
    if not isinstance(value, list):
        raise ResponseShapeError(f"Field '{field}' must be a list")
    return [str(v) for v in value]


def _rescale_box(raw: Dict[str, Any]) -> BoundingBox:
    """
    0–1000 model coordinates -> 0–1.

    Edges are clamped to the unit interval and swapped when inverted, so
    top <= bottom and left <= right always hold afterwards.
    """
    top, left, bottom, right = (
        _clamp01(_number(raw[k], k) / BOX_SCALE) for k in ("ymin", "xmin", "ymax", "xmax")
    )
    if top > bottom:
        top, bottom = bottom, top
    if left > right:
        left, right = right, left
    return BoundingBox(top=top, left=left, bottom=bottom, right=right)


def _category(value: Any, index: int) -> ElementType:
    try:
        return ElementType(str(value).strip().lower())
    except ValueError:
        raise ResponseShapeError(f"Layer #{index} has unknown type: {value!r}")


# ---------- Normalization ----------

def _build_layer(index: int, raw: Any, token: str) -> Layer:
    if not isinstance(raw, dict):
        raise ResponseShapeError(f"Layer #{index} is not an object")

    missing = _missing(raw, LAYER_REQUIRED)
    if missing:
        raise ResponseShapeError(f"Layer #{index} is missing required fields: {', '.join(missing)}")

    confidence = raw.get("confidence")
    confidence = DEFAULT_CONFIDENCE if confidence is None else _clamp01(_number(confidence, "confidence"))

    subtype = raw.get("subtype")

    return Layer(
        id=f"layer-{index}-{token}",
        label=str(raw["label"]),
        category=_category(raw["type"], index),
        subtype=str(subtype) if subtype else None,
        confidence=confidence,
        box=_rescale_box(raw),
        z_index=int(_number(raw["zIndex"], "zIndex")),
        dominant_color=str(raw["dominantColor"]),
        visible=True,
    )


def default_background_layer() -> Layer:
    return Layer(
        id="layer-bg-default",
        label="Background Environment",
        category=ElementType.BACKGROUND,
        confidence=0.5,
        box=BoundingBox(top=0.0, left=0.0, bottom=1.0, right=1.0),
        z_index=0,
        dominant_color="#000000",
        visible=True,
    )


def _build_analysis(raw: Any) -> CompositionAnalysis:
    if not isinstance(raw, dict):
        raise ResponseShapeError("'analysis' is not an object")

    missing = _missing(raw, ANALYSIS_REQUIRED)
    if missing:
        raise ResponseShapeError(f"Analysis is missing required fields: {', '.join(missing)}")

    if not isinstance(raw["eyeContact"], bool):
        raise ResponseShapeError(f"Field 'eyeContact' is not a boolean: {raw['eyeContact']!r}")

    # Each axis falls back on its own.
    cx = raw.get("weightCenterX")
    cy = raw.get("weightCenterY")

    return CompositionAnalysis(
        rule_of_thirds_score=_number(raw["ruleOfThirdsScore"], "ruleOfThirdsScore"),
        visual_balance_score=_number(raw["visualBalanceScore"], "visualBalanceScore"),
        dominant_colors=_string_list(raw["dominantColors"], "dominantColors"),
        brightness_map=raw.get("brightnessMap") or DEFAULT_BRIGHTNESS,
        contrast_level=raw.get("contrastLevel") or DEFAULT_CONTRAST,
        suggestions=_string_list(raw["suggestions"], "suggestions"),
        eye_contact=raw["eyeContact"],
        visual_weight_center=WeightCenter(
            x=DEFAULT_WEIGHT_CENTER if cx is None else _number(cx, "weightCenterX"),
            y=DEFAULT_WEIGHT_CENTER if cy is None else _number(cy, "weightCenterY"),
        ),
    )


def normalize_response(raw: Any) -> AnalysisResult:
    """
    Turn Gemini's raw JSON into an AnalysisResult.

    - box coordinates rescaled from 0–1000 to 0–1
    - missing confidence -> 0.9
    - a full-frame background layer is prepended when none was detected
    - layers sorted by z-index (stable, ties keep response order)
    - missing brightness / contrast / weight center get their defaults
    """
    if not isinstance(raw, dict):
        raise ResponseShapeError("Response is not a JSON object")

    raw_layers = raw.get("layers")
    if not isinstance(raw_layers, list):
        raise ResponseShapeError("Response is missing 'layers'")
    if "analysis" not in raw:
        raise ResponseShapeError("Response is missing 'analysis'")

    try:
        token = uuid.uuid4().hex[:8]
        layers = [_build_layer(i, item, token) for i, item in enumerate(raw_layers)]

        if not any(layer.category is ElementType.BACKGROUND for layer in layers):
            layers.insert(0, default_background_layer())

        layers.sort(key=lambda layer: layer.z_index)

        return AnalysisResult(layers=layers, analysis=_build_analysis(raw["analysis"]))
    except ValidationError as e:
        raise ResponseShapeError(f"Response failed validation: {e}") from e


# ---------- Agent entry point ----------

async def run_layer_agent(image_b64: str, mime_type: str = "image/jpeg") -> AnalysisResult:
    """
    Layer agent:
    - One Gemini round trip with the image, the fixed prompt and RESPONSE_SCHEMA.
    - Normalizes the answer into layers + composition analysis.

    Errors are raised, never retried: ConfigurationError, RemoteCallError,
    ResponseShapeError.
    """
    get_client()  # no key -> ConfigurationError before any request

    log.info("✂️ Layer Agent started")
    with measure("layer_agent"):
        try:
            # Run Gemini in worker thread so the event loop can time out
            raw = await asyncio.wait_for(
                asyncio.to_thread(
                    generate_json_from_image,
                    LAYER_AGENT_PROMPT,
                    image_b64,
                    RESPONSE_SCHEMA,
                    mime_type,
                ),
                timeout=REQUEST_TIMEOUT,
            )
        except asyncio.TimeoutError as e:
            raise RemoteCallError(f"Gemini analysis timed out after {REQUEST_TIMEOUT:.0f}s") from e

    result = normalize_response(raw)
    log.info("✅ Layer Agent complete (%d layers)", len(result.layers))
    return result
