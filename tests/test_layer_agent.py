"""Tests for the layer agent: response normalization and the Gemini round trip."""
import time
from unittest.mock import Mock, patch

import pytest

from backend.app.agents import layer_agent
from backend.app.agents.layer_agent import normalize_response, run_layer_agent
from backend.app.errors import ConfigurationError, RemoteCallError, ResponseShapeError
from backend.app.models import AnalysisResult, ElementType


def _layer(label, z, category="OBJECT", **extra):
    layer = {
        "label": label,
        "type": category,
        "ymin": 0,
        "xmin": 0,
        "ymax": 500,
        "xmax": 500,
        "zIndex": z,
        "dominantColor": "#123456",
    }
    layer.update(extra)
    return layer


class TestNormalizeResponse:

    def test_rescales_boxes_to_unit_interval(self, raw_response):
        result = normalize_response(raw_response)

        person = next(l for l in result.layers if l.category is ElementType.PERSON)
        assert person.box.top == pytest.approx(0.1)
        assert person.box.left == pytest.approx(0.0)
        assert person.box.bottom == pytest.approx(1.0)
        assert person.box.right == pytest.approx(0.5)

    def test_keeps_detected_background_and_sorts(self, raw_response):
        result = normalize_response(raw_response)

        assert [l.label for l in result.layers] == ["Sky", "Man in red shirt"]
        assert all(l.id != "layer-bg-default" for l in result.layers)
        assert all(l.visible for l in result.layers)

    def test_synthesizes_background_when_missing(self, raw_response):
        raw_response["layers"] = [_layer("Logo", 4, "LOGO"), _layer("Title", 7, "TEXT")]

        result = normalize_response(raw_response)

        backgrounds = [l for l in result.layers if l.category is ElementType.BACKGROUND]
        assert len(backgrounds) == 1
        bg = result.layers[0]
        assert bg is backgrounds[0]
        assert bg.id == "layer-bg-default"
        assert (bg.box.top, bg.box.left, bg.box.bottom, bg.box.right) == (0.0, 0.0, 1.0, 1.0)
        assert bg.z_index == 0
        assert bg.confidence == 0.5
        assert bg.dominant_color == "#000000"
        assert len(result.layers) == 3

    def test_sorts_by_z_index(self, raw_response):
        raw_response["layers"] = [
            _layer("c", 3, "BACKGROUND"),
            _layer("a", 1, "BACKGROUND"),
            _layer("b", 2, "BACKGROUND"),
        ]

        result = normalize_response(raw_response)

        assert [l.z_index for l in result.layers] == [1, 2, 3]

    def test_sort_is_stable_for_ties(self, raw_response):
        raw_response["layers"] = [
            _layer("first", 2, "BACKGROUND"),
            _layer("low", 1),
            _layer("second", 2),
            _layer("third", 2),
        ]

        result = normalize_response(raw_response)

        assert [l.label for l in result.layers] == ["low", "first", "second", "third"]

    def test_synthetic_background_stays_first_among_zero_ties(self, raw_response):
        raw_response["layers"] = [_layer("Glow", 0, "EFFECT")]

        result = normalize_response(raw_response)

        assert [l.id for l in result.layers][0] == "layer-bg-default"
        assert result.layers[1].label == "Glow"

    def test_missing_confidence_defaults(self, raw_response):
        result = normalize_response(raw_response)

        sky = next(l for l in result.layers if l.label == "Sky")
        assert sky.confidence == 0.9

    def test_zero_confidence_is_kept(self, raw_response):
        raw_response["layers"][0]["confidence"] = 0

        result = normalize_response(raw_response)

        person = next(l for l in result.layers if l.label == "Man in red shirt")
        assert person.confidence == 0.0

    def test_analysis_fields_are_mapped(self, raw_response):
        analysis = normalize_response(raw_response).analysis

        assert analysis.rule_of_thirds_score == 72
        assert analysis.visual_balance_score == 64
        assert analysis.dominant_colors == ["#FF0000", "#00f"]
        assert analysis.brightness_map == "Bright center"
        assert analysis.contrast_level == "High"
        assert analysis.eye_contact is True
        assert (analysis.visual_weight_center.x, analysis.visual_weight_center.y) == (40, 55)

    def test_analysis_defaults(self, raw_response):
        for key in ("brightnessMap", "contrastLevel", "weightCenterX", "weightCenterY"):
            raw_response["analysis"].pop(key)

        analysis = normalize_response(raw_response).analysis

        assert analysis.brightness_map == "Balanced"
        assert analysis.contrast_level == "Medium"
        assert (analysis.visual_weight_center.x, analysis.visual_weight_center.y) == (50, 50)

    def test_weight_center_axes_default_independently(self, raw_response):
        raw_response["analysis"].pop("weightCenterY")

        center = normalize_response(raw_response).analysis.visual_weight_center

        assert (center.x, center.y) == (40, 50)

    def test_category_is_lowercased(self, raw_response):
        result = normalize_response(raw_response)

        assert {l.category.value for l in result.layers} == {"person", "background"}

    def test_layer_ids_are_unique(self, raw_response):
        raw_response["layers"] += [_layer("x", 3), _layer("y", 3)]

        ids = [l.id for l in normalize_response(raw_response).layers]

        assert len(ids) == len(set(ids))

    def test_malformed_box_is_clamped_and_ordered(self, raw_response):
        raw_response["layers"][0].update({"ymin": 900, "ymax": 200, "xmin": -50, "xmax": 1400})

        person = next(l for l in normalize_response(raw_response).layers if l.label == "Man in red shirt")

        assert person.box.top == pytest.approx(0.2)
        assert person.box.bottom == pytest.approx(0.9)
        assert person.box.left == 0.0
        assert person.box.right == 1.0

    def test_empty_layer_list_gets_only_background(self, raw_response):
        raw_response["layers"] = []

        result = normalize_response(raw_response)

        assert [l.id for l in result.layers] == ["layer-bg-default"]

    @pytest.mark.parametrize("field", ["label", "type", "ymin", "zIndex", "dominantColor"])
    def test_missing_layer_field_is_rejected(self, raw_response, field):
        del raw_response["layers"][0][field]

        with pytest.raises(ResponseShapeError, match=field):
            normalize_response(raw_response)

    @pytest.mark.parametrize("field", ["ruleOfThirdsScore", "dominantColors", "suggestions", "eyeContact"])
    def test_missing_analysis_field_is_rejected(self, raw_response, field):
        del raw_response["analysis"][field]

        with pytest.raises(ResponseShapeError, match=field):
            normalize_response(raw_response)

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            [],
            {"analysis": {}},
            {"layers": "nope", "analysis": {}},
            {"layers": []},
            {"layers": [], "analysis": None},
            {"layers": ["not an object"], "analysis": {}},
        ],
    )
    def test_bad_top_level_shapes(self, raw):
        with pytest.raises(ResponseShapeError):
            normalize_response(raw)

    def test_unknown_category(self, raw_response):
        raw_response["layers"][0]["type"] = "ANIMAL"

        with pytest.raises(ResponseShapeError, match="ANIMAL"):
            normalize_response(raw_response)

    def test_non_numeric_coordinate(self, raw_response):
        raw_response["layers"][0]["xmax"] = "wide"

        with pytest.raises(ResponseShapeError, match="xmax"):
            normalize_response(raw_response)


class TestRunLayerAgent:

    @pytest.mark.asyncio
    async def test_round_trip(self, api_key, raw_response):
        with patch.object(layer_agent, "get_client"), \
                patch.object(layer_agent, "generate_json_from_image", return_value=raw_response) as gen:
            result = await run_layer_agent("aW1n", "image/png")

        assert isinstance(result, AnalysisResult)
        assert len(result.layers) == 2
        args = gen.call_args.args
        assert args[0] == layer_agent.LAYER_AGENT_PROMPT
        assert args[1] == "aW1n"
        assert args[2] is layer_agent.RESPONSE_SCHEMA
        assert args[3] == "image/png"

    @pytest.mark.asyncio
    async def test_missing_key_fails_before_request(self, no_api_key):
        gen = Mock()
        with patch.object(layer_agent, "generate_json_from_image", gen):
            with pytest.raises(ConfigurationError):
                await run_layer_agent("aW1n")

        gen.assert_not_called()

    @pytest.mark.asyncio
    async def test_remote_errors_propagate(self, api_key):
        with patch.object(layer_agent, "get_client"), \
                patch.object(layer_agent, "generate_json_from_image", side_effect=RemoteCallError("boom")):
            with pytest.raises(RemoteCallError, match="boom"):
                await run_layer_agent("aW1n")

    @pytest.mark.asyncio
    async def test_timeout_becomes_remote_call_error(self, api_key, raw_response, monkeypatch):
        def slow(*args):
            time.sleep(0.3)
            return raw_response

        monkeypatch.setattr(layer_agent, "REQUEST_TIMEOUT", 0.05)
        with patch.object(layer_agent, "get_client"), \
                patch.object(layer_agent, "generate_json_from_image", side_effect=slow):
            with pytest.raises(RemoteCallError, match="timed out"):
                await run_layer_agent("aW1n")

    def test_schema_declares_required_fields(self):
        schema = layer_agent.RESPONSE_SCHEMA

        assert set(schema.required) == {"layers", "analysis"}
        assert set(schema.properties["layers"].items.required) == set(layer_agent.LAYER_REQUIRED)
        assert schema.properties["layers"].items.properties["type"].enum == [
            "PERSON", "OBJECT", "TEXT", "LOGO", "BACKGROUND", "EFFECT"
        ]
