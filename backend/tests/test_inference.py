"""
Tests for the inference client.

The remote service is replaced with ``httpx.MockTransport`` handlers so
every failure kind can be produced deterministically.
"""

import json
import sys
from pathlib import Path

import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from orthodraw.services.dimensions import Dimension, DimensionPosition
from orthodraw.services.inference import (
    InferenceClient,
    InferenceFailure,
    ReviewSuccess,
    SuggestionSuccess,
    parse_review_text,
)

BASE = "http://inference.test/api"

REVIEW = {
    "isAcceptable": False,
    "overallScore": 62,
    "issues": [{"severity": "major", "category": "layout", "description": "Overlap", "affectedDimensionId": "front_dim_2"}],
    "suggestions": ["Move front_dim_2 down"],
    "corrections": [
        {
            "dimensionId": "front_dim_2",
            "action": "reposition",
            "reason": "Overlaps front_dim_1",
            "newPosition": {"start_x": 0, "start_y": -30, "end_x": 50, "end_y": -30},
        }
    ],
}


def _dims():
    return [
        Dimension(
            id=f"front_dim_{i}",
            type="linear",
            value=50.0,
            unit="mm",
            view="front",
            position=DimensionPosition(start_x=0.0, start_y=-12.0, end_x=50.0, end_y=-12.0),
            label=f"dim {i}",
        )
        for i in (1, 2)
    ]


def _client(handler) -> InferenceClient:
    return InferenceClient(
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        base_url=BASE,
        api_key="ohm_test",
    )


def _envelope(text: str) -> dict:
    return {"success": True, "response": text}


def test_invalid_key_fails_without_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = _client(handler)
    result = client.review_drawing("data:image/png;base64,AAAA", _dims(), api_key="sk_wrong")
    assert isinstance(result, InferenceFailure)
    assert result.kind == "invalid-api-key"
    result = client.suggest_dimensions({"bounding_box": {"width": 1}}, api_key="")
    assert isinstance(result, InferenceFailure)
    assert result.kind == "invalid-api-key"


def test_review_success_is_parsed() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_envelope("Here you go:\n" + json.dumps(REVIEW)))

    result = _client(handler).review_drawing("IMG", _dims(), {"Sheet Size": "A3"})
    assert isinstance(result, ReviewSuccess)
    assert seen["url"] == f"{BASE}/vision"
    assert seen["auth"] == "Bearer ohm_test"
    assert seen["body"]["image"] == "IMG"
    assert "front_dim_1" in seen["body"]["prompt"]
    assert result.overall_score == 62
    assert not result.is_acceptable
    assert result.issues[0].affected_dimension_id == "front_dim_2"
    assert result.corrections[0].new_position.start_y == -30


@pytest.mark.parametrize(
    "response,kind",
    [
        (httpx.Response(401, json={"error": "expired"}), "unauthorized"),
        (httpx.Response(500, json={"error": "boom"}), "http-error"),
        (httpx.Response(200, json={"success": False, "error": "quota"}), "service-error"),
        (httpx.Response(200, text="not json"), "unparseable-response"),
        (httpx.Response(200, json={"response": "{}"}), "unparseable-response"),
        (httpx.Response(200, json=_envelope("no json here")), "unparseable-response"),
        (httpx.Response(200, json=_envelope('{"overallScore": 90}')), "unparseable-response"),
        (httpx.Response(200, json=_envelope('{"isAcceptable": true, "overallScore": 900}')), "unparseable-response"),
    ],
)
def test_review_failures_are_tagged(response: httpx.Response, kind: str) -> None:
    result = _client(lambda request: response).review_drawing("IMG", _dims())
    assert isinstance(result, InferenceFailure)
    assert result.kind == kind


def test_http_error_message_uses_service_error_field() -> None:
    result = _client(lambda request: httpx.Response(503, json={"error": "maintenance"})).review_drawing("IMG", [])
    assert isinstance(result, InferenceFailure)
    assert result.message == "maintenance"
    assert result.status_code == 503


def test_network_error_is_tagged() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = _client(handler).review_drawing("IMG", _dims())
    assert isinstance(result, InferenceFailure)
    assert result.kind == "network-error"


def test_parse_review_text_extracts_embedded_json() -> None:
    result = parse_review_text('Sure!\n```json\n{"isAcceptable": true, "overallScore": 88}\n```')
    assert isinstance(result, ReviewSuccess)
    assert result.is_acceptable
    assert result.corrections == []


def test_suggest_dimensions() -> None:
    payload = {
        "success": True,
        "dimensions": [
            {
                "id": "dim_1",
                "type": "linear",
                "value": 50,
                "unit": "mm",
                "view": "front",
                "position": {"start_x": 0, "start_y": -10, "end_x": 50, "end_y": -10},
                "label": "Width",
                "is_critical": True,
            }
        ],
        "notes": ["Break sharp edges"],
    }

    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == f"{BASE}/drawing"
        body = json.loads(request.content)
        assert body["views"] == ["front", "top", "right"]
        return httpx.Response(200, json=payload)

    result = _client(handler).suggest_dimensions({"bounding_box": {"width": 50, "height": 30, "depth": 20}})
    assert isinstance(result, SuggestionSuccess)
    assert result.dimensions[0].is_critical
    assert result.dimensions[0].position.end_x == 50
    assert result.notes == ["Break sharp edges"]


def test_suggest_dimensions_malformed_dimension() -> None:
    payload = {"success": True, "dimensions": [{"id": "dim_1", "type": "sideways"}]}
    result = _client(lambda request: httpx.Response(200, json=payload)).suggest_dimensions({"bounding_box": {"w": 1}})
    assert isinstance(result, InferenceFailure)
    assert result.kind == "unparseable-response"


def test_suggest_dimensions_requires_geometry() -> None:
    result = _client(lambda request: httpx.Response(200, json={})).suggest_dimensions({})
    assert isinstance(result, InferenceFailure)
    assert result.kind == "service-error"


def test_review_and_correct_applies_corrections_until_accepted() -> None:
    replies = [
        _envelope(json.dumps(REVIEW)),
        _envelope(json.dumps({"isAcceptable": True, "overallScore": 91})),
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=replies.pop(0))

    renders = []

    def render(dimensions):
        renders.append([d.position.start_y for d in dimensions])
        return "IMG"

    loop = _client(handler).review_and_correct(render, _dims())
    assert loop.iteration_count == 2
    assert loop.accepted
    assert [d.position.start_y for d in loop.final_dimensions] == [-12.0, -30.0]
    # One render up front, one after the correction.
    assert renders == [[-12.0, -12.0], [-12.0, -30.0]]


def test_review_and_correct_image_matches_last_correction() -> None:
    def render(dimensions):
        return ",".join(str(d.position.start_y) for d in dimensions)

    loop = _client(lambda request: httpx.Response(200, json=_envelope(json.dumps(REVIEW)))).review_and_correct(
        render, _dims(), max_iterations=1
    )
    assert loop.iteration_count == 1
    assert not loop.accepted
    assert loop.final_image == render(loop.final_dimensions) == "-12.0,-30.0"


def test_review_and_correct_stops_on_failure() -> None:
    loop = _client(lambda request: httpx.Response(500)).review_and_correct(lambda dims: "IMG", _dims())
    assert loop.iteration_count == 1
    assert not loop.accepted
    assert isinstance(loop.reviews[0], InferenceFailure)
