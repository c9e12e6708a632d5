"""
End-to-end tests for the drawing API.

These tests use FastAPI's TestClient against a fresh SQLite database
in a temporary directory.  The CAD importer and the inference client
are replaced through ``app.dependency_overrides`` so no CadQuery
installation or network access is needed.
"""

import io
import json
import sys
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

# Add the backend directory to sys.path so we can import the app
sys.path.append(str(Path(__file__).resolve().parents[1]))

from orthodraw.api.routes_drawings import get_inference_client, get_mesh_importer
from orthodraw.main import create_app
from orthodraw.services import db
from orthodraw.services.inference import InferenceClient
from orthodraw.services.mesh import box_mesh


class FakeImporter:
    def __init__(self) -> None:
        self.paths = []

    def load(self, path):
        self.paths.append(Path(path))
        return box_mesh((0.0, 0.0, 0.0), (50.0, 30.0, 20.0))


@pytest.fixture
def app(tmp_path, monkeypatch):
    for name in ("ORTHODRAW_MAX_PER_VIEW", "ORTHODRAW_LAYOUT_ITERATIONS", "ORTHODRAW_SEED", "ORTHODRAW_UNIT"):
        monkeypatch.delenv(name, raising=False)
    db.configure_engine(f"sqlite:///{(tmp_path / 'test.db').as_posix()}")
    return create_app()


@pytest.fixture
def client(app) -> TestClient:
    with TestClient(app) as test_client:
        yield test_client


def _block_request(**overrides) -> dict:
    vertices, indices, _ = box_mesh((0.0, 0.0, 0.0), (50.0, 30.0, 20.0)).to_buffers()
    body = {
        "name": "block",
        "mesh": {"vertices": vertices, "indices": indices},
        "views": ["front", "top", "right"],
        "seed": 1,
        "layoutIterations": 50,
    }
    body.update(overrides)
    return body


def _values_by_view(drawing: dict) -> dict:
    result = {}
    for dim in drawing["dimensions"]:
        result.setdefault(dim["view"], set()).add(round(dim["value"], 6))
    return result


def test_health(client: TestClient) -> None:
    assert client.get("/api/health").json() == {"status": "ok"}


def test_create_get_list_delete(client: TestClient) -> None:
    response = client.post("/api/drawings", json=_block_request())
    assert response.status_code == 201
    drawing = response.json()
    assert [v["view"] for v in drawing["views"]] == ["front", "top", "right"]
    assert [d["id"] for d in drawing["datums"]] == ["A", "B", "C"]
    assert _values_by_view(drawing) == {
        "front": {50.0, 30.0},
        "top": {50.0, 20.0},
        "right": {20.0, 30.0},
    }
    ids = [d["id"] for d in drawing["dimensions"]]
    assert len(ids) == len(set(ids))
    assert drawing["bbox"] == {"min": [0.0, 0.0, 0.0], "max": [50.0, 30.0, 20.0]}

    drawing_id = drawing["drawingId"]
    fetched = client.get(f"/api/drawings/{drawing_id}")
    assert fetched.status_code == 200
    assert fetched.json()["dimensions"] == drawing["dimensions"]

    listing = client.get("/api/drawings").json()
    assert [d["drawingId"] for d in listing] == [drawing_id]
    assert listing[0]["views"] == ["front", "top", "right"]
    assert listing[0]["dimensionCount"] == 6

    assert client.delete(f"/api/drawings/{drawing_id}").status_code == 204
    assert client.get(f"/api/drawings/{drawing_id}").status_code == 404
    assert client.delete(f"/api/drawings/{drawing_id}").status_code == 404


def test_options_are_applied(client: TestClient) -> None:
    response = client.post(
        "/api/drawings",
        json=_block_request(unit="in", maxPerView=1, optimizeLayout=False, views=["front"]),
    )
    assert response.status_code == 201
    drawing = response.json()
    assert len(drawing["dimensions"]) == 1
    assert drawing["dimensions"][0]["unit"] == "in"
    assert drawing["dimensions"][0]["is_critical"]


def test_explicit_bbox_is_dimensioned(client: TestClient) -> None:
    response = client.post(
        "/api/drawings",
        json=_block_request(views=["front"], bbox={"min": [0, 0, 0], "max": [60, 30, 20]}),
    )
    assert response.status_code == 201
    assert 60.0 in _values_by_view(response.json())["front"]


def test_bad_mesh_is_rejected(client: TestClient) -> None:
    body = _block_request()
    body["mesh"]["indices"] = [0, 1, 99]
    assert client.post("/api/drawings", json=body).status_code == 400
    body["mesh"]["vertices"] = [0.0, 1.0]
    assert client.post("/api/drawings", json=body).status_code == 400


def test_repeated_views_are_generated_once(client: TestClient) -> None:
    response = client.post("/api/drawings", json=_block_request(views=["front", "top", "front"]))
    assert response.status_code == 201
    drawing = response.json()
    assert [v["view"] for v in drawing["views"]] == ["front", "top"]
    ids = [d["id"] for d in drawing["dimensions"]]
    assert len(ids) == len(set(ids)) == 4


def test_unknown_view_is_rejected(client: TestClient) -> None:
    assert client.post("/api/drawings", json=_block_request(views=["isometric"])).status_code == 422


def test_unknown_drawing_is_404(client: TestClient) -> None:
    assert client.get("/api/drawings/nope").status_code == 404
    assert client.get("/api/drawings/nope/quality").status_code == 404
    assert client.post("/api/drawings/nope/corrections", json={"corrections": []}).status_code == 404


def test_corrections_and_quality(client: TestClient) -> None:
    drawing = client.post("/api/drawings", json=_block_request()).json()
    drawing_id = drawing["drawingId"]
    assert client.get(f"/api/drawings/{drawing_id}/quality").json() == []

    front_ids = [d["id"] for d in drawing["dimensions"] if d["view"] == "front"]
    response = client.post(
        f"/api/drawings/{drawing_id}/corrections",
        json={"corrections": [{"dimensionId": front_ids[0], "action": "delete", "reason": "redundant"}]},
    )
    assert response.status_code == 200
    corrected = response.json()
    assert front_ids[0] not in [d["id"] for d in corrected["dimensions"]]
    assert any(i["category"] == "missing" for i in corrected["issues"])

    stored = client.get(f"/api/drawings/{drawing_id}").json()
    assert len(stored["dimensions"]) == 5
    quality = client.get(f"/api/drawings/{drawing_id}/quality").json()
    assert [i["location"] for i in quality] == ["front View"]


def test_upload_uses_injected_importer(app, client: TestClient) -> None:
    importer = FakeImporter()
    app.dependency_overrides[get_mesh_importer] = lambda: importer
    response = client.post(
        "/api/drawings/upload",
        files={"file": ("bracket.step", io.BytesIO(b"ISO-10303-21;"), "application/octet-stream")},
        data={"views": "front,top", "seed": "3"},
    )
    assert response.status_code == 201
    drawing = response.json()
    assert drawing["name"] == "bracket.step"
    assert [v["view"] for v in drawing["views"]] == ["front", "top"]
    assert importer.paths and importer.paths[0].suffix == ".step"
    # The temporary upload is removed once the drawing is generated.
    assert not importer.paths[0].exists()


def test_upload_rejects_other_formats(app, client: TestClient) -> None:
    app.dependency_overrides[get_mesh_importer] = lambda: FakeImporter()
    response = client.post(
        "/api/drawings/upload",
        files={"file": ("part.stl", io.BytesIO(b"solid"), "application/octet-stream")},
    )
    assert response.status_code == 400


def test_review_applies_returned_corrections(app, client: TestClient) -> None:
    drawing = client.post("/api/drawings", json=_block_request()).json()
    target = drawing["dimensions"][0]["id"]
    review = {
        "isAcceptable": False,
        "overallScore": 70,
        "issues": [],
        "corrections": [
            {
                "dimensionId": target,
                "action": "move",
                "reason": "crowded",
                "newPosition": {"start_x": 0, "start_y": -40, "end_x": 50, "end_y": -40},
            },
            {"dimensionId": "front_dim_99", "action": "delete", "reason": "unknown"},
            {"dimensionId": target, "action": "add", "reason": "extra"},
        ],
    }

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["image"] == "data:image/png;base64,AAAA"
        return httpx.Response(200, json={"success": True, "response": json.dumps(review)})

    app.dependency_overrides[get_inference_client] = lambda: InferenceClient(
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
        base_url="http://inference.test/api",
        api_key="ohm_test",
    )
    response = client.post(
        f"/api/drawings/{drawing['drawingId']}/review",
        json={"image": "data:image/png;base64,AAAA", "applyCorrections": True},
    )
    assert response.status_code == 200
    result = response.json()
    assert result["success"]
    assert result["overallScore"] == 70
    # Only the move takes effect; the unknown id and the add are skipped.
    assert result["applied"] == 1
    assert len(result["corrections"]) == 3

    stored = client.get(f"/api/drawings/{drawing['drawingId']}").json()
    moved = next(d for d in stored["dimensions"] if d["id"] == target)
    assert moved["position"]["start_y"] == -40


def test_review_reports_remote_failure(app, client: TestClient) -> None:
    drawing = client.post("/api/drawings", json=_block_request()).json()
    app.dependency_overrides[get_inference_client] = lambda: InferenceClient(
        http_client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(401))),
        base_url="http://inference.test/api",
        api_key="ohm_test",
    )
    response = client.post(f"/api/drawings/{drawing['drawingId']}/review", json={"image": "IMG"})
    assert response.status_code == 200
    result = response.json()
    assert not result["success"]
    assert result["errorKind"] == "unauthorized"
