"""
Tests for dimension candidate generation and initial placement.
"""

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from orthodraw.services.datums import select_datums
from orthodraw.services.dimensions import (
    DimensionCandidate,
    calculate_datum_reference_dimensions,
    calculate_feature_dimensions,
    calculate_hole_dimensions,
    calculate_overall_dimensions,
    dimension_from_dict,
    dimension_to_dict,
    generate_all_dimensions,
    place_dimensions,
)
from orthodraw.services.mesh import BoundingBox, box_mesh
from orthodraw.services.projection import Circle2D, ProjectedView, ViewBounds, generate_all_views


BBOX = BoundingBox.from_min_max((0.0, 0.0, 0.0), (50.0, 30.0, 20.0))


@pytest.mark.parametrize(
    "view,width,height",
    [("front", 50.0, 30.0), ("top", 50.0, 20.0), ("right", 20.0, 30.0)],
)
def test_overall_dimensions_per_view(view: str, width: float, height: float) -> None:
    candidates = calculate_overall_dimensions(BBOX, view)
    assert [(c.direction, c.value) for c in candidates] == [("horizontal", width), ("vertical", height)]
    assert all(c.kind == "overall" and c.priority == 100 for c in candidates)


def test_overall_dimensions_unknown_view() -> None:
    assert calculate_overall_dimensions(BBOX, "isometric") == []


def test_feature_steps_of_block() -> None:
    mesh = box_mesh((0.0, 0.0, 0.0), (50.0, 30.0, 20.0))
    front = generate_all_views(mesh, ["front"])[0]
    steps = calculate_feature_dimensions(front)
    assert sorted((c.direction, round(c.value, 6)) for c in steps) == [("horizontal", 50.0), ("vertical", 30.0)]


def test_small_steps_are_ignored() -> None:
    from orthodraw.services.projection import Edge2D

    view = ProjectedView(
        view="front",
        edges=[
            Edge2D(start=(0.0, 0.0), end=(10.0, 0.0), type="visible"),
            Edge2D(start=(0.0, 0.5), end=(10.0, 0.5), type="visible"),
        ],
        bounds=ViewBounds(0.0, 0.0, 10.0, 0.5),
    )
    assert calculate_feature_dimensions(view) == []


def test_hole_candidates() -> None:
    view = ProjectedView(
        view="front",
        circles=[
            Circle2D(center=(10.0, 10.0), radius=3.0, type="hole"),
            Circle2D(center=(40.0, 20.0), radius=2.0, type="fillet"),
        ],
        bounds=ViewBounds(0.0, 0.0, 50.0, 30.0),
    )
    holes = calculate_hole_dimensions(view)
    assert [(c.value, c.circle_type) for c in holes] == [(6.0, "hole"), (2.0, "fillet")]
    placed = place_dimensions(holes, view.bounds, id_prefix="front")
    assert [d.type for d in placed] == ["diameter", "radius"]
    assert placed[0].is_critical
    assert not placed[1].is_critical


def test_datum_reference_is_never_placed() -> None:
    mesh = box_mesh((0.0, 0.0, 0.0), (50.0, 30.0, 20.0))
    front = generate_all_views(mesh, ["front"])[0]
    datums = select_datums(mesh)
    marker = calculate_datum_reference_dimensions(front, datums)
    assert len(marker) == 1
    assert marker[0].kind == "datum-reference"
    assert place_dimensions(marker, front.bounds) == []


def test_placer_stacks_in_priority_order() -> None:
    bounds = ViewBounds(0.0, 0.0, 50.0, 30.0)
    candidates = [
        DimensionCandidate("feature", "horizontal", 20.0, "front", (0.0, 0.0), (20.0, 0.0), 50, "Step Width 1"),
        DimensionCandidate("overall", "horizontal", 50.0, "front", (0.0, 0.0), (50.0, 0.0), 100, "Overall Width (X)"),
        DimensionCandidate("overall", "vertical", 30.0, "front", (50.0, 0.0), (50.0, 30.0), 100, "Overall Height (Y)"),
        DimensionCandidate("feature", "vertical", 10.0, "front", (55.0, 0.0), (55.0, 10.0), 50, "Step Height 1"),
    ]
    placed = place_dimensions(candidates, bounds, id_prefix="front")
    assert [d.label for d in placed] == ["Overall Width (X)", "Overall Height (Y)", "Step Width 1", "Step Height 1"]
    assert [d.id for d in placed] == ["front_dim_1", "front_dim_2", "front_dim_3", "front_dim_4"]
    by_label = {d.label: d for d in placed}
    assert by_label["Overall Width (X)"].position.start_y == pytest.approx(-10.0)
    assert by_label["Step Width 1"].position.start_y == pytest.approx(-18.0)
    assert by_label["Overall Height (Y)"].position.start_x == pytest.approx(60.0)
    assert by_label["Step Height 1"].position.start_x == pytest.approx(68.0)
    assert by_label["Overall Width (X)"].is_critical
    assert not by_label["Step Width 1"].is_critical
    assert all(d.type == "linear" and d.unit == "mm" for d in placed)


def test_dimension_ids_unique_across_views() -> None:
    mesh = box_mesh((0.0, 0.0, 0.0), (50.0, 30.0, 20.0))
    views = generate_all_views(mesh, ["front", "top", "right"])
    by_view = generate_all_dimensions(views, BBOX, select_datums(mesh))
    ids = [d.id for dims in by_view.values() for d in dims]
    assert len(ids) == len(set(ids))


def test_dimension_dict_round_trip() -> None:
    bounds = ViewBounds(0.0, 0.0, 50.0, 30.0)
    dim = place_dimensions(calculate_overall_dimensions(BBOX, "front", bounds), bounds)[0]
    assert dimension_from_dict(dimension_to_dict(dim)) == dim
