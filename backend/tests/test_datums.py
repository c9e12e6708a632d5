"""
Tests for planar face clustering and datum selection.
"""

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from orthodraw.services.datums import (
    are_perpendicular,
    distance_from_datum,
    project_onto_datum,
    select_datums,
    select_datums_from_faces,
)
from orthodraw.services.mesh import Mesh, box_mesh, dot
from orthodraw.services.planar_faces import PlanarFace, extract_planar_faces


@pytest.fixture
def block() -> Mesh:
    return box_mesh((0.0, 0.0, 0.0), (50.0, 30.0, 20.0))


def test_block_clusters_into_six_faces(block: Mesh) -> None:
    faces = extract_planar_faces(block)
    assert len(faces) == 6
    areas = sorted(round(f.area, 6) for f in faces)
    assert areas == [600.0, 600.0, 1000.0, 1000.0, 1500.0, 1500.0]
    assert sum(len(f.triangles) for f in faces) == 12
    for face in faces:
        assert len(face.vertices) == 4


def test_opposite_faces_are_not_merged(block: Mesh) -> None:
    faces = extract_planar_faces(block)
    z_faces = [f for f in faces if abs(f.normal[2]) > 0.99]
    assert len(z_faces) == 2
    assert {round(f.center[2], 6) for f in z_faces} == {0.0, 20.0}


def test_block_datums_are_mutually_perpendicular(block: Mesh) -> None:
    datums = select_datums(block)
    assert [d.id for d in datums] == ["A", "B", "C"]
    a, b, c = datums
    assert a.area == pytest.approx(1500.0)
    assert b.area == pytest.approx(1000.0)
    assert c.area == pytest.approx(600.0)
    for first, second in ((a, b), (a, c), (b, c)):
        assert abs(dot(first.normal, second.normal)) < 0.1
    assert all(d.type == "planar" for d in datums)


def test_no_faces_gives_no_datums() -> None:
    assert select_datums(Mesh.from_buffers([], [])) == []


def test_missing_perpendicular_faces_are_omitted() -> None:
    faces = [
        PlanarFace(normal=(0.0, 0.0, 1.0), center=(0.0, 0.0, 1.0), area=10.0),
        PlanarFace(normal=(0.0, 0.0, -1.0), center=(0.0, 0.0, 0.0), area=8.0),
    ]
    datums = select_datums_from_faces(faces)
    assert [d.id for d in datums] == ["A"]


def test_are_perpendicular_tolerance() -> None:
    assert are_perpendicular((1.0, 0.0, 0.0), (0.0, 1.0, 0.0))
    assert not are_perpendicular((1.0, 0.0, 0.0), (0.8, 0.6, 0.0))


def test_distance_and_projection(block: Mesh) -> None:
    datum_a = select_datums(block)[0]
    point = (10.0, 10.0, 7.0)
    projected = project_onto_datum(point, datum_a)
    assert distance_from_datum(projected, datum_a) == pytest.approx(0.0, abs=1e-9)
    assert distance_from_datum(point, datum_a) == pytest.approx(abs(point[2] - datum_a.center[2]))
