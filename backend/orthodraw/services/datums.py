"""
Datum reference frame selection.

Engineering drawings measure features from up to three mutually
perpendicular reference planes: the primary datum A, the secondary
datum B and the tertiary datum C.  Lacking design intent we pick them
from the planar faces of the part by size:

- A is the largest planar face;
- B is the largest remaining face whose normal is perpendicular to A;
- C is the largest remaining face perpendicular to both A and B.

B and C are simply omitted when no qualifying face exists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Literal, Optional, Sequence

from .config import DatumConfig
from .mesh import Mesh, Vec3, dot, sub
from .planar_faces import PlanarFace, extract_planar_faces

logger = logging.getLogger(__name__)

DatumId = Literal["A", "B", "C"]


@dataclass
class DatumFeature:
    id: DatumId
    normal: Vec3
    center: Vec3
    area: float
    vertices: List[int] = field(default_factory=list)
    type: Literal["planar", "cylindrical", "point"] = "planar"


def are_perpendicular(n1: Vec3, n2: Vec3, tolerance: float = 0.1) -> bool:
    return abs(dot(n1, n2)) < tolerance


def _datum_from_face(datum_id: DatumId, face: PlanarFace) -> DatumFeature:
    return DatumFeature(
        id=datum_id,
        normal=face.normal,
        center=face.center,
        area=face.area,
        vertices=sorted(face.vertices),
    )


def select_datums_from_faces(
    faces: Sequence[PlanarFace],
    config: Optional[DatumConfig] = None,
) -> List[DatumFeature]:
    """Pick datums A, B and C from already clustered faces.

    Returns:
        Between zero and three datums, always in A, B, C order.  Any two
        returned datums have normals with an absolute dot product below
        the configured tolerance.
    """
    cfg = config or DatumConfig()
    if not faces:
        logger.warning("select_datums: no planar faces found")
        return []
    ranked = sorted(faces, key=lambda f: f.area, reverse=True)
    tol = cfg.perpendicular_tolerance

    face_a = ranked[0]
    datums = [_datum_from_face("A", face_a)]

    face_b: Optional[PlanarFace] = None
    for face in ranked[1:]:
        if are_perpendicular(face.normal, face_a.normal, tol):
            face_b = face
            break
    if face_b is not None:
        datums.append(_datum_from_face("B", face_b))
        for face in ranked[1:]:
            if face is face_b:
                continue
            if are_perpendicular(face.normal, face_a.normal, tol) and are_perpendicular(
                face.normal, face_b.normal, tol
            ):
                datums.append(_datum_from_face("C", face))
                break

    logger.info(
        "select_datums: %s",
        ", ".join(
            f"{d.id} n=({d.normal[0]:.2f},{d.normal[1]:.2f},{d.normal[2]:.2f}) area={d.area:.1f}"
            for d in datums
        ),
    )
    return datums


def select_datums(
    mesh: Mesh,
    datum_config: Optional[DatumConfig] = None,
    faces: Optional[Sequence[PlanarFace]] = None,
) -> List[DatumFeature]:
    """Cluster ``mesh`` into planar faces (unless given) and select datums."""
    if faces is None:
        faces = extract_planar_faces(mesh)
    return select_datums_from_faces(faces, datum_config)


def distance_from_datum(point: Vec3, datum: DatumFeature) -> float:
    """Unsigned distance from ``point`` to the datum plane."""
    return abs(dot(sub(point, datum.center), datum.normal))


def project_onto_datum(point: Vec3, datum: DatumFeature) -> Vec3:
    """Orthogonal projection of ``point`` onto the datum plane."""
    d = dot(sub(point, datum.center), datum.normal)
    return (
        point[0] - d * datum.normal[0],
        point[1] - d * datum.normal[1],
        point[2] - d * datum.normal[2],
    )


__all__ = [
    "DatumId",
    "DatumFeature",
    "are_perpendicular",
    "select_datums_from_faces",
    "select_datums",
    "distance_from_datum",
    "project_onto_datum",
]
