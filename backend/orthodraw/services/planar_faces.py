"""
Planar face clustering.

A tessellated solid has no notion of "faces" beyond its triangles.  To
find the flat surfaces an engineer would call faces we greedily cluster
triangles: a triangle joins the first existing cluster whose normal is
nearly parallel to its own and whose plane passes within a small
distance of the triangle's centroid.  Otherwise the triangle seeds a new
cluster.  Each cluster keeps an area-weighted centroid, its total area
and the triangles and vertices that contributed to it.

The result depends on the triangulation and on the triangle order.  The
matching loop is quadratic in the number of clusters, which is fine for
the part meshes produced by CAD tessellation; a spatial hash keyed on a
quantised normal and plane offset would make it near-linear for very
large meshes.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Set

from .config import ClusterConfig
from .mesh import Mesh, Vec3, dot, sub

logger = logging.getLogger(__name__)


@dataclass
class PlanarFace:
    """A cluster of coplanar triangles."""

    normal: Vec3
    center: Vec3
    area: float
    triangles: List[int] = field(default_factory=list)
    vertices: Set[int] = field(default_factory=set)

    def plane_distance(self, point: Vec3) -> float:
        """Signed distance from ``point`` to this face's plane."""
        return dot(sub(point, self.center), self.normal)


def extract_planar_faces(mesh: Mesh, config: Optional[ClusterConfig] = None) -> List[PlanarFace]:
    """Group the triangles of ``mesh`` into planar faces.

    Degenerate (zero-area) triangles carry no orientation and are
    skipped.  An empty mesh yields an empty list.
    """
    cfg = config or ClusterConfig()
    if mesh.is_empty:
        return []
    t0 = time.perf_counter()
    normals = mesh.face_normals()
    areas = mesh.face_areas()
    centroids = mesh.face_centroids()

    faces: List[PlanarFace] = []
    skipped = 0
    for tri in range(mesh.triangle_count):
        area = float(areas[tri])
        if area <= 0.0:
            skipped += 1
            continue
        normal: Vec3 = (float(normals[tri][0]), float(normals[tri][1]), float(normals[tri][2]))
        center: Vec3 = (float(centroids[tri][0]), float(centroids[tri][1]), float(centroids[tri][2]))
        corners = [int(i) for i in mesh.triangles[tri]]

        match: Optional[PlanarFace] = None
        for face in faces:
            if abs(dot(normal, face.normal)) <= cfg.normal_tolerance:
                continue
            if abs(face.plane_distance(center)) < cfg.plane_tolerance:
                match = face
                break

        if match is None:
            faces.append(
                PlanarFace(normal=normal, center=center, area=area, triangles=[tri], vertices=set(corners))
            )
            continue

        total = match.area + area
        match.center = (
            (match.center[0] * match.area + center[0] * area) / total,
            (match.center[1] * match.area + center[1] * area) / total,
            (match.center[2] * match.area + center[2] * area) / total,
        )
        match.area = total
        match.triangles.append(tri)
        match.vertices.update(corners)

    logger.info(
        "extract_planar_faces: %d triangles -> %d faces (%d degenerate skipped) in %.4fs",
        mesh.triangle_count,
        len(faces),
        skipped,
        time.perf_counter() - t0,
    )
    return faces


__all__ = ["PlanarFace", "extract_planar_faces"]
