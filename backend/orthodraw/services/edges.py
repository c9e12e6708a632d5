"""
Mesh edge extraction and view-dependent edge classification.

``extract_edges`` turns a triangle soup into a list of logical edges
with triangle adjacency.  Edges are keyed by their endpoint coordinates
(formatted to a fixed number of decimals, smaller endpoint first), so two
triangles that share a geometric edge merge even when they do not share
entries in the index buffer.

``classify_edge`` decides how an edge appears in a view:

- an edge with one adjacent triangle is a free boundary and always a
  **silhouette**;
- an edge with more than two adjacent triangles is a non-manifold seam
  and is treated as **internal** (suppressed, never an error);
- for a manifold edge the two face normals are compared with the view
  direction.  One face towards and one away from the viewer gives a
  **silhouette**; otherwise a sharp crease (face normals disagreeing by
  more than the configured threshold) is **visible** when both faces
  point at the viewer and **hidden** when both point away.  Smooth
  co-facing pairs are tessellation noise and are **internal**.

The view direction points from the part towards the observer, so a
positive dot product means a face is turned towards the viewer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Sequence, Tuple

import numpy as np

from .config import EdgeConfig
from .mesh import Mesh, Vec3, dot

logger = logging.getLogger(__name__)

EdgeClass = Literal["visible", "hidden", "silhouette", "internal"]


@dataclass
class MeshEdge:
    """An unordered mesh edge and the triangles that reference it."""

    v1: Vec3
    v2: Vec3
    faces: List[int] = field(default_factory=list)

    @property
    def is_manifold(self) -> bool:
        return len(self.faces) <= 2


def _point_key(p: Vec3, precision: int) -> str:
    # Adding 0.0 folds -0.0 into 0.0 so both spell the same key.
    return ",".join(f"{round(c, precision) + 0.0:.{precision}f}" for c in p)


def edge_key(a: Vec3, b: Vec3, precision: int = 6) -> str:
    """Return the canonical key shared by both orientations of an edge."""
    key_a = _point_key(a, precision)
    key_b = _point_key(b, precision)
    return f"{key_a}|{key_b}" if key_a < key_b else f"{key_b}|{key_a}"


def extract_edges(mesh: Mesh, config: Optional[EdgeConfig] = None) -> List[MeshEdge]:
    """Derive the unique edges of ``mesh`` with triangle adjacency.

    Edges are returned in first-seen order.  An empty mesh gives an empty
    list.
    """
    cfg = config or EdgeConfig()
    edge_map: Dict[str, MeshEdge] = {}
    for tri in range(mesh.triangle_count):
        v0, v1, v2 = mesh.triangle_corners(tri)
        for a, b in ((v0, v1), (v1, v2), (v2, v0)):
            key = edge_key(a, b, cfg.key_precision)
            existing = edge_map.get(key)
            if existing is None:
                edge_map[key] = MeshEdge(v1=a, v2=b, faces=[tri])
            else:
                existing.faces.append(tri)
    edges = list(edge_map.values())
    non_manifold = sum(1 for e in edges if not e.is_manifold)
    if non_manifold:
        logger.info(
            "extract_edges: %d edges, %d non-manifold seams (more than two triangles)",
            len(edges),
            non_manifold,
        )
    return edges


def classify_edge_normals(
    normals: Sequence[Vec3],
    view_dir: Vec3,
    config: Optional[EdgeConfig] = None,
) -> EdgeClass:
    """Classify an edge from the normals of its adjacent triangles.

    Args:
        normals: One unit normal per adjacent triangle.
        view_dir: Unit vector pointing from the part towards the viewer.
        config: Thresholds; defaults to :class:`EdgeConfig`.

    Returns:
        One of ``"visible"``, ``"hidden"``, ``"silhouette"`` or ``"internal"``.
    """
    cfg = config or EdgeConfig()
    if len(normals) == 1:
        return "silhouette"
    if len(normals) != 2:
        return "internal"
    n1, n2 = normals
    d1 = dot(n1, view_dir)
    d2 = dot(n2, view_dir)
    if (d1 > 0.0) != (d2 > 0.0):
        return "silhouette"
    sharp = dot(n1, n2) < cfg.sharp_edge_dot
    if not sharp:
        return "internal"
    return "visible" if d1 > 0.0 else "hidden"


def classify_edge(
    edge: MeshEdge,
    face_normals: np.ndarray,
    view_dir: Vec3,
    config: Optional[EdgeConfig] = None,
) -> EdgeClass:
    """Classify ``edge`` for ``view_dir`` using precomputed face normals.

    ``face_normals`` is the ``(M, 3)`` array returned by
    :meth:`Mesh.face_normals`.  The result does not depend on the order
    of ``edge.faces``.
    """
    if len(edge.faces) > 2:
        return "internal"
    normals: List[Tuple[float, float, float]] = []
    for f in edge.faces:
        n = face_normals[f]
        normals.append((float(n[0]), float(n[1]), float(n[2])))
    return classify_edge_normals(normals, view_dir, config)


__all__ = [
    "EdgeClass",
    "MeshEdge",
    "edge_key",
    "extract_edges",
    "classify_edge_normals",
    "classify_edge",
]
