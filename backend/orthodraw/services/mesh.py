"""
Triangle mesh and bounding box primitives shared by the drawing pipeline.

The mesh handed to the pipeline is a plain triangle soup: a flat list of
vertex coordinates, a flat index buffer with three indices per triangle
and optional per-vertex normals.  :class:`Mesh` wraps those buffers in
NumPy arrays once so the per-triangle quantities used by several stages
(normals, areas and centroids) can be computed in a vectorised manner.
The pipeline only ever reads a mesh; nothing in this package mutates it.

Small pure-Python vector helpers are provided for the scalar code paths
(projection, datum geometry) where tuples are more convenient than
arrays.  ``normalize`` returns the zero vector for zero-length input so
degenerate geometry never raises.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

Vec3 = Tuple[float, float, float]
Vec2 = Tuple[float, float]


def dot(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the dot product of two 3D vectors."""
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def cross(a: Sequence[float], b: Sequence[float]) -> Vec3:
    """Return the cross product ``a × b``."""
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def sub(a: Sequence[float], b: Sequence[float]) -> Vec3:
    """Subtract two 3D vectors (a - b)."""
    return (a[0] - b[0], a[1] - b[1], a[2] - b[2])


def length(v: Sequence[float]) -> float:
    return math.sqrt(v[0] * v[0] + v[1] * v[1] + v[2] * v[2])


def normalize(v: Sequence[float]) -> Vec3:
    """Return ``v`` scaled to unit length, or the zero vector if ``v`` is zero."""
    n = length(v)
    if n == 0.0:
        return (0.0, 0.0, 0.0)
    return (v[0] / n, v[1] / n, v[2] / n)


def distance_2d(a: Sequence[float], b: Sequence[float]) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


@dataclass(frozen=True, eq=False)
class Mesh:
    """Read-only triangle mesh.

    Attributes:
        positions: ``(N, 3)`` float array of vertex positions.
        triangles: ``(M, 3)`` integer array of vertex indices.
        normals: Optional ``(N, 3)`` array of per-vertex normals.  The
            pipeline derives face normals from the triangle winding and
            does not rely on these.
    """

    positions: np.ndarray
    triangles: np.ndarray
    normals: Optional[np.ndarray] = None

    @classmethod
    def from_buffers(
        cls,
        vertices: Iterable[float],
        indices: Iterable[int],
        normals: Optional[Iterable[float]] = None,
    ) -> "Mesh":
        """Build a mesh from flat vertex, index and normal buffers.

        Raises:
            ValueError: If a buffer length is not a multiple of three, if
                the normal buffer does not match the vertex buffer, or if
                an index references a vertex that does not exist.
        """
        positions = np.asarray(list(vertices), dtype=np.float64)
        if positions.size % 3 != 0:
            raise ValueError(f"vertex buffer length {positions.size} is not a multiple of 3")
        positions = positions.reshape(-1, 3)
        tris = np.asarray(list(indices), dtype=np.int64)
        if tris.size % 3 != 0:
            raise ValueError(f"index buffer length {tris.size} is not a multiple of 3")
        tris = tris.reshape(-1, 3)
        if tris.size and (tris.min() < 0 or tris.max() >= len(positions)):
            raise ValueError("index buffer references vertices outside the vertex buffer")
        normal_arr: Optional[np.ndarray] = None
        if normals is not None:
            normal_list = list(normals)
            if normal_list:
                normal_arr = np.asarray(normal_list, dtype=np.float64)
                if normal_arr.size != positions.size:
                    raise ValueError("normal buffer must match the vertex buffer length")
                normal_arr = normal_arr.reshape(-1, 3)
        return cls(positions=positions, triangles=tris, normals=normal_arr)

    @property
    def vertex_count(self) -> int:
        return int(self.positions.shape[0])

    @property
    def triangle_count(self) -> int:
        return int(self.triangles.shape[0])

    @property
    def is_empty(self) -> bool:
        return self.triangle_count == 0

    def vertex(self, index: int) -> Vec3:
        p = self.positions[index]
        return (float(p[0]), float(p[1]), float(p[2]))

    def triangle_corners(self, tri: int) -> Tuple[Vec3, Vec3, Vec3]:
        i0, i1, i2 = self.triangles[tri]
        return self.vertex(int(i0)), self.vertex(int(i1)), self.vertex(int(i2))

    def _edge_cross(self) -> np.ndarray:
        if self.is_empty:
            return np.zeros((0, 3), dtype=np.float64)
        v0 = self.positions[self.triangles[:, 0]]
        v1 = self.positions[self.triangles[:, 1]]
        v2 = self.positions[self.triangles[:, 2]]
        return np.cross(v1 - v0, v2 - v0)

    def face_normals(self) -> np.ndarray:
        """Return unit face normals from the triangle winding.

        Degenerate (zero-area) triangles get a zero normal.
        """
        c = self._edge_cross()
        lengths = np.linalg.norm(c, axis=1, keepdims=True)
        out = np.zeros_like(c)
        np.divide(c, lengths, out=out, where=lengths > 0.0)
        return out

    def face_areas(self) -> np.ndarray:
        return 0.5 * np.linalg.norm(self._edge_cross(), axis=1)

    def face_centroids(self) -> np.ndarray:
        if self.is_empty:
            return np.zeros((0, 3), dtype=np.float64)
        return self.positions[self.triangles].mean(axis=1)

    def to_buffers(self) -> Tuple[List[float], List[int], List[float]]:
        """Return flat ``(vertices, indices, normals)`` lists."""
        normals = self.normals.reshape(-1).tolist() if self.normals is not None else []
        return (
            self.positions.reshape(-1).tolist(),
            [int(i) for i in self.triangles.reshape(-1)],
            normals,
        )


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned bounding box with derived extents.

    ``width`` runs along x, ``height`` along y and ``depth`` along z.
    """

    min_x: float
    min_y: float
    min_z: float
    max_x: float
    max_y: float
    max_z: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def depth(self) -> float:
        return self.max_z - self.min_z

    @property
    def min(self) -> Vec3:
        return (self.min_x, self.min_y, self.min_z)

    @property
    def max(self) -> Vec3:
        return (self.max_x, self.max_y, self.max_z)

    @classmethod
    def from_min_max(cls, bbox_min: Sequence[float], bbox_max: Sequence[float]) -> "BoundingBox":
        return cls(
            min_x=float(bbox_min[0]),
            min_y=float(bbox_min[1]),
            min_z=float(bbox_min[2]),
            max_x=float(bbox_max[0]),
            max_y=float(bbox_max[1]),
            max_z=float(bbox_max[2]),
        )

    @classmethod
    def from_mesh(cls, mesh: Mesh) -> "BoundingBox":
        """Compute the box around the vertices referenced by triangles.

        An empty mesh yields an all-zero box.
        """
        if mesh.is_empty:
            return cls(0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
        used = mesh.positions[np.unique(mesh.triangles.reshape(-1))]
        return cls.from_min_max(used.min(axis=0), used.max(axis=0))


def box_mesh(bbox_min: Sequence[float], bbox_max: Sequence[float]) -> Mesh:
    """Return a closed, outward-wound 12-triangle box mesh."""
    x0, y0, z0 = (float(v) for v in bbox_min)
    x1, y1, z1 = (float(v) for v in bbox_max)
    # Corner i has x from bit 0, y from bit 1 and z from bit 2.
    corners = [
        (x0, y0, z0), (x1, y0, z0), (x0, y1, z0), (x1, y1, z0),
        (x0, y0, z1), (x1, y0, z1), (x0, y1, z1), (x1, y1, z1),
    ]
    triangles = [
        (0, 2, 1), (1, 2, 3),  # -z
        (4, 5, 6), (5, 7, 6),  # +z
        (0, 1, 4), (1, 5, 4),  # -y
        (2, 6, 3), (3, 6, 7),  # +y
        (0, 4, 2), (2, 4, 6),  # -x
        (1, 3, 5), (3, 7, 5),  # +x
    ]
    vertices = [c for corner in corners for c in corner]
    indices = [i for tri in triangles for i in tri]
    return Mesh.from_buffers(vertices, indices)


__all__ = [
    "Vec2",
    "Vec3",
    "dot",
    "cross",
    "sub",
    "length",
    "normalize",
    "distance_2d",
    "Mesh",
    "BoundingBox",
    "box_mesh",
]
