"""
Orthographic projection of a mesh into the six standard views.

Each canonical view is described by a view direction (a unit vector
pointing from the part towards the observer) and a nominal up vector.
From those two vectors an orthonormal screen basis is derived::

    right = normalize(up × view_dir)
    up'   = normalize(view_dir × right)

and every 3D point is projected by dotting it with ``right`` and ``up'``.
With these conventions the front view shows +x to the right and +y up,
the top view places the far side (-z) at the top and the right view
places the front of the part (+z) on the left, matching a third-angle
layout.

``generate_projected_view`` classifies every mesh edge for the view,
projects the edges that should be drawn, skips edges that collapse to a
point, accumulates the 2D bounds and chooses a display scale that maps
the longer side of the view onto a fixed reference length.  Circular
features are then detected on the projected edges.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Literal, Optional, Tuple

import numpy as np

from .config import DrawingConfig
from .edges import EdgeClass, MeshEdge, classify_edge, extract_edges
from .mesh import Mesh, Vec2, Vec3, cross, distance_2d, dot, normalize

logger = logging.getLogger(__name__)

ViewName = Literal["front", "back", "top", "bottom", "right", "left"]

STANDARD_VIEWS: Tuple[ViewName, ...] = ("front", "back", "top", "bottom", "right", "left")

# Unit vectors pointing from the part towards the observer.
VIEW_DIRECTIONS: Dict[str, Vec3] = {
    "front": (0.0, 0.0, 1.0),
    "back": (0.0, 0.0, -1.0),
    "top": (0.0, 1.0, 0.0),
    "bottom": (0.0, -1.0, 0.0),
    "right": (1.0, 0.0, 0.0),
    "left": (-1.0, 0.0, 0.0),
}

VIEW_UP: Dict[str, Vec3] = {
    "front": (0.0, 1.0, 0.0),
    "back": (0.0, 1.0, 0.0),
    "top": (0.0, 0.0, -1.0),
    "bottom": (0.0, 0.0, 1.0),
    "right": (0.0, 1.0, 0.0),
    "left": (0.0, 1.0, 0.0),
}


@dataclass(frozen=True)
class ViewBasis:
    """Orthonormal screen basis for a view."""

    view_dir: Vec3
    right: Vec3
    up: Vec3


@dataclass
class Edge2D:
    """A projected edge.

    ``type`` is the line style (``"visible"`` or ``"hidden"``); the raw
    classification, which distinguishes silhouettes from creases, is kept
    in ``classification``.
    """

    start: Vec2
    end: Vec2
    type: Literal["visible", "hidden"]
    classification: EdgeClass = "visible"


@dataclass
class Circle2D:
    """A circular feature detected in a view."""

    center: Vec2
    radius: float
    type: Literal["hole", "boss", "fillet"]


@dataclass
class ViewBounds:
    min_x: float = 0.0
    min_y: float = 0.0
    max_x: float = 0.0
    max_y: float = 0.0

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @classmethod
    def from_points(cls, points: Iterable[Vec2]) -> "ViewBounds":
        """Return the bounds of ``points``; no points gives a zero box."""
        xs: List[float] = []
        ys: List[float] = []
        for x, y in points:
            xs.append(x)
            ys.append(y)
        if not xs:
            return cls()
        return cls(min_x=min(xs), min_y=min(ys), max_x=max(xs), max_y=max(ys))


@dataclass
class ProjectedView:
    view: ViewName
    edges: List[Edge2D] = field(default_factory=list)
    circles: List[Circle2D] = field(default_factory=list)
    bounds: ViewBounds = field(default_factory=ViewBounds)
    scale: float = 1.0


def view_basis(view: str) -> ViewBasis:
    """Return the orthonormal basis of a canonical view.

    Raises:
        ValueError: If ``view`` is not one of the six standard views.
    """
    view_norm = (view or "").strip().lower()
    if view_norm not in VIEW_DIRECTIONS:
        raise ValueError(f"Unknown view '{view}'. Expected one of {', '.join(STANDARD_VIEWS)}")
    view_dir = VIEW_DIRECTIONS[view_norm]
    up_nominal = VIEW_UP[view_norm]
    right = normalize(cross(up_nominal, view_dir))
    up = normalize(cross(view_dir, right))
    return ViewBasis(view_dir=view_dir, right=right, up=up)


def project_point(point: Vec3, basis: ViewBasis) -> Vec2:
    """Project a 3D point onto the view plane of ``basis``."""
    return (dot(point, basis.right), dot(point, basis.up))


def choose_view_scale(bounds: ViewBounds, reference_size: float = 100.0) -> float:
    """Return the scale mapping the longer side of ``bounds`` to ``reference_size``."""
    longest = max(bounds.width, bounds.height)
    if longest <= 1e-12:
        return 1.0
    return reference_size / longest


def generate_projected_view(
    mesh: Mesh,
    view: str,
    edges: Optional[List[MeshEdge]] = None,
    face_normals: Optional[np.ndarray] = None,
    config: Optional[DrawingConfig] = None,
) -> ProjectedView:
    """Project ``mesh`` into a single standard view.

    Args:
        mesh: The source mesh.
        view: One of the six standard view names.
        edges: Edges previously returned by :func:`extract_edges`.  They
            are extracted here when omitted; pass them in when projecting
            several views of the same mesh.
        face_normals: Precomputed :meth:`Mesh.face_normals`.
        config: Pipeline configuration.

    Returns:
        ProjectedView: Classified 2D edges, detected circles, bounds and
        display scale.  An empty mesh yields a view with no edges, zero
        bounds and a scale of 1.
    """
    # Local import to avoid a cycle; circles uses the types defined here.
    from .circles import detect_circles

    cfg = config or DrawingConfig()
    basis = view_basis(view)
    view_name: ViewName = view.strip().lower()  # type: ignore[assignment]
    if edges is None:
        edges = extract_edges(mesh, cfg.edges)
    if face_normals is None:
        face_normals = mesh.face_normals()

    edges_2d: List[Edge2D] = []
    counts: Dict[str, int] = {"visible": 0, "hidden": 0, "silhouette": 0, "internal": 0}
    suppressed_seams = 0
    for edge in edges:
        classification = classify_edge(edge, face_normals, basis.view_dir, cfg.edges)
        counts[classification] += 1
        if classification == "internal":
            if not edge.is_manifold:
                suppressed_seams += 1
            continue
        start = project_point(edge.v1, basis)
        end = project_point(edge.v2, basis)
        if distance_2d(start, end) < cfg.projection.min_edge_length:
            continue
        edges_2d.append(
            Edge2D(
                start=start,
                end=end,
                type="hidden" if classification == "hidden" else "visible",
                classification=classification,
            )
        )

    bounds = ViewBounds.from_points(p for e in edges_2d for p in (e.start, e.end))
    result = ProjectedView(
        view=view_name,
        edges=edges_2d,
        bounds=bounds,
        scale=choose_view_scale(bounds, cfg.projection.reference_size),
    )
    result.circles = detect_circles(edges_2d, bounds, cfg.circles)
    if suppressed_seams:
        logger.warning(
            "generate_projected_view(%s): suppressed %d non-manifold seam edges",
            view_name,
            suppressed_seams,
        )
    logger.debug(
        "generate_projected_view(%s): classified %s, drew %d edges, %d circles",
        view_name,
        counts,
        len(edges_2d),
        len(result.circles),
    )
    return result


def generate_all_views(
    mesh: Mesh,
    views: Iterable[str] = ("front", "top", "right"),
    config: Optional[DrawingConfig] = None,
) -> List[ProjectedView]:
    """Project ``mesh`` into each requested view.

    Edge extraction and face normals are computed once and shared by all
    views.  A view named more than once is projected once.
    """
    cfg = config or DrawingConfig()
    t0 = time.perf_counter()
    edges = extract_edges(mesh, cfg.edges)
    face_normals = mesh.face_normals()
    projected = [
        generate_projected_view(mesh, v, edges=edges, face_normals=face_normals, config=cfg)
        for v in dict.fromkeys(views)
    ]
    logger.info(
        "generate_all_views: %d views from %d edges in %.4fs",
        len(projected),
        len(edges),
        time.perf_counter() - t0,
    )
    return projected


__all__ = [
    "ViewName",
    "STANDARD_VIEWS",
    "VIEW_DIRECTIONS",
    "VIEW_UP",
    "ViewBasis",
    "Edge2D",
    "Circle2D",
    "ViewBounds",
    "ProjectedView",
    "view_basis",
    "project_point",
    "choose_view_scale",
    "generate_projected_view",
    "generate_all_views",
]
