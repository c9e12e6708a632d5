"""
Circle and arc detection on projected view edges.

A triangulated cylinder projects to a polygon with many short, equally
turning segments.  This module recovers those curves:

1. visible edges are snapped on a small grid and duplicate segments are
   dropped;
2. the segments are chained through vertices of degree two, giving open
   chains and closed cycles;
3. each chain is split into runs of segments that keep turning in the
   same direction by a small, consistent angle and have similar length;
4. a least-squares circle is fitted to every long enough run and kept
   when the radial residual and segment lengths are consistent with a
   tessellated circle.

A run that closes on itself is a full circle: ``"hole"`` when it lies
strictly inside the view outline and ``"boss"`` when it touches the
outline.  A partial arc is reported as ``"fillet"``.  The classification
is two-dimensional; a boss standing inside the outline of a larger part
is indistinguishable from a hole in a single view.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import CircleConfig
from .mesh import Vec2, distance_2d
from .projection import Circle2D, Edge2D, ViewBounds

logger = logging.getLogger(__name__)


@dataclass
class EdgeChain:
    """Ordered point chain built from connected projected segments."""

    points: List[Vec2]
    closed: bool

    @property
    def segment_count(self) -> int:
        return len(self.points) if self.closed else len(self.points) - 1


def build_edge_chains(edges: Sequence[Edge2D], snap_tolerance: float = 1e-4) -> List[EdgeChain]:
    """Chain segments through degree-two vertices.

    Raises:
        ValueError: If ``snap_tolerance`` is not positive.
    """
    if snap_tolerance <= 0.0:
        raise ValueError("snap_tolerance must be positive")
    key_to_index: Dict[Tuple[int, int], int] = {}
    points: List[Vec2] = []
    segments: List[Tuple[int, int]] = []
    seen: set[Tuple[int, int]] = set()

    def index_of(p: Vec2) -> int:
        key = (int(round(p[0] / snap_tolerance)), int(round(p[1] / snap_tolerance)))
        idx = key_to_index.get(key)
        if idx is None:
            idx = len(points)
            key_to_index[key] = idx
            points.append(p)
        return idx

    for e in edges:
        i = index_of(e.start)
        j = index_of(e.end)
        if i == j:
            continue
        seg = (i, j) if i < j else (j, i)
        if seg in seen:
            continue
        seen.add(seg)
        segments.append(seg)

    adj: Dict[int, List[int]] = {i: [] for i in range(len(points))}
    for i, j in segments:
        adj[i].append(j)
        adj[j].append(i)

    visited: set[frozenset[int]] = set()
    chains: List[EdgeChain] = []

    # Open chains start at vertices that are not simple pass-throughs.
    for start, neighbours in adj.items():
        if len(neighbours) == 2:
            continue
        for nb in neighbours:
            if frozenset({start, nb}) in visited:
                continue
            visited.add(frozenset({start, nb}))
            path = [start, nb]
            prev, curr = start, nb
            while len(adj[curr]) == 2:
                nxt = adj[curr][0] if adj[curr][1] == prev else adj[curr][1]
                if frozenset({curr, nxt}) in visited:
                    break
                visited.add(frozenset({curr, nxt}))
                path.append(nxt)
                prev, curr = curr, nxt
            chains.append(EdgeChain(points=[points[k] for k in path], closed=False))

    # Whatever remains consists of cycles of degree-two vertices.
    for i, j in segments:
        if frozenset({i, j}) in visited:
            continue
        visited.add(frozenset({i, j}))
        path = [i, j]
        prev, curr = i, j
        closed = False
        while True:
            nxt: Optional[int] = None
            for nb in adj[curr]:
                if nb != prev and frozenset({curr, nb}) not in visited:
                    nxt = nb
                    break
            if nxt is None:
                break
            visited.add(frozenset({curr, nxt}))
            if nxt == path[0]:
                closed = True
                break
            path.append(nxt)
            prev, curr = curr, nxt
        chains.append(EdgeChain(points=[points[k] for k in path], closed=closed))
    return chains


def fit_circle(points: Sequence[Vec2]) -> Optional[Tuple[Vec2, float, float]]:
    """Least-squares (Kasa) circle fit.

    Returns:
        ``(center, radius, rms_residual)`` or ``None`` when the points are
        too few or collinear.
    """
    if len(points) < 3:
        return None
    pts = np.asarray(points, dtype=np.float64)
    x = pts[:, 0]
    y = pts[:, 1]
    a_mat = np.column_stack([2.0 * x, 2.0 * y, np.ones_like(x)])
    rhs = x * x + y * y
    sol, _, rank, _ = np.linalg.lstsq(a_mat, rhs, rcond=None)
    if rank < 3:
        return None
    cx, cy, c = (float(v) for v in sol)
    r_sq = c + cx * cx + cy * cy
    if not math.isfinite(r_sq) or r_sq <= 0.0:
        return None
    radius = math.sqrt(r_sq)
    residual = np.hypot(x - cx, y - cy) - radius
    rms = float(np.sqrt(np.mean(residual * residual)))
    return (cx, cy), radius, rms


def _turn(a: Vec2, b: Vec2, c: Vec2) -> float:
    d1 = (b[0] - a[0], b[1] - a[1])
    d2 = (c[0] - b[0], c[1] - b[1])
    return math.atan2(d1[0] * d2[1] - d1[1] * d2[0], d1[0] * d2[0] + d1[1] * d2[1])


def _compatible(seg_a: Tuple[Vec2, Vec2], seg_b: Tuple[Vec2, Vec2], cfg: CircleConfig) -> float:
    """Return the signed turn between two consecutive segments, or 0.0 if they cannot share an arc."""
    turn = _turn(seg_a[0], seg_a[1], seg_b[1])
    if not (math.radians(cfg.min_turn_degrees) <= abs(turn) <= math.radians(cfg.max_turn_degrees)):
        return 0.0
    la = distance_2d(*seg_a)
    lb = distance_2d(*seg_b)
    if la <= 0.0 or lb <= 0.0:
        return 0.0
    if max(la, lb) / min(la, lb) > cfg.max_length_ratio:
        return 0.0
    return turn


def _split_runs(chain: EdgeChain, cfg: CircleConfig) -> List[Tuple[List[Vec2], bool]]:
    """Split a chain into runs of arc-compatible segments.

    Returns ``(points, closed)`` pairs; ``closed`` is True only when an
    entire closed chain forms one consistent run.
    """
    pts = chain.points
    n = len(pts)
    if chain.closed:
        segs = [(pts[k], pts[(k + 1) % n]) for k in range(n)]
        turns = [_compatible(segs[k], segs[(k + 1) % n], cfg) for k in range(n)]
        if all(t != 0.0 for t in turns) and (all(t > 0 for t in turns) or all(t < 0 for t in turns)):
            return [(list(pts), True)]
        # Rotate so the sequence starts right after a break.
        breaks = [k for k in range(n) if turns[k] == 0.0 or (turns[k] > 0) != (turns[k - 1] > 0)]
        start = (breaks[0] + 1) % n if breaks else 0
        segs = segs[start:] + segs[:start]
    else:
        segs = [(pts[k], pts[k + 1]) for k in range(n - 1)]

    runs: List[Tuple[List[Vec2], bool]] = []
    current: List[Tuple[Vec2, Vec2]] = []
    sign = 0.0
    for seg in segs:
        if not current:
            current = [seg]
            sign = 0.0
            continue
        turn = _compatible(current[-1], seg, cfg)
        if turn != 0.0 and (sign == 0.0 or (turn > 0) == (sign > 0)):
            current.append(seg)
            sign = turn
            continue
        runs.append(([current[0][0]] + [s[1] for s in current], False))
        current = [seg]
        sign = 0.0
    if current:
        runs.append(([current[0][0]] + [s[1] for s in current], False))
    return runs


def _sweep(points: Sequence[Vec2], center: Vec2) -> float:
    total = 0.0
    for a, b in zip(points, points[1:]):
        a0 = math.atan2(a[1] - center[1], a[0] - center[0])
        a1 = math.atan2(b[1] - center[1], b[0] - center[0])
        d = a1 - a0
        while d > math.pi:
            d -= 2.0 * math.pi
        while d < -math.pi:
            d += 2.0 * math.pi
        total += d
    return total


def _classify_closed(center: Vec2, radius: float, bounds: ViewBounds, tol: float) -> str:
    inside = (
        center[0] - radius > bounds.min_x + tol
        and center[0] + radius < bounds.max_x - tol
        and center[1] - radius > bounds.min_y + tol
        and center[1] + radius < bounds.max_y - tol
    )
    return "hole" if inside else "boss"


def detect_circles(
    edges: Sequence[Edge2D],
    bounds: ViewBounds,
    config: Optional[CircleConfig] = None,
) -> List[Circle2D]:
    """Detect circles and arcs among the visible edges of a view."""
    cfg = config or CircleConfig()
    visible = [e for e in edges if e.type == "visible"]
    if not visible:
        return []
    circles: List[Circle2D] = []
    for chain in build_edge_chains(visible, cfg.snap_tolerance):
        for run_points, closed in _split_runs(chain, cfg):
            seg_count = len(run_points) if closed else len(run_points) - 1
            needed = cfg.min_segments if closed else cfg.min_arc_segments
            if seg_count < needed:
                continue
            fit = fit_circle(run_points)
            if fit is None:
                continue
            center, radius, rms = fit
            if rms > cfg.fit_tolerance * radius:
                continue
            ring = list(run_points) + [run_points[0]] if closed else list(run_points)
            if any(distance_2d(a, b) > cfg.max_segment_ratio * radius for a, b in zip(ring, ring[1:])):
                continue
            full_turn = closed or abs(_sweep(ring, center)) >= 2.0 * math.pi * 0.98
            if full_turn:
                kind = _classify_closed(center, radius, bounds, cfg.outline_tolerance)
            else:
                kind = "fillet"
            duplicate = any(
                c.type == kind
                and distance_2d(c.center, center) <= cfg.fit_tolerance * radius
                and abs(c.radius - radius) <= cfg.fit_tolerance * radius
                for c in circles
            )
            if not duplicate:
                circles.append(Circle2D(center=center, radius=radius, type=kind))  # type: ignore[arg-type]
    if circles:
        logger.debug("detect_circles: %d circles/arcs found", len(circles))
    return circles


__all__ = [
    "EdgeChain",
    "build_edge_chains",
    "fit_circle",
    "detect_circles",
]
