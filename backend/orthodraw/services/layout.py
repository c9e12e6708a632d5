"""
Dimension layout refinement by simulated annealing.

The placer stacks dimensions in a fixed pattern.  This module nudges
those positions to reduce clutter with a small Monte Carlo search in the
spirit of label-placement annealers:

* every linear dimension may move only along the axis perpendicular to
  its dimension line (horizontal dimensions move in y, vertical ones in
  x);
* the energy of a dimension adds up

  - the overlap area of its footprint with every other dimension in the
    same view (weight ``overlap``),
  - a linear penalty for same-orientation neighbours closer than the
    minimum spacing (weight ``spacing``),
  - a linear penalty for drifting further than ``bounds_margin`` outside
    the view bounds (weight ``out_of_bounds``),
  - the distance from its ideal stacked position (weight ``distance``);

* each sweep perturbs every dimension once, in shuffled order, by a
  uniform random step.  A move is kept when it lowers the energy or,
  otherwise, with Boltzmann probability ``exp(-dE / T)``.  The
  temperature starts at ``initial_temperature`` and is multiplied by
  ``cooling_rate`` after every sweep.

Views are optimised independently.  The search is local; it improves a
layout statistically and does not guarantee the absence of overlaps.
All randomness comes from a :class:`numpy.random.Generator`, so a seed
reproduces a layout exactly.

Set ``LAYOUT_DEBUG`` in the environment to log the energy every hundred
sweeps.
"""

from __future__ import annotations

import logging
import math
import os
import time
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .config import LayoutConfig
from .dimensions import Dimension, Direction
from .projection import ProjectedView, ViewBounds

logger = logging.getLogger(__name__)

Rect = Tuple[float, float, float, float]


@dataclass
class LayoutDimension:
    """Working copy of a linear dimension inside the optimizer.

    ``x``/``y`` is the centre of the dimension line; only the coordinate
    perpendicular to the line changes during optimisation.
    """

    id: str
    orientation: Direction
    value: float
    anchor_start: Tuple[float, float]
    anchor_end: Tuple[float, float]
    x: float
    y: float
    width: float
    height: float
    view: str
    offset: int

    @property
    def coordinate(self) -> float:
        return self.y if self.orientation == "horizontal" else self.x

    @coordinate.setter
    def coordinate(self, value: float) -> None:
        if self.orientation == "horizontal":
            self.y = value
        else:
            self.x = value


def text_width(value: float) -> float:
    """Approximate rendered width of a dimension value."""
    return len(f"{value:.2f}") * 2.5 + 4.0


def dimension_bounds(dim: LayoutDimension) -> Rect:
    """Footprint ``(x1, y1, x2, y2)`` of a dimension line and its text band."""
    if dim.orientation == "horizontal":
        return (
            min(dim.anchor_start[0], dim.anchor_end[0]),
            dim.y - dim.height / 2.0,
            max(dim.anchor_start[0], dim.anchor_end[0]),
            dim.y + dim.height / 2.0,
        )
    return (
        dim.x - dim.height / 2.0,
        min(dim.anchor_start[1], dim.anchor_end[1]),
        dim.x + dim.height / 2.0,
        max(dim.anchor_start[1], dim.anchor_end[1]),
    )


def rect_overlap(a: Rect, b: Rect) -> float:
    """Overlap area of two axis-aligned rectangles (0.0 if disjoint)."""
    x_overlap = max(0.0, min(a[2], b[2]) - max(a[0], b[0]))
    y_overlap = max(0.0, min(a[3], b[3]) - max(a[1], b[1]))
    return x_overlap * y_overlap


def ideal_coordinate(dim: LayoutDimension, bounds: ViewBounds, config: LayoutConfig) -> float:
    """Stacked position of ``dim``: below the view for horizontal, right of it for vertical."""
    stack = config.dimension_offset + dim.offset * config.stacking_increment
    if dim.orientation == "horizontal":
        return bounds.min_y - stack
    return bounds.max_x + stack


def calculate_energy(
    index: int,
    dimensions: Sequence[LayoutDimension],
    bounds: ViewBounds,
    config: LayoutConfig,
) -> float:
    """Energy of ``dimensions[index]`` against its same-view neighbours."""
    dim = dimensions[index]
    w = config.weights
    energy = 0.0
    rect = dimension_bounds(dim)

    for j, other in enumerate(dimensions):
        if j == index or other.view != dim.view:
            continue
        energy += rect_overlap(rect, dimension_bounds(other)) * w.overlap
        if other.orientation == dim.orientation:
            spacing = abs(dim.coordinate - other.coordinate)
            if spacing < config.min_dimension_spacing:
                energy += (config.min_dimension_spacing - spacing) * w.spacing

    margin = config.bounds_margin
    if dim.orientation == "horizontal":
        lo, hi, pos = bounds.min_y - margin, bounds.max_y + margin, dim.y
    else:
        lo, hi, pos = bounds.min_x - margin, bounds.max_x + margin, dim.x
    if pos < lo:
        energy += (lo - pos) * w.out_of_bounds
    elif pos > hi:
        energy += (pos - hi) * w.out_of_bounds

    energy += abs(dim.coordinate - ideal_coordinate(dim, bounds, config)) * w.distance
    return energy


def total_energy(dimensions: Sequence[LayoutDimension], bounds: ViewBounds, config: LayoutConfig) -> float:
    return sum(calculate_energy(i, dimensions, bounds, config) for i in range(len(dimensions)))


def mc_move(
    index: int,
    dimensions: Sequence[LayoutDimension],
    bounds: ViewBounds,
    temperature: float,
    config: LayoutConfig,
    rng: np.random.Generator,
) -> bool:
    """Attempt one random move of ``dimensions[index]``.

    Returns:
        True if the move was accepted, False if it was reverted.
    """
    dim = dimensions[index]
    old = dim.coordinate
    old_energy = calculate_energy(index, dimensions, bounds, config)
    dim.coordinate = old + (rng.random() - 0.5) * config.move_range
    delta = calculate_energy(index, dimensions, bounds, config) - old_energy
    if delta < 0.0:
        return True
    if temperature > 0.0 and rng.random() < math.exp(-min(delta / temperature, 700.0)):
        return True
    dim.coordinate = old
    return False


def simulated_annealing(
    dimensions: List[LayoutDimension],
    bounds: ViewBounds,
    config: LayoutConfig,
    rng: np.random.Generator,
) -> float:
    """Run the annealing schedule in place and return the final total energy."""
    if not dimensions:
        return 0.0
    debug = bool(os.getenv("LAYOUT_DEBUG"))
    temperature = config.initial_temperature
    accepted = 0
    for sweep in range(config.max_iterations):
        for i in rng.permutation(len(dimensions)):
            if mc_move(int(i), dimensions, bounds, temperature, config, rng):
                accepted += 1
        temperature *= config.cooling_rate
        if debug and sweep % 100 == 0:
            logger.debug(
                "simulated_annealing: sweep=%d T=%.3g energy=%.3f",
                sweep,
                temperature,
                total_energy(dimensions, bounds, config),
            )
    final = total_energy(dimensions, bounds, config)
    logger.debug(
        "simulated_annealing: %d dims, %d/%d moves accepted, final energy %.3f",
        len(dimensions),
        accepted,
        config.max_iterations * len(dimensions),
        final,
    )
    return final


def initialize_layout(
    dimensions: Sequence[Dimension],
    bounds_by_view: Dict[str, ViewBounds],
    config: LayoutConfig,
) -> Dict[str, List[LayoutDimension]]:
    """Build working dimensions per view.

    Only linear dimensions in views with known bounds take part.  Within
    each view and orientation the stacking index follows the current
    distance from the view, so the ideal order matches the placer's.
    """
    groups: Dict[Tuple[str, str], List[Dimension]] = {}
    for dim in dimensions:
        if dim.type != "linear" or dim.view not in bounds_by_view:
            continue
        orientation = "horizontal" if dim.position.is_horizontal else "vertical"
        groups.setdefault((dim.view, orientation), []).append(dim)

    layout: Dict[str, List[LayoutDimension]] = {}
    for (view, orientation), dims in groups.items():
        bounds = bounds_by_view[view]
        if orientation == "horizontal":
            dims = sorted(dims, key=lambda d: bounds.min_y - d.position.start_y)
        else:
            dims = sorted(dims, key=lambda d: d.position.start_x - bounds.max_x)
        for offset, dim in enumerate(dims):
            p = dim.position
            layout.setdefault(view, []).append(
                LayoutDimension(
                    id=dim.id,
                    orientation=orientation,  # type: ignore[arg-type]
                    value=dim.value,
                    anchor_start=(p.start_x, p.start_y),
                    anchor_end=(p.end_x, p.end_y),
                    x=(p.start_x + p.end_x) / 2.0,
                    y=(p.start_y + p.end_y) / 2.0,
                    width=text_width(dim.value),
                    height=config.text_height,
                    view=view,
                    offset=offset,
                )
            )
    return layout


def _apply_position(dim: Dimension, layout_dim: LayoutDimension, config: LayoutConfig) -> Dimension:
    p = dim.position
    if layout_dim.orientation == "horizontal":
        position = replace(p, start_y=layout_dim.y, end_y=layout_dim.y, text_y=layout_dim.y - config.text_offset)
    else:
        position = replace(p, start_x=layout_dim.x, end_x=layout_dim.x, text_x=layout_dim.x + config.text_offset)
    return replace(dim, position=position)


def optimize_dimension_layout(
    dimensions: Sequence[Dimension],
    views: Sequence[ProjectedView],
    config: Optional[LayoutConfig] = None,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> List[Dimension]:
    """Refine dimension positions view by view.

    Args:
        dimensions: Placed dimensions (any views).
        views: Projected views supplying the bounds.
        config: Annealing settings.
        seed: Seed for a fresh generator; ignored when ``rng`` is given.
        rng: Generator to draw from.

    Returns:
        New :class:`Dimension` objects in the input order.  Dimensions
        that do not take part (non-linear, unknown view) are returned
        unchanged.
    """
    cfg = config or LayoutConfig()
    generator = rng if rng is not None else np.random.default_rng(seed)
    bounds_by_view = {v.view: v.bounds for v in views}
    if not bounds_by_view or not dimensions:
        return list(dimensions)

    t0 = time.perf_counter()
    layout = initialize_layout(dimensions, bounds_by_view, cfg)
    by_id: Dict[str, LayoutDimension] = {}
    for view, layout_dims in layout.items():
        energy = simulated_annealing(layout_dims, bounds_by_view[view], cfg, generator)
        logger.debug("optimize_dimension_layout(%s): %d dims, energy %.3f", view, len(layout_dims), energy)
        by_id.update({ld.id: ld for ld in layout_dims})

    result = [_apply_position(d, by_id[d.id], cfg) if d.id in by_id else d for d in dimensions]
    logger.info(
        "optimize_dimension_layout: %d dims across %d views in %.4fs",
        len(by_id),
        len(layout),
        time.perf_counter() - t0,
    )
    return result


def stack_dimensions(
    dimensions: Sequence[Dimension],
    bounds: ViewBounds,
    config: Optional[LayoutConfig] = None,
) -> List[Dimension]:
    """Deterministic stacking used when annealing is disabled.

    Linear dimensions of one view are stacked by extent: the shortest
    sits closest to the part.  Horizontal ones go below the view and
    vertical ones to its right.  Other dimension types pass through.
    """
    cfg = config or LayoutConfig()
    horizontal = [d for d in dimensions if d.type == "linear" and d.position.is_horizontal]
    vertical = [d for d in dimensions if d.type == "linear" and not d.position.is_horizontal]
    others = [d for d in dimensions if d.type != "linear"]

    horizontal.sort(key=lambda d: abs(d.position.end_x - d.position.start_x))
    vertical.sort(key=lambda d: abs(d.position.end_y - d.position.start_y))

    stacked: List[Dimension] = []
    for index, dim in enumerate(horizontal):
        y = bounds.min_y - (cfg.dimension_offset + index * cfg.stacking_increment)
        stacked.append(
            replace(dim, position=replace(dim.position, start_y=y, end_y=y, text_y=y - cfg.text_offset))
        )
    for index, dim in enumerate(vertical):
        x = bounds.max_x + cfg.dimension_offset + index * cfg.stacking_increment
        stacked.append(
            replace(dim, position=replace(dim.position, start_x=x, end_x=x, text_x=x + cfg.text_offset))
        )
    return stacked + others


__all__ = [
    "LayoutDimension",
    "text_width",
    "dimension_bounds",
    "rect_overlap",
    "ideal_coordinate",
    "calculate_energy",
    "total_energy",
    "mc_move",
    "simulated_annealing",
    "initialize_layout",
    "optimize_dimension_layout",
    "stack_dimensions",
]
