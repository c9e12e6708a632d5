"""
Tunable constants for the drawing pipeline.

Every heuristic threshold used by the geometry pipeline lives here as a
named field on a small dataclass rather than as a literal buried in an
algorithm.  Callers construct a :class:`DrawingConfig` (or one of its
sections) and pass it to the pipeline; any field can be overridden
without touching the algorithms themselves.

``DrawingConfig.from_env`` reads a handful of ``ORTHODRAW_*``
environment variables so deployments can adjust the most common knobs
(dimension count per view, optimizer budget, seed and unit) without
code changes.  Unknown or malformed values are ignored with a warning.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, field, replace
from typing import Literal, Optional

logger = logging.getLogger(__name__)

Unit = Literal["mm", "in"]


@dataclass(frozen=True)
class EdgeConfig:
    """Edge extraction and visibility classification settings.

    Attributes:
        key_precision: Number of decimals used when building the
            canonical endpoint key that merges shared edges.
        sharp_edge_dot: Face-normal dot product below which the edge
            between two co-facing triangles is a real crease.  0.9
            corresponds to roughly 25 degrees.
    """

    key_precision: int = 6
    sharp_edge_dot: float = 0.9

    @property
    def crease_angle_degrees(self) -> float:
        return math.degrees(math.acos(max(-1.0, min(1.0, self.sharp_edge_dot))))


@dataclass(frozen=True)
class ProjectionConfig:
    """Settings for projecting classified edges into a 2D view."""

    reference_size: float = 100.0
    min_edge_length: float = 0.001


@dataclass(frozen=True)
class CircleConfig:
    """Settings for fitting circles to chains of projected edges.

    Attributes:
        snap_tolerance: Grid size used to merge coincident endpoints.
        min_segments: Minimum segment count for a closed circle.
        min_arc_segments: Minimum segment count for an open arc.
        min_turn_degrees: Turns smaller than this are straight runs.
        max_turn_degrees: Turns larger than this are corners.
        max_length_ratio: Largest allowed length ratio between
            neighbouring segments of one arc.
        fit_tolerance: Maximum RMS radial residual relative to radius.
        max_segment_ratio: Maximum segment length relative to radius;
            longer segments indicate a polygon rather than a curve.
        outline_tolerance: Distance from the view bounds within which a
            closed circle counts as part of the outline (boss).
    """

    snap_tolerance: float = 1e-4
    min_segments: int = 6
    min_arc_segments: int = 4
    min_turn_degrees: float = 0.5
    max_turn_degrees: float = 45.0
    max_length_ratio: float = 2.0
    fit_tolerance: float = 0.02
    max_segment_ratio: float = 1.1
    outline_tolerance: float = 1e-3


@dataclass(frozen=True)
class ClusterConfig:
    """Planar-face clustering tolerances."""

    normal_tolerance: float = 0.98
    plane_tolerance: float = 1.0


@dataclass(frozen=True)
class DatumConfig:
    """Datum selection tolerances."""

    perpendicular_tolerance: float = 0.1


@dataclass(frozen=True)
class PlacementOptions:
    """Dimension candidate generation and initial placement options.

    Attributes:
        unit: Unit recorded on every generated dimension.
        dimension_offset: Distance from the view bounds to the first
            stacked dimension line.
        stacking_offset: Distance between stacked dimension lines.
        step_threshold: Coordinate gaps at or below this are noise and do
            not produce step dimensions.
        axis_tolerance: Maximum deviation for an edge to count as
            horizontal or vertical.
        feature_anchor_clearance: Distance outside the view bounds at
            which step dimension anchors are placed.
        text_offset: Distance between a dimension line and its text.
        hole_text_offset: Distance from a circle to its dimension text.
    """

    unit: Unit = "mm"
    dimension_offset: float = 10.0
    stacking_offset: float = 8.0
    step_threshold: float = 1.0
    axis_tolerance: float = 0.1
    feature_anchor_clearance: float = 5.0
    text_offset: float = 3.0
    hole_text_offset: float = 5.0


@dataclass(frozen=True)
class LayoutWeights:
    """Energy weights used by the layout optimizer."""

    overlap: float = 100.0
    spacing: float = 20.0
    out_of_bounds: float = 200.0
    distance: float = 0.5


@dataclass(frozen=True)
class LayoutConfig:
    """Simulated-annealing layout settings.

    Attributes:
        min_dimension_spacing: Same-orientation dimension lines closer
            than this are penalised.
        dimension_offset: Ideal distance from the view to the first
            stacked dimension.
        stacking_increment: Ideal distance between stacked dimensions.
        max_iterations: Number of full sweeps.
        initial_temperature: Starting annealing temperature.
        cooling_rate: Geometric cooling factor applied after each sweep.
        move_range: Width of the uniform random move (moves fall in
            ``[-move_range / 2, move_range / 2]``).
        bounds_margin: Distance outside the view bounds that is free.
        text_height: Approximate text height used for footprints.
        text_offset: Distance between a dimension line and its text.
        weights: Energy term weights.
    """

    min_dimension_spacing: float = 8.0
    dimension_offset: float = 12.0
    stacking_increment: float = 10.0
    max_iterations: int = 2000
    initial_temperature: float = 1.0
    cooling_rate: float = 0.95
    move_range: float = 10.0
    bounds_margin: float = 50.0
    text_height: float = 4.0
    text_offset: float = 3.0
    weights: LayoutWeights = field(default_factory=LayoutWeights)


@dataclass(frozen=True)
class FilterConfig:
    """Post-layout clutter control."""

    max_per_view: int = 8


@dataclass(frozen=True)
class DrawingConfig:
    """All pipeline settings grouped by stage."""

    edges: EdgeConfig = field(default_factory=EdgeConfig)
    projection: ProjectionConfig = field(default_factory=ProjectionConfig)
    circles: CircleConfig = field(default_factory=CircleConfig)
    clustering: ClusterConfig = field(default_factory=ClusterConfig)
    datums: DatumConfig = field(default_factory=DatumConfig)
    placement: PlacementOptions = field(default_factory=PlacementOptions)
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    filtering: FilterConfig = field(default_factory=FilterConfig)
    seed: Optional[int] = None
    optimize_layout: bool = True

    @classmethod
    def from_env(cls, base: Optional["DrawingConfig"] = None) -> "DrawingConfig":
        """Return ``base`` (or the defaults) with environment overrides applied.

        Recognised variables:

        - ``ORTHODRAW_MAX_PER_VIEW``: integer cap on dimensions per view.
        - ``ORTHODRAW_LAYOUT_ITERATIONS``: optimizer sweep count.
        - ``ORTHODRAW_SEED``: integer seed for the optimizer.
        - ``ORTHODRAW_UNIT``: ``"mm"`` or ``"in"``.
        """
        config = base or cls()
        max_per_view = _env_int("ORTHODRAW_MAX_PER_VIEW")
        if max_per_view is not None:
            config = replace(config, filtering=replace(config.filtering, max_per_view=max_per_view))
        iterations = _env_int("ORTHODRAW_LAYOUT_ITERATIONS")
        if iterations is not None:
            config = replace(config, layout=replace(config.layout, max_iterations=iterations))
        seed = _env_int("ORTHODRAW_SEED")
        if seed is not None:
            config = replace(config, seed=seed)
        unit = os.getenv("ORTHODRAW_UNIT")
        if unit:
            unit_norm = unit.strip().lower()
            if unit_norm in {"mm", "in"}:
                config = replace(config, placement=replace(config.placement, unit=unit_norm))
            else:
                logger.warning("Ignoring ORTHODRAW_UNIT=%r; expected 'mm' or 'in'", unit)
        return config


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r; expected an integer", name, raw)
        return None


__all__ = [
    "Unit",
    "EdgeConfig",
    "ProjectionConfig",
    "CircleConfig",
    "ClusterConfig",
    "DatumConfig",
    "PlacementOptions",
    "LayoutWeights",
    "LayoutConfig",
    "FilterConfig",
    "DrawingConfig",
]
