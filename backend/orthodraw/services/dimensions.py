"""
Dimension candidate generation and initial placement.

Dimensions are produced in two steps.  First a set of
:class:`DimensionCandidate` objects is proposed for each view by
independent strategies:

- **overall**: the bounding-box extents seen in the view (critical,
  priority 100);
- **feature**: gaps between distinct coordinate levels of visible,
  axis-aligned edges, i.e. profile steps (priority 50);
- **hole**: diameter or radius of detected circular features
  (priority 70);
- **datum-reference**: a zero-value marker where the primary datum
  symbol belongs (priority 90).  It is rendered separately and never
  becomes a measured dimension.

Then :func:`place_dimensions` turns candidates into :class:`Dimension`
objects with a resolved position.  Horizontal dimensions are stacked
below the view and vertical ones to its right, each new dimension one
stacking step further out than the previous one, in descending priority
order.  The layout optimizer later refines these positions.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Literal, Optional, Sequence, Tuple

from .config import PlacementOptions
from .datums import DatumFeature
from .mesh import BoundingBox, Vec2, dot
from .projection import ProjectedView, ViewBounds, project_point, view_basis

logger = logging.getLogger(__name__)

CandidateKind = Literal["overall", "feature", "hole", "datum-reference"]
Direction = Literal["horizontal", "vertical"]
DimensionType = Literal["linear", "diameter", "radius", "angular", "ordinate", "arc_length"]

PRIORITY_OVERALL = 100
PRIORITY_DATUM_REFERENCE = 90
PRIORITY_HOLE = 70
PRIORITY_FEATURE = 50


@dataclass
class DimensionCandidate:
    """A proposed dimension prior to placement."""

    kind: CandidateKind
    direction: Direction
    value: float
    view: str
    start: Vec2
    end: Vec2
    priority: int
    label: str
    circle_type: Optional[str] = None


@dataclass
class DimensionPosition:
    """Resolved 2D placement of a dimension.

    ``start``/``end`` describe the dimension line; the ``anchor_*`` points
    are where extension lines meet the geometry.
    """

    start_x: float
    start_y: float
    end_x: float
    end_y: float
    text_x: Optional[float] = None
    text_y: Optional[float] = None
    anchor_start_x: Optional[float] = None
    anchor_start_y: Optional[float] = None
    anchor_end_x: Optional[float] = None
    anchor_end_y: Optional[float] = None

    @property
    def is_horizontal(self) -> bool:
        return abs(self.start_y - self.end_y) < abs(self.start_x - self.end_x)


@dataclass
class Dimension:
    """A renderable dimension."""

    id: str
    type: DimensionType
    value: float
    unit: Literal["mm", "in"]
    view: str
    position: DimensionPosition
    label: str
    is_critical: bool = False
    tolerance_plus: Optional[float] = None
    tolerance_minus: Optional[float] = None


def dimension_to_dict(dim: Dimension) -> Dict[str, Any]:
    return asdict(dim)


def dimension_from_dict(data: Dict[str, Any]) -> Dimension:
    """Rebuild a :class:`Dimension` from :func:`dimension_to_dict` output."""
    payload = dict(data)
    position = payload.pop("position")
    if not isinstance(position, DimensionPosition):
        position = DimensionPosition(**position)
    return Dimension(position=position, **payload)


# Width/height of each view expressed as bounding-box extents and axis labels.
_VIEW_EXTENTS: Dict[str, Tuple[str, str, str, str]] = {
    "front": ("width", "height", "X", "Y"),
    "back": ("width", "height", "X", "Y"),
    "top": ("width", "depth", "X", "Z"),
    "bottom": ("width", "depth", "X", "Z"),
    "right": ("depth", "height", "Z", "Y"),
    "left": ("depth", "height", "Z", "Y"),
}


def calculate_overall_dimensions(
    bbox: BoundingBox,
    view: str,
    bounds: Optional[ViewBounds] = None,
) -> List[DimensionCandidate]:
    """Overall width and height candidates for ``view``.

    When view ``bounds`` are given the anchors sit on the lower-left
    (width) and right (height) edges of the projected outline; otherwise
    they start at the origin.  Zero extents (an empty or flat mesh) give no
    candidate in that direction.
    """
    mapping = _VIEW_EXTENTS.get(view)
    if mapping is None:
        return []
    w_attr, h_attr, w_axis, h_axis = mapping
    width = getattr(bbox, w_attr)
    height = getattr(bbox, h_attr)
    ox, oy = (bounds.min_x, bounds.min_y) if bounds is not None else (0.0, 0.0)
    candidates: List[DimensionCandidate] = []
    if width > 1e-9:
        candidates.append(
            DimensionCandidate(
                kind="overall",
                direction="horizontal",
                value=width,
                view=view,
                start=(ox, oy),
                end=(ox + width, oy),
                priority=PRIORITY_OVERALL,
                label=f"Overall Width ({w_axis})",
            )
        )
    if height > 1e-9:
        candidates.append(
            DimensionCandidate(
                kind="overall",
                direction="vertical",
                value=height,
                view=view,
                start=(ox + width, oy),
                end=(ox + width, oy + height),
                priority=PRIORITY_OVERALL,
                label=f"Overall Height ({h_axis})",
            )
        )
    return candidates


def _distinct_levels(values: Iterable[float]) -> List[float]:
    # Levels closer than 1e-6 are the same level.
    return sorted({round(v, 6) + 0.0 for v in values})


def calculate_feature_dimensions(
    view: ProjectedView,
    options: Optional[PlacementOptions] = None,
) -> List[DimensionCandidate]:
    """Step dimensions between distinct levels of visible axis-aligned edges."""
    opts = options or PlacementOptions()
    bounds = view.bounds
    visible = [e for e in view.edges if e.type == "visible"]
    horizontal_edges = [e for e in visible if abs(e.start[1] - e.end[1]) < opts.axis_tolerance]
    vertical_edges = [e for e in visible if abs(e.start[0] - e.end[0]) < opts.axis_tolerance]

    ys = _distinct_levels(e.start[1] for e in horizontal_edges)
    xs = _distinct_levels(e.start[0] for e in vertical_edges)
    clearance = opts.feature_anchor_clearance

    candidates: List[DimensionCandidate] = []
    step = 0
    for lo, hi in zip(ys, ys[1:]):
        gap = hi - lo
        if gap > opts.step_threshold:
            step += 1
            candidates.append(
                DimensionCandidate(
                    kind="feature",
                    direction="vertical",
                    value=gap,
                    view=view.view,
                    start=(bounds.max_x + clearance, lo),
                    end=(bounds.max_x + clearance, hi),
                    priority=PRIORITY_FEATURE,
                    label=f"Step Height {step}",
                )
            )
    step = 0
    for lo, hi in zip(xs, xs[1:]):
        gap = hi - lo
        if gap > opts.step_threshold:
            step += 1
            candidates.append(
                DimensionCandidate(
                    kind="feature",
                    direction="horizontal",
                    value=gap,
                    view=view.view,
                    start=(lo, bounds.min_y - clearance),
                    end=(hi, bounds.min_y - clearance),
                    priority=PRIORITY_FEATURE,
                    label=f"Step Width {step}",
                )
            )
    return candidates


def calculate_datum_reference_dimensions(
    view: ProjectedView,
    datums: Sequence[DatumFeature],
) -> List[DimensionCandidate]:
    """Marker candidate for the primary datum, projected into ``view``."""
    datum_a = next((d for d in datums if d.id == "A"), None)
    if datum_a is None:
        return []
    basis = view_basis(view.view)
    anchor = project_point(datum_a.center, basis)
    # The datum plane's trace in the view runs across the normal's projection.
    n_right = abs(dot(datum_a.normal, basis.right))
    n_up = abs(dot(datum_a.normal, basis.up))
    direction: Direction = "horizontal" if n_up > n_right else "vertical"
    return [
        DimensionCandidate(
            kind="datum-reference",
            direction=direction,
            value=0.0,
            view=view.view,
            start=anchor,
            end=anchor,
            priority=PRIORITY_DATUM_REFERENCE,
            label="DATUM A",
        )
    ]


def calculate_hole_dimensions(view: ProjectedView) -> List[DimensionCandidate]:
    """Diameter (hole, boss) or radius (fillet) candidates for detected circles."""
    candidates: List[DimensionCandidate] = []
    counters: Dict[str, int] = {}
    for circle in view.circles:
        counters[circle.type] = counters.get(circle.type, 0) + 1
        idx = counters[circle.type]
        is_radius = circle.type == "fillet"
        cx, cy = circle.center
        candidates.append(
            DimensionCandidate(
                kind="hole",
                direction="horizontal",
                value=circle.radius if is_radius else 2.0 * circle.radius,
                view=view.view,
                start=(cx - circle.radius, cy),
                end=(cx + circle.radius, cy),
                priority=PRIORITY_HOLE,
                label=f"{'Radius' if is_radius else circle.type.capitalize()} {idx}",
                circle_type=circle.type,
            )
        )
    return candidates


def _place_hole(candidate: DimensionCandidate, opts: PlacementOptions) -> Tuple[DimensionType, DimensionPosition]:
    (x0, y0), (x1, y1) = candidate.start, candidate.end
    dim_type: DimensionType = "radius" if candidate.circle_type == "fillet" else "diameter"
    if dim_type == "radius":
        # Radius leader runs from the centre to the arc.
        x0 = (x0 + x1) / 2.0
    position = DimensionPosition(
        start_x=x0,
        start_y=y0,
        end_x=x1,
        end_y=y1,
        text_x=x1 + opts.hole_text_offset,
        text_y=y1,
        anchor_start_x=x0,
        anchor_start_y=y0,
        anchor_end_x=x1,
        anchor_end_y=y1,
    )
    return dim_type, position


def place_dimensions(
    candidates: Sequence[DimensionCandidate],
    view_bounds: ViewBounds,
    options: Optional[PlacementOptions] = None,
    id_prefix: str = "",
) -> List[Dimension]:
    """Turn candidates into positioned dimensions.

    Candidates are processed in descending priority (stable for equal
    priorities).  Datum-reference candidates are skipped.

    Args:
        candidates: Candidates for a single view.
        view_bounds: Bounds of that view.
        options: Placement options.
        id_prefix: Prefix for generated identifiers, normally the view
            name so identifiers stay unique across views.
    """
    opts = options or PlacementOptions()
    ordered = sorted(candidates, key=lambda c: c.priority, reverse=True)
    horizontal_offset = opts.dimension_offset
    vertical_offset = opts.dimension_offset
    dimensions: List[Dimension] = []

    for candidate in ordered:
        if candidate.kind == "datum-reference":
            continue
        dim_type: DimensionType = "linear"
        if candidate.kind == "hole":
            dim_type, position = _place_hole(candidate, opts)
        elif candidate.direction == "horizontal":
            line_y = view_bounds.min_y - horizontal_offset
            position = DimensionPosition(
                start_x=candidate.start[0],
                start_y=line_y,
                end_x=candidate.end[0],
                end_y=line_y,
                text_x=(candidate.start[0] + candidate.end[0]) / 2.0,
                text_y=line_y - opts.text_offset,
                anchor_start_x=candidate.start[0],
                anchor_start_y=candidate.start[1],
                anchor_end_x=candidate.end[0],
                anchor_end_y=candidate.end[1],
            )
            horizontal_offset += opts.stacking_offset
        else:
            line_x = view_bounds.max_x + vertical_offset
            position = DimensionPosition(
                start_x=line_x,
                start_y=candidate.start[1],
                end_x=line_x,
                end_y=candidate.end[1],
                text_x=line_x + opts.text_offset,
                text_y=(candidate.start[1] + candidate.end[1]) / 2.0,
                anchor_start_x=candidate.start[0],
                anchor_start_y=candidate.start[1],
                anchor_end_x=candidate.end[0],
                anchor_end_y=candidate.end[1],
            )
            vertical_offset += opts.stacking_offset

        prefix = f"{id_prefix}_" if id_prefix else ""
        dimensions.append(
            Dimension(
                id=f"{prefix}dim_{len(dimensions) + 1}",
                type=dim_type,
                value=abs(candidate.value),
                unit=opts.unit,
                view=candidate.view,
                position=position,
                label=candidate.label,
                is_critical=candidate.kind == "overall"
                or (candidate.kind == "hole" and candidate.circle_type == "hole"),
            )
        )
    return dimensions


def generate_view_candidates(
    view: ProjectedView,
    bbox: BoundingBox,
    datums: Sequence[DatumFeature],
    options: Optional[PlacementOptions] = None,
) -> List[DimensionCandidate]:
    """All candidate strategies for one view, concatenated."""
    return [
        *calculate_overall_dimensions(bbox, view.view, view.bounds),
        *calculate_feature_dimensions(view, options),
        *calculate_hole_dimensions(view),
        *calculate_datum_reference_dimensions(view, datums),
    ]


def generate_view_dimensions(
    view: ProjectedView,
    bbox: BoundingBox,
    datums: Sequence[DatumFeature],
    options: Optional[PlacementOptions] = None,
) -> List[Dimension]:
    candidates = generate_view_candidates(view, bbox, datums, options)
    return place_dimensions(candidates, view.bounds, options, id_prefix=view.view)


def generate_all_dimensions(
    views: Sequence[ProjectedView],
    bbox: BoundingBox,
    datums: Sequence[DatumFeature],
    options: Optional[PlacementOptions] = None,
) -> Dict[str, List[Dimension]]:
    """Placed dimensions keyed by view name."""
    result: Dict[str, List[Dimension]] = {}
    for view in views:
        result[view.view] = generate_view_dimensions(view, bbox, datums, options)
        logger.debug("generate_all_dimensions(%s): %d dimensions", view.view, len(result[view.view]))
    return result


__all__ = [
    "CandidateKind",
    "Direction",
    "DimensionType",
    "DimensionCandidate",
    "DimensionPosition",
    "Dimension",
    "dimension_to_dict",
    "dimension_from_dict",
    "calculate_overall_dimensions",
    "calculate_feature_dimensions",
    "calculate_datum_reference_dimensions",
    "calculate_hole_dimensions",
    "place_dimensions",
    "generate_view_candidates",
    "generate_view_dimensions",
    "generate_all_dimensions",
]
