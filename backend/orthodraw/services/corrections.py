"""
Dimension corrections and local drawing quality checks.

Corrections usually come back from a remote drawing review but can also
be posted by a user.  :func:`apply_corrections` never mutates its input:
it returns a new list with the corrections applied in order.

:func:`quick_quality_check` runs a handful of cheap heuristics that need
no remote service.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Literal, Optional, Sequence, Tuple

from .dimensions import Dimension

logger = logging.getLogger(__name__)

CorrectionAction = Literal["move", "reposition", "modify", "delete", "add"]
IssueSeverity = Literal["critical", "major", "minor"]
IssueCategory = Literal["dimension", "layout", "standard", "clarity", "missing"]

MIN_LINE_SPACING = 5.0
MIN_DIMENSIONS_PER_VIEW = 2


@dataclass
class NewPosition:
    start_x: float
    start_y: float
    end_x: float
    end_y: float


@dataclass
class DimensionCorrection:
    """A single requested change to a dimension."""

    dimension_id: str
    action: CorrectionAction
    reason: str = ""
    current_value: Optional[float] = None
    suggested_value: Optional[float] = None
    new_position: Optional[NewPosition] = None


@dataclass
class DrawingIssue:
    severity: IssueSeverity
    category: IssueCategory
    description: str
    location: Optional[str] = None
    affected_dimension_id: Optional[str] = None


def apply_corrections(
    dimensions: Sequence[Dimension],
    corrections: Sequence[DimensionCorrection],
) -> List[Dimension]:
    """Apply ``corrections`` to a copy of ``dimensions``.

    - ``delete`` removes the dimension;
    - ``modify`` replaces the value when a suggested value is given;
    - ``move``/``reposition`` overwrite the dimension line endpoints when
      a new position is given, keeping text and anchor fields;
    - ``add`` carries no complete dimension and is ignored.

    Corrections naming an unknown dimension are skipped.
    """
    return apply_corrections_counted(dimensions, corrections)[0]


def apply_corrections_counted(
    dimensions: Sequence[Dimension],
    corrections: Sequence[DimensionCorrection],
) -> Tuple[List[Dimension], int]:
    """Like :func:`apply_corrections`, also returning how many corrections took effect."""
    result = list(dimensions)
    applied = 0
    for correction in corrections:
        index = next((i for i, d in enumerate(result) if d.id == correction.dimension_id), None)
        if correction.action == "add":
            logger.debug("apply_corrections: ignoring 'add' for %s", correction.dimension_id)
            continue
        if index is None:
            logger.debug("apply_corrections: unknown dimension %s", correction.dimension_id)
            continue

        dim = result[index]
        if correction.action == "delete":
            del result[index]
            applied += 1
        elif correction.action == "modify":
            if correction.suggested_value is not None:
                result[index] = replace(dim, value=correction.suggested_value)
                applied += 1
        elif correction.action in ("move", "reposition"):
            pos = correction.new_position
            if pos is not None:
                result[index] = replace(
                    dim,
                    position=replace(
                        dim.position,
                        start_x=pos.start_x,
                        start_y=pos.start_y,
                        end_x=pos.end_x,
                        end_y=pos.end_y,
                    ),
                )
                applied += 1
    return result, applied


def _spacing_issues(dims: List[Dimension], horizontal: bool) -> List[DrawingIssue]:
    issues: List[DrawingIssue] = []
    coord = (lambda d: d.position.start_y) if horizontal else (lambda d: d.position.start_x)
    label = "Horizontal" if horizontal else "Vertical"
    ordered = sorted(dims, key=coord)
    for a, b in zip(ordered, ordered[1:]):
        spacing = abs(coord(a) - coord(b))
        if spacing < MIN_LINE_SPACING:
            issues.append(
                DrawingIssue(
                    severity="major",
                    category="layout",
                    description=f"{label} dimensions too close together ({spacing:.1f}mm spacing)",
                    affected_dimension_id=b.id,
                )
            )
    return issues


def quick_quality_check(dimensions: Sequence[Dimension]) -> List[DrawingIssue]:
    """Local heuristics: line spacing, non-positive values, sparse views.

    Within each view, dimension lines are grouped by their shape (a
    horizontal line has ``|start_y - end_y| < 1``, a vertical one
    ``|start_x - end_x| < 1``) and neighbouring lines closer than 5 units
    are reported.
    """
    issues: List[DrawingIssue] = []
    by_view: Dict[str, List[Dimension]] = {}
    for dim in dimensions:
        by_view.setdefault(dim.view, []).append(dim)
    for dims in by_view.values():
        horizontal = [d for d in dims if abs(d.position.start_y - d.position.end_y) < 1.0]
        vertical = [d for d in dims if abs(d.position.start_x - d.position.end_x) < 1.0]
        issues.extend(_spacing_issues(horizontal, horizontal=True))
        issues.extend(_spacing_issues(vertical, horizontal=False))

    for dim in dimensions:
        if dim.value <= 0:
            issues.append(
                DrawingIssue(
                    severity="critical",
                    category="dimension",
                    description=f"Invalid dimension value: {dim.value}",
                    affected_dimension_id=dim.id,
                )
            )

    counts: Dict[str, int] = {}
    for dim in dimensions:
        counts[dim.view] = counts.get(dim.view, 0) + 1
    for view, count in counts.items():
        if count < MIN_DIMENSIONS_PER_VIEW:
            issues.append(
                DrawingIssue(
                    severity="major",
                    category="missing",
                    description=f"{view} view has only {count} dimension(s) - may be incomplete",
                    location=f"{view} View",
                )
            )
    return issues


__all__ = [
    "CorrectionAction",
    "NewPosition",
    "DimensionCorrection",
    "DrawingIssue",
    "apply_corrections",
    "apply_corrections_counted",
    "quick_quality_check",
]
