"""
Tests for duplicate removal, per-view capping, corrections and the
local quality check.
"""

import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from orthodraw.services.corrections import (
    DimensionCorrection,
    NewPosition,
    apply_corrections,
    apply_corrections_counted,
    quick_quality_check,
)
from orthodraw.services.dimension_filter import deduplicate_dimensions, filter_essential_dimensions
from orthodraw.services.dimensions import Dimension, DimensionPosition


def _dim(dim_id, value, view="front", y=-10.0, critical=False, dim_type="linear"):
    return Dimension(
        id=dim_id,
        type=dim_type,
        value=value,
        unit="mm",
        view=view,
        position=DimensionPosition(start_x=0.0, start_y=y, end_x=value, end_y=y, text_x=value / 2, text_y=y - 3),
        label=dim_id,
        is_critical=critical,
    )


def test_deduplicate_keeps_first_and_is_idempotent() -> None:
    dims = [
        _dim("a", 50.0),
        _dim("b", 50.04),
        _dim("c", 50.0, dim_type="diameter"),
        _dim("d", 50.0, view="top"),
        _dim("e", 30.0),
    ]
    once = deduplicate_dimensions(dims)
    assert [d.id for d in once] == ["a", "c", "d", "e"]
    assert deduplicate_dimensions(once) == once


def test_filter_caps_each_view_critical_first() -> None:
    dims = [_dim(f"f{i}", float(i + 1)) for i in range(10)]
    dims.append(_dim("crit", 0.5, critical=True))
    dims += [_dim(f"t{i}", float(i + 1), view="top") for i in range(3)]
    filtered = filter_essential_dimensions(dims, max_per_view=4)
    front = [d.id for d in filtered if d.view == "front"]
    top = [d.id for d in filtered if d.view == "top"]
    assert front == ["crit", "f9", "f8", "f7"]
    assert top == ["t2", "t1", "t0"]
    assert filter_essential_dimensions(filtered, max_per_view=4) == filtered


def test_filter_zero_cap() -> None:
    assert filter_essential_dimensions([_dim("a", 1.0)], max_per_view=0) == []


def test_apply_corrections_returns_new_list() -> None:
    dims = [_dim("a", 50.0), _dim("b", 30.0, y=-20.0), _dim("c", 10.0, y=-30.0)]
    corrections = [
        DimensionCorrection(dimension_id="a", action="modify", suggested_value=55.0),
        DimensionCorrection(
            dimension_id="b",
            action="reposition",
            new_position=NewPosition(start_x=1.0, start_y=-40.0, end_x=31.0, end_y=-40.0),
        ),
        DimensionCorrection(dimension_id="c", action="delete"),
        DimensionCorrection(dimension_id="z", action="add", suggested_value=5.0),
        DimensionCorrection(dimension_id="missing", action="delete"),
    ]
    result = apply_corrections(dims, corrections)
    assert [d.id for d in result] == ["a", "b"]
    assert result[0].value == 55.0
    assert result[1].position.start_y == -40.0
    assert result[1].position.start_x == 1.0
    # Text placement survives a reposition.
    assert result[1].position.text_y == pytest.approx(-23.0)
    # Original list and dimensions are untouched.
    assert [d.id for d in dims] == ["a", "b", "c"]
    assert dims[0].value == 50.0
    assert dims[1].position.start_y == -20.0


def test_modify_without_value_is_a_no_op() -> None:
    dims = [_dim("a", 50.0)]
    assert apply_corrections(dims, [DimensionCorrection(dimension_id="a", action="modify")]) == dims


def test_counted_corrections_skip_add_unknown_and_empty() -> None:
    dims = [_dim("a", 50.0), _dim("b", 30.0, y=-20.0)]
    corrections = [
        DimensionCorrection(dimension_id="a", action="delete"),
        DimensionCorrection(dimension_id="b", action="add", suggested_value=5.0),
        DimensionCorrection(dimension_id="missing", action="modify", suggested_value=1.0),
        DimensionCorrection(dimension_id="b", action="move"),
    ]
    result, applied = apply_corrections_counted(dims, corrections)
    assert applied == 1
    assert [d.id for d in result] == ["b"]
    assert apply_corrections_counted(dims, [])[1] == 0


def test_quality_check_flags_close_lines_and_bad_values() -> None:
    dims = [
        _dim("a", 50.0, y=-10.0),
        _dim("b", 30.0, y=-12.0),
        _dim("c", 0.0, y=-30.0),
        _dim("t", 20.0, view="top", y=-11.0),
    ]
    issues = quick_quality_check(dims)
    layout = [i for i in issues if i.category == "layout"]
    assert len(layout) == 1
    assert layout[0].affected_dimension_id == "a"
    invalid = [i for i in issues if i.category == "dimension"]
    assert [i.affected_dimension_id for i in invalid] == ["c"]
    assert invalid[0].severity == "critical"
    missing = [i for i in issues if i.category == "missing"]
    assert [i.location for i in missing] == ["top View"]


def test_quality_check_clean_drawing() -> None:
    assert quick_quality_check([_dim("a", 50.0, y=-12.0), _dim("b", 30.0, y=-22.0)]) == []
