"""
Duplicate removal and per-view capping of dimensions.

Overall, feature and hole strategies frequently propose the same
measurement twice (an overall width that equals the only step width, for
example).  :func:`deduplicate_dimensions` keeps the first dimension for
each ``(view, type, value)`` where the value is compared at one decimal.
:func:`filter_essential_dimensions` then keeps at most ``max_per_view``
dimensions in every view, critical ones first and larger values before
smaller ones.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

from .dimensions import Dimension

logger = logging.getLogger(__name__)


def dedup_key(dim: Dimension) -> Tuple[str, str, str]:
    return (dim.view, dim.type, f"{dim.value:.1f}")


def deduplicate_dimensions(dimensions: Sequence[Dimension]) -> List[Dimension]:
    """Drop dimensions that repeat an earlier ``(view, type, value)``.

    The first occurrence wins and input order is preserved, so applying
    the function twice gives the same result as applying it once.
    """
    seen = set()
    kept: List[Dimension] = []
    for dim in dimensions:
        key = dedup_key(dim)
        if key in seen:
            continue
        seen.add(key)
        kept.append(dim)
    if len(kept) != len(dimensions):
        logger.debug("deduplicate_dimensions: removed %d duplicates", len(dimensions) - len(kept))
    return kept


def filter_essential_dimensions(dimensions: Sequence[Dimension], max_per_view: int = 8) -> List[Dimension]:
    """Keep the ``max_per_view`` most important dimensions of every view.

    Views appear in order of first occurrence.  Within a view the result
    is sorted critical first, then by value descending; the sort is
    stable so equal dimensions keep their relative order.

    Args:
        dimensions: Dimensions of any number of views.
        max_per_view: Cap per view; values below zero are treated as zero.

    Returns:
        The filtered list.
    """
    cap = max(0, int(max_per_view))
    by_view: Dict[str, List[Dimension]] = {}
    for dim in dimensions:
        by_view.setdefault(dim.view, []).append(dim)

    filtered: List[Dimension] = []
    for view, dims in by_view.items():
        ranked = sorted(dims, key=lambda d: (not d.is_critical, -d.value))
        filtered.extend(ranked[:cap])
        if len(ranked) > cap:
            logger.debug("filter_essential_dimensions(%s): dropped %d", view, len(ranked) - cap)
    return filtered


__all__ = ["dedup_key", "deduplicate_dimensions", "filter_essential_dimensions"]
