"""
End-to-end drawing generation.

:class:`DrawingPipeline` ties the stages together in a fixed order:

1. project the mesh into the requested views (edge extraction,
   visibility classification, circle detection);
2. cluster planar faces and select datums A/B/C;
3. generate and place dimension candidates per view;
4. refine the layout with simulated annealing (or stack
   deterministically when optimisation is disabled);
5. remove duplicates and cap the number of dimensions per view.

Every stage is best effort: an empty mesh produces empty views, no
datums and no dimensions rather than an error.  Each stage is timed and
logged at INFO.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from .cad_import import MeshImporter
from .config import DrawingConfig
from .datums import DatumFeature, select_datums_from_faces
from .dimension_filter import deduplicate_dimensions, filter_essential_dimensions
from .dimensions import Dimension, generate_view_dimensions
from .layout import optimize_dimension_layout, stack_dimensions
from .mesh import BoundingBox, Mesh
from .planar_faces import extract_planar_faces
from .projection import ProjectedView, generate_all_views

logger = logging.getLogger(__name__)

DEFAULT_VIEWS = ("front", "top", "right")


@dataclass
class DrawingResult:
    """Everything needed to render a multi-view drawing."""

    views: List[ProjectedView]
    datums: List[DatumFeature]
    dimensions: List[Dimension]
    bbox: BoundingBox
    timings: Dict[str, float] = field(default_factory=dict)

    def dimensions_for(self, view: str) -> List[Dimension]:
        return [d for d in self.dimensions if d.view == view]


class DrawingPipeline:
    """Generate dimensioned orthographic views from a mesh.

    Args:
        importer: Optional CAD importer used by :meth:`generate_from_file`.
        config: Pipeline settings; defaults to ``DrawingConfig()``.
    """

    def __init__(self, importer: Optional[MeshImporter] = None, config: Optional[DrawingConfig] = None) -> None:
        self.importer = importer
        self.config = config or DrawingConfig()

    def generate(
        self,
        mesh: Mesh,
        bbox: Optional[BoundingBox] = None,
        views: Sequence[str] = DEFAULT_VIEWS,
        config: Optional[DrawingConfig] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> DrawingResult:
        """Run every stage on ``mesh``.

        Args:
            mesh: The part mesh.
            bbox: Bounding box to dimension; computed from the mesh when
                omitted.
            views: Standard view names to produce, in order.
            config: Overrides the pipeline's configuration for this call.
            rng: Generator for the layout optimizer; a fresh one seeded
                from ``config.seed`` is used when omitted.

        Raises:
            ValueError: If a view name is not one of the standard views.
        """
        cfg = config or self.config
        timings: Dict[str, float] = {}
        box = bbox or BoundingBox.from_mesh(mesh)

        t = time.perf_counter()
        projected = generate_all_views(mesh, views, cfg)
        timings["projection"] = time.perf_counter() - t

        t = time.perf_counter()
        faces = extract_planar_faces(mesh, cfg.clustering)
        datums = select_datums_from_faces(faces, cfg.datums)
        timings["datums"] = time.perf_counter() - t

        t = time.perf_counter()
        placed: List[Dimension] = []
        for view in projected:
            placed.extend(generate_view_dimensions(view, box, datums, cfg.placement))
        timings["dimensions"] = time.perf_counter() - t

        t = time.perf_counter()
        if cfg.optimize_layout:
            laid_out = optimize_dimension_layout(placed, projected, cfg.layout, seed=cfg.seed, rng=rng)
        else:
            laid_out = []
            for view in projected:
                laid_out.extend(
                    stack_dimensions([d for d in placed if d.view == view.view], view.bounds, cfg.layout)
                )
        timings["layout"] = time.perf_counter() - t

        t = time.perf_counter()
        final = filter_essential_dimensions(deduplicate_dimensions(laid_out), cfg.filtering.max_per_view)
        timings["filter"] = time.perf_counter() - t

        logger.info(
            "DrawingPipeline.generate: %d triangles, %d views, %d datums, %d -> %d dimensions; timings %s",
            mesh.triangle_count,
            len(projected),
            len(datums),
            len(placed),
            len(final),
            {k: round(v, 4) for k, v in timings.items()},
        )
        return DrawingResult(views=projected, datums=datums, dimensions=final, bbox=box, timings=timings)

    def generate_from_file(
        self,
        path: Union[str, Path],
        views: Sequence[str] = DEFAULT_VIEWS,
        config: Optional[DrawingConfig] = None,
    ) -> DrawingResult:
        """Import a CAD file with the configured importer and generate a drawing.

        Raises:
            RuntimeError: If the pipeline was built without an importer.
        """
        if self.importer is None:
            raise RuntimeError("DrawingPipeline has no mesh importer configured")
        mesh = self.importer.load(path)
        return self.generate(mesh, views=views, config=config)


__all__ = ["DEFAULT_VIEWS", "DrawingResult", "DrawingPipeline"]
