"""
CAD file import.

The drawing pipeline works on triangle meshes.  A :class:`MeshImporter`
turns a CAD file on disk into a :class:`~orthodraw.services.mesh.Mesh`.
The only concrete importer reads STEP files through CadQuery and
tessellates the resulting shape.

CadQuery is an optional dependency (``pip install orthodraw[cad]``).
It is imported when :class:`CadQueryMeshImporter` is constructed, so a
missing installation surfaces once, as an ``ImportError`` at the call
site that builds the importer, instead of on every load.  Callers create
one importer and pass it to the pipeline.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Protocol, Union

from .mesh import Mesh

logger = logging.getLogger(__name__)

STEP_SUFFIXES = (".step", ".stp")


class MeshImporter(Protocol):
    def load(self, path: Union[str, Path]) -> Mesh:
        ...


class CadQueryMeshImporter:
    """Import STEP files with CadQuery and tessellate them.

    Args:
        linear_deflection: Linear deflection for meshing; lower values
            produce finer meshes.
        angular_deflection: Angular deflection for meshing in radians.

    Raises:
        ImportError: If CadQuery is not installed.
    """

    def __init__(self, linear_deflection: float = 0.1, angular_deflection: float = 0.5) -> None:
        import cadquery as cq  # type: ignore

        self._cq = cq
        self.linear_deflection = linear_deflection
        self.angular_deflection = angular_deflection

    def load(self, path: Union[str, Path]) -> Mesh:
        """Read ``path`` and return its tessellated mesh.

        Raises:
            ValueError: For unsupported file extensions or files whose
                tessellation contains no triangles.
            FileNotFoundError: If ``path`` does not exist.
        """
        file_path = Path(path)
        ext = file_path.suffix.lower()
        if ext not in STEP_SUFFIXES:
            raise ValueError(f"Unsupported file extension: {ext}")
        if not file_path.exists():
            raise FileNotFoundError(str(file_path))

        t0 = time.perf_counter()
        shape = self._cq.importers.importStep(str(file_path))
        logger.debug("CadQueryMeshImporter: imported %s in %.2fs", file_path.name, time.perf_counter() - t0)

        # Workplane objects wrap the underlying shape.
        cq_shape = shape.val() if hasattr(shape, "val") else shape
        t1 = time.perf_counter()
        vertices_data, triangles_data = cq_shape.tessellate(self.linear_deflection, self.angular_deflection)

        vertices: List[float] = []
        indices: List[int] = []
        for v in vertices_data:
            vertices.extend([float(v.x), float(v.y), float(v.z)])
        for tri in triangles_data:
            indices.extend([int(tri[0]), int(tri[1]), int(tri[2])])
        if not indices:
            raise ValueError(f"No triangles produced when tessellating {file_path.name}")

        mesh = Mesh.from_buffers(vertices, indices)
        logger.info(
            "CadQueryMeshImporter: %s -> %d vertices, %d triangles in %.2fs",
            file_path.name,
            mesh.vertex_count,
            mesh.triangle_count,
            time.perf_counter() - t1,
        )
        return mesh


__all__ = ["STEP_SUFFIXES", "MeshImporter", "CadQueryMeshImporter"]
