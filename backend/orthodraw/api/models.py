"""
Pydantic data models for the drawing API.

These models define the shapes of requests and responses used by the
backend.  Request fields use camelCase like the rest of the HTTP
surface; dimension payloads keep the snake_case field names of the
drawing data model so they can be exchanged with the inference service
unchanged.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


ViewNameModel = Literal["front", "back", "top", "bottom", "right", "left"]


class BoundingBoxPayload(BaseModel):
    """Axis‑aligned bounding box."""

    min: List[float] = Field(..., min_length=3, max_length=3, description="Minimum x, y, z coordinates")
    max: List[float] = Field(..., min_length=3, max_length=3, description="Maximum x, y, z coordinates")


class MeshPayload(BaseModel):
    """Triangle mesh as flat buffers."""

    vertices: List[float] = Field(..., description="Flat list of vertex positions (x, y, z …)")
    indices: List[int] = Field(..., description="Index buffer defining the mesh triangles")
    normals: Optional[List[float]] = Field(
        default=None, description="Optional flat list of vertex normals (x, y, z …)"
    )


class DrawingOptions(BaseModel):
    """Generation options shared by the JSON and upload endpoints."""

    views: List[ViewNameModel] = Field(
        default_factory=lambda: ["front", "top", "right"], description="Standard views to generate, in order"
    )
    unit: Literal["mm", "in"] = Field(default="mm", description="Unit recorded on every dimension")
    maxPerView: Optional[int] = Field(default=None, ge=0, description="Cap on dimensions per view")
    seed: Optional[int] = Field(default=None, description="Seed for the layout optimizer")
    optimizeLayout: bool = Field(default=True, description="Refine dimension positions by simulated annealing")
    layoutIterations: Optional[int] = Field(default=None, ge=0, description="Override for optimizer sweeps")

    @field_validator("views")
    @classmethod
    def _unique_views(cls, value: List[str]) -> List[str]:
        # Repeated views would produce clashing dimension ids.
        return list(dict.fromkeys(value))


class DrawingRequest(DrawingOptions):
    """Request body for generating a drawing from a mesh."""

    name: Optional[str] = Field(default=None, description="Optional display name")
    mesh: MeshPayload
    bbox: Optional[BoundingBoxPayload] = Field(
        default=None, description="Bounding box to dimension; computed from the mesh when omitted"
    )


class DimensionPositionModel(BaseModel):
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


class DimensionModel(BaseModel):
    id: str
    type: Literal["linear", "diameter", "radius", "angular", "ordinate", "arc_length"]
    value: float
    unit: Literal["mm", "in"]
    view: str
    position: DimensionPositionModel
    label: str
    is_critical: bool = False
    tolerance_plus: Optional[float] = None
    tolerance_minus: Optional[float] = None


class Edge2DModel(BaseModel):
    start: List[float]
    end: List[float]
    type: Literal["visible", "hidden"]
    classification: str


class Circle2DModel(BaseModel):
    center: List[float]
    radius: float
    type: Literal["hole", "boss", "fillet"]


class ViewBoundsModel(BaseModel):
    min_x: float
    min_y: float
    max_x: float
    max_y: float


class ProjectedViewModel(BaseModel):
    view: ViewNameModel
    edges: List[Edge2DModel]
    circles: List[Circle2DModel]
    bounds: ViewBoundsModel
    scale: float


class DatumModel(BaseModel):
    id: Literal["A", "B", "C"]
    type: str
    normal: List[float]
    center: List[float]
    area: float


class QualityIssue(BaseModel):
    severity: Literal["critical", "major", "minor"]
    category: Literal["dimension", "layout", "standard", "clarity", "missing"]
    description: str
    location: Optional[str] = None
    affectedDimensionId: Optional[str] = None


class DrawingResponse(BaseModel):
    """A generated (and possibly corrected) drawing."""

    drawingId: str = Field(..., description="Unique identifier for the drawing")
    name: Optional[str] = None
    unit: Literal["mm", "in"]
    createdAt: Optional[datetime] = None
    bbox: BoundingBoxPayload
    views: List[ProjectedViewModel]
    datums: List[DatumModel]
    dimensions: List[DimensionModel]
    issues: List[QualityIssue] = Field(default_factory=list, description="Local quality check results")


class DrawingSummary(BaseModel):
    """Summary row returned by the listing endpoint."""

    drawingId: str
    name: Optional[str] = None
    unit: str
    views: List[str]
    dimensionCount: int
    createdAt: datetime
    updatedAt: datetime


class NewPositionModel(BaseModel):
    start_x: float
    start_y: float
    end_x: float
    end_y: float


class CorrectionModel(BaseModel):
    dimensionId: str
    action: Literal["move", "reposition", "modify", "delete", "add"]
    reason: str = ""
    currentValue: Optional[float] = None
    suggestedValue: Optional[float] = None
    newPosition: Optional[NewPositionModel] = None


class CorrectionRequest(BaseModel):
    corrections: List[CorrectionModel]


class ReviewRequest(BaseModel):
    """Request body for a remote drawing review."""

    image: str = Field(..., description="Rendered drawing as a data URL or base64 string")
    apiKey: Optional[str] = Field(default=None, description="Overrides the server's configured key")
    applyCorrections: bool = Field(default=False, description="Apply returned corrections to the stored drawing")
    context: Dict[str, Any] = Field(default_factory=dict, description="Extra facts passed to the reviewer")


class ReviewResponse(BaseModel):
    success: bool
    isAcceptable: bool = False
    overallScore: float = 0.0
    issues: List[QualityIssue] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    corrections: List[CorrectionModel] = Field(default_factory=list)
    errorKind: Optional[str] = None
    errorMessage: Optional[str] = None
    applied: int = 0
