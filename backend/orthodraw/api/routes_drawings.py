"""
Routes for drawing generation, storage, correction and review.

Drawings are generated synchronously from a mesh posted as flat
buffers, or from an uploaded STEP file when a CAD importer is
available.  The result is stored as JSON and can be listed, fetched,
corrected, quality checked, reviewed remotely and deleted.

The CAD importer and the inference client are FastAPI dependencies so
deployments and tests can swap them with ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
import shutil
import time
import uuid
from dataclasses import asdict, replace
from typing import Iterator, List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from .models import (
    BoundingBoxPayload,
    Circle2DModel,
    CorrectionModel,
    CorrectionRequest,
    DatumModel,
    DimensionModel,
    DrawingOptions,
    DrawingRequest,
    DrawingResponse,
    DrawingSummary,
    Edge2DModel,
    ProjectedViewModel,
    QualityIssue,
    ReviewRequest,
    ReviewResponse,
    ViewBoundsModel,
)
from ..services.cad_import import STEP_SUFFIXES, CadQueryMeshImporter, MeshImporter
from ..services.config import DrawingConfig
from ..services.corrections import (
    DimensionCorrection,
    DrawingIssue,
    NewPosition,
    apply_corrections,
    apply_corrections_counted,
    quick_quality_check,
)
from ..services.db import STORAGE_DIR
from ..services.dimensions import Dimension, dimension_from_dict
from ..services.drawings_store import (
    DrawingRecord,
    delete_drawing as delete_drawing_record,
    get_drawing as get_drawing_record,
    insert_drawing,
    list_drawings as list_drawing_records,
    update_drawing_payload,
)
from ..services.inference import InferenceClient, InferenceFailure
from ..services.mesh import BoundingBox, Mesh
from ..services.pipeline import DrawingPipeline, DrawingResult

logger = logging.getLogger(__name__)

UPLOAD_DIR = STORAGE_DIR / "uploads"

router = APIRouter()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_mesh_importer() -> MeshImporter:
    """Build the CadQuery importer, or answer 503 when CadQuery is missing."""
    try:
        return CadQueryMeshImporter()
    except ImportError as exc:
        logger.warning("CAD import unavailable: %s", exc)
        raise HTTPException(status_code=503, detail="CAD import is not available on this server")


def get_inference_client() -> Iterator[InferenceClient]:
    client = InferenceClient()
    try:
        yield client
    finally:
        client.close()


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------


def _config_for(options: DrawingOptions) -> DrawingConfig:
    cfg = DrawingConfig.from_env()
    cfg = replace(
        cfg,
        placement=replace(cfg.placement, unit=options.unit),
        optimize_layout=options.optimizeLayout,
    )
    if options.maxPerView is not None:
        cfg = replace(cfg, filtering=replace(cfg.filtering, max_per_view=options.maxPerView))
    if options.seed is not None:
        cfg = replace(cfg, seed=options.seed)
    if options.layoutIterations is not None:
        cfg = replace(cfg, layout=replace(cfg.layout, max_iterations=options.layoutIterations))
    return cfg


def _issue_model(issue: DrawingIssue) -> QualityIssue:
    return QualityIssue(
        severity=issue.severity,
        category=issue.category,
        description=issue.description,
        location=issue.location,
        affectedDimensionId=issue.affected_dimension_id,
    )


def _correction_from_model(model: CorrectionModel) -> DimensionCorrection:
    return DimensionCorrection(
        dimension_id=model.dimensionId,
        action=model.action,
        reason=model.reason,
        current_value=model.currentValue,
        suggested_value=model.suggestedValue,
        new_position=NewPosition(**model.newPosition.model_dump()) if model.newPosition else None,
    )


def _correction_model(correction: DimensionCorrection) -> CorrectionModel:
    return CorrectionModel(
        dimensionId=correction.dimension_id,
        action=correction.action,
        reason=correction.reason,
        currentValue=correction.current_value,
        suggestedValue=correction.suggested_value,
        newPosition=asdict(correction.new_position) if correction.new_position else None,
    )


def _dimension_models(dimensions: List[Dimension]) -> List[DimensionModel]:
    return [DimensionModel.model_validate(asdict(d)) for d in dimensions]


def _dimensions_from_response(response: DrawingResponse) -> List[Dimension]:
    return [dimension_from_dict(d.model_dump()) for d in response.dimensions]


def _build_response(drawing_id: str, name: Optional[str], unit: str, result: DrawingResult) -> DrawingResponse:
    return DrawingResponse(
        drawingId=drawing_id,
        name=name,
        unit=unit,
        bbox=BoundingBoxPayload(min=list(result.bbox.min), max=list(result.bbox.max)),
        views=[
            ProjectedViewModel(
                view=v.view,
                edges=[
                    Edge2DModel(start=list(e.start), end=list(e.end), type=e.type, classification=e.classification)
                    for e in v.edges
                ],
                circles=[Circle2DModel(center=list(c.center), radius=c.radius, type=c.type) for c in v.circles],
                bounds=ViewBoundsModel(**asdict(v.bounds)),
                scale=v.scale,
            )
            for v in result.views
        ],
        datums=[
            DatumModel(id=d.id, type=d.type, normal=list(d.normal), center=list(d.center), area=d.area)
            for d in result.datums
        ],
        dimensions=_dimension_models(result.dimensions),
        issues=[_issue_model(i) for i in quick_quality_check(result.dimensions)],
    )


def _store(response: DrawingResponse) -> DrawingResponse:
    record = insert_drawing(
        DrawingRecord(
            drawing_id=response.drawingId,
            name=response.name,
            unit=response.unit,
            views=",".join(v.view for v in response.views),
            dimension_count=len(response.dimensions),
            payload=response.model_dump_json(),
        )
    )
    return response.model_copy(update={"createdAt": record.created_at})


def _load(drawing_id: str) -> DrawingResponse:
    record = get_drawing_record(drawing_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Drawing not found")
    response = DrawingResponse.model_validate_json(record.payload)
    return response.model_copy(update={"createdAt": record.created_at})


def _save_dimensions(response: DrawingResponse, dimensions: List[Dimension]) -> DrawingResponse:
    updated = response.model_copy(
        update={
            "dimensions": _dimension_models(dimensions),
            "issues": [_issue_model(i) for i in quick_quality_check(dimensions)],
        }
    )
    update_drawing_payload(updated.drawingId, updated.model_dump_json(), len(dimensions))
    return updated


def _run_pipeline(
    pipeline: DrawingPipeline,
    mesh: Mesh,
    bbox: Optional[BoundingBox],
    options: DrawingOptions,
) -> DrawingResult:
    try:
        return pipeline.generate(mesh, bbox=bbox, views=options.views, config=_config_for(options))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        logger.exception("Drawing generation failed: %r", exc)
        raise HTTPException(status_code=500, detail="Drawing generation failed")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/drawings", response_model=DrawingResponse, status_code=201)
def create_drawing(request: DrawingRequest) -> DrawingResponse:
    """Generate and store a drawing for a mesh posted as flat buffers.

    Raises:
        HTTPException: 400 for malformed mesh buffers or bounding boxes.
    """
    t0 = time.perf_counter()
    try:
        mesh = Mesh.from_buffers(request.mesh.vertices, request.mesh.indices, request.mesh.normals)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    bbox = BoundingBox.from_min_max(request.bbox.min, request.bbox.max) if request.bbox else None

    result = _run_pipeline(DrawingPipeline(), mesh, bbox, request)
    response = _store(_build_response(uuid.uuid4().hex, request.name, request.unit, result))
    logger.info(
        "create_drawing(%s): %d dimensions in %.3fs",
        response.drawingId,
        len(response.dimensions),
        time.perf_counter() - t0,
    )
    return response


@router.post("/drawings/upload", response_model=DrawingResponse, status_code=201)
def upload_drawing(
    file: UploadFile = File(...),
    views: str = Form("front,top,right"),
    unit: str = Form("mm"),
    maxPerView: Optional[int] = Form(None),
    seed: Optional[int] = Form(None),
    optimizeLayout: bool = Form(True),
    importer: MeshImporter = Depends(get_mesh_importer),
) -> DrawingResponse:
    """Generate and store a drawing for an uploaded STEP file."""
    filename = file.filename or "upload.step"
    ext = "." + filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    if ext not in STEP_SUFFIXES:
        raise HTTPException(status_code=400, detail=f"Unsupported file extension: {ext or '(none)'}")
    try:
        options = DrawingOptions(
            views=[v.strip() for v in views.split(",") if v.strip()],
            unit=unit,
            maxPerView=maxPerView,
            seed=seed,
            optimizeLayout=optimizeLayout,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    drawing_id = uuid.uuid4().hex
    path = UPLOAD_DIR / f"{drawing_id}{ext}"
    try:
        with path.open("wb") as out:
            shutil.copyfileobj(file.file, out)
        pipeline = DrawingPipeline(importer=importer)
        try:
            mesh = pipeline.importer.load(path)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        except Exception as exc:
            logger.exception("Failed to import %s: %r", filename, exc)
            raise HTTPException(status_code=422, detail="Could not read CAD file")
        result = _run_pipeline(pipeline, mesh, None, options)
    finally:
        path.unlink(missing_ok=True)
    return _store(_build_response(drawing_id, filename, options.unit, result))


@router.get("/drawings", response_model=list[DrawingSummary])
def list_drawings() -> list[DrawingSummary]:
    """Return a summary of every stored drawing, newest first."""
    return [
        DrawingSummary(
            drawingId=r.drawing_id,
            name=r.name,
            unit=r.unit,
            views=[v for v in r.views.split(",") if v],
            dimensionCount=r.dimension_count,
            createdAt=r.created_at,
            updatedAt=r.updated_at,
        )
        for r in list_drawing_records()
    ]


@router.get("/drawings/{drawing_id}", response_model=DrawingResponse)
def get_drawing(drawing_id: str) -> DrawingResponse:
    return _load(drawing_id)


@router.delete("/drawings/{drawing_id}", status_code=204)
def delete_drawing(drawing_id: str) -> None:
    if not delete_drawing_record(drawing_id):
        raise HTTPException(status_code=404, detail="Drawing not found")


@router.post("/drawings/{drawing_id}/corrections", response_model=DrawingResponse)
def correct_drawing(drawing_id: str, request: CorrectionRequest) -> DrawingResponse:
    """Apply dimension corrections to a stored drawing and persist the result."""
    response = _load(drawing_id)
    corrections = [_correction_from_model(c) for c in request.corrections]
    dimensions = apply_corrections(_dimensions_from_response(response), corrections)
    logger.info("correct_drawing(%s): %d corrections applied", drawing_id, len(corrections))
    return _save_dimensions(response, dimensions)


@router.get("/drawings/{drawing_id}/quality", response_model=list[QualityIssue])
def drawing_quality(drawing_id: str) -> list[QualityIssue]:
    """Run the local quality check on a stored drawing."""
    response = _load(drawing_id)
    return [_issue_model(i) for i in quick_quality_check(_dimensions_from_response(response))]


@router.post("/drawings/{drawing_id}/review", response_model=ReviewResponse)
def review_drawing(
    drawing_id: str,
    request: ReviewRequest,
    client: InferenceClient = Depends(get_inference_client),
) -> ReviewResponse:
    """Review a rendered drawing through the inference service.

    Remote failures are reported in the body (``success`` false with an
    ``errorKind``) rather than as HTTP errors, because the drawing itself
    is unaffected.
    """
    response = _load(drawing_id)
    dimensions = _dimensions_from_response(response)
    context = {
        "Views Included": ", ".join(v.view for v in response.views),
        "Part Size": "{:.1f} x {:.1f} x {:.1f} {}".format(
            response.bbox.max[0] - response.bbox.min[0],
            response.bbox.max[1] - response.bbox.min[1],
            response.bbox.max[2] - response.bbox.min[2],
            response.unit,
        ),
        **request.context,
    }
    review = client.review_drawing(request.image, dimensions, context, api_key=request.apiKey)
    if isinstance(review, InferenceFailure):
        return ReviewResponse(success=False, errorKind=review.kind, errorMessage=review.message)

    applied = 0
    if request.applyCorrections and review.corrections:
        corrected, applied = apply_corrections_counted(dimensions, review.corrections)
        if applied:
            _save_dimensions(response, corrected)
    return ReviewResponse(
        success=True,
        isAcceptable=review.is_acceptable,
        overallScore=review.overall_score,
        issues=[_issue_model(i) for i in review.issues],
        suggestions=review.suggestions,
        corrections=[_correction_model(c) for c in review.corrections],
        applied=applied,
    )
