"""
Client for the remote drawing inference service.

Two endpoints are used:

- ``POST {base}/vision`` reviews a rendered drawing image.  The service
  replies with an envelope ``{"success": bool, "response": str}`` whose
  ``response`` text contains a JSON review (score, issues, suggestions
  and corrections).
- ``POST {base}/drawing`` suggests dimensions for a part summary.  The
  reply is ``{"success": bool, "dimensions": [...], "notes": [...],
  "title_block_suggestions": {...}}``.

Remote problems never raise.  Every call returns either a success value
or an :class:`InferenceFailure` whose ``kind`` says what went wrong, and
every payload is validated with pydantic: a reply that does not match
the expected shape is reported as ``unparseable-response`` rather than
filled in with defaults.

The base URL and API key default to the ``ORTHODRAW_INFERENCE_URL`` and
``ORTHODRAW_API_KEY`` environment variables.  The HTTP client is
injected so tests (and callers with their own connection pools) can
supply one.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional, Sequence, Union

import httpx
from pydantic import BaseModel, Field, ValidationError

from .corrections import DimensionCorrection, DrawingIssue, NewPosition, apply_corrections
from .dimensions import Dimension, DimensionPosition

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://ai.ohmframe.com/api"
API_KEY_PREFIX = "ohm_"

FailureKind = Literal[
    "invalid-api-key",
    "unauthorized",
    "http-error",
    "service-error",
    "network-error",
    "unparseable-response",
]

REVIEW_SYSTEM_PROMPT = """You are a mechanical drawing checker familiar with ASME Y14.5.
Review the 2D engineering drawing and report problems with specific corrections.

Check dimension completeness (overall and feature dimensions), placement
(outside the views, no crossing lines, at least 6mm between stacked
dimensions), standard notation (diameter and radius symbols, consistent
units) and view clarity (dashed hidden lines, labelled views).

Respond with JSON only:
{
  "isAcceptable": true,
  "overallScore": 85,
  "issues": [{"severity": "major", "category": "dimension",
              "description": "...", "location": "Front View"}],
  "suggestions": ["..."],
  "corrections": [{"dimensionId": "front_dim_3", "action": "reposition",
                   "reason": "...",
                   "newPosition": {"start_x": 0, "start_y": -25, "end_x": 50, "end_y": -25}}]
}"""


# ---------------------------------------------------------------------------
# Wire schemas
# ---------------------------------------------------------------------------


class ServiceEnvelope(BaseModel):
    success: bool
    response: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None


class WireIssue(BaseModel):
    severity: Literal["critical", "major", "minor"]
    category: Literal["dimension", "layout", "standard", "clarity", "missing"]
    description: str
    location: Optional[str] = None
    affectedDimensionId: Optional[str] = None


class WirePosition(BaseModel):
    start_x: float
    start_y: float
    end_x: float
    end_y: float


class WireCorrection(BaseModel):
    dimensionId: str
    action: Literal["move", "reposition", "modify", "delete", "add"]
    reason: str = ""
    currentValue: Optional[float] = None
    suggestedValue: Optional[float] = None
    newPosition: Optional[WirePosition] = None


class WireReview(BaseModel):
    isAcceptable: bool
    overallScore: float = Field(..., ge=0, le=100)
    issues: List[WireIssue] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    corrections: List[WireCorrection] = Field(default_factory=list)


class WireDimensionPosition(BaseModel):
    start_x: float
    start_y: float
    end_x: float
    end_y: float
    text_x: Optional[float] = None
    text_y: Optional[float] = None


class WireDimension(BaseModel):
    id: str
    type: Literal["linear", "diameter", "radius", "angular", "ordinate", "arc_length"]
    value: float
    unit: Literal["mm", "in"]
    view: str
    position: WireDimensionPosition
    label: str = ""
    is_critical: bool = False
    tolerance_plus: Optional[float] = None
    tolerance_minus: Optional[float] = None


class WireSuggestion(BaseModel):
    success: bool
    error: Optional[str] = None
    dimensions: List[WireDimension] = Field(default_factory=list)
    notes: List[str] = Field(default_factory=list)
    title_block_suggestions: Dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class InferenceFailure:
    kind: FailureKind
    message: str
    status_code: Optional[int] = None


@dataclass
class ReviewSuccess:
    is_acceptable: bool
    overall_score: float
    issues: List[DrawingIssue] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)
    corrections: List[DimensionCorrection] = field(default_factory=list)


@dataclass
class SuggestionSuccess:
    dimensions: List[Dimension] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    title_block_suggestions: Dict[str, Any] = field(default_factory=dict)


ReviewResult = Union[ReviewSuccess, InferenceFailure]
SuggestionResult = Union[SuggestionSuccess, InferenceFailure]


@dataclass
class ReviewLoopResult:
    """Outcome of :meth:`InferenceClient.review_and_correct`."""

    final_dimensions: List[Dimension]
    final_image: str
    reviews: List[ReviewResult]
    iteration_count: int

    @property
    def accepted(self) -> bool:
        last = self.reviews[-1] if self.reviews else None
        return isinstance(last, ReviewSuccess) and last.is_acceptable


_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def _review_from_wire(wire: WireReview) -> ReviewSuccess:
    return ReviewSuccess(
        is_acceptable=wire.isAcceptable,
        overall_score=wire.overallScore,
        issues=[
            DrawingIssue(
                severity=i.severity,
                category=i.category,
                description=i.description,
                location=i.location,
                affected_dimension_id=i.affectedDimensionId,
            )
            for i in wire.issues
        ],
        suggestions=list(wire.suggestions),
        corrections=[
            DimensionCorrection(
                dimension_id=c.dimensionId,
                action=c.action,
                reason=c.reason,
                current_value=c.currentValue,
                suggested_value=c.suggestedValue,
                new_position=NewPosition(**c.newPosition.model_dump()) if c.newPosition else None,
            )
            for c in wire.corrections
        ],
    )


def _dimension_from_wire(wire: WireDimension) -> Dimension:
    return Dimension(
        id=wire.id,
        type=wire.type,
        value=wire.value,
        unit=wire.unit,
        view=wire.view,
        position=DimensionPosition(**wire.position.model_dump()),
        label=wire.label,
        is_critical=wire.is_critical,
        tolerance_plus=wire.tolerance_plus,
        tolerance_minus=wire.tolerance_minus,
    )


def parse_review_text(text: str) -> ReviewResult:
    """Extract and validate the JSON review embedded in ``text``."""
    match = _JSON_OBJECT.search(text or "")
    if match is None:
        return InferenceFailure("unparseable-response", "Review response contained no JSON object")
    try:
        wire = WireReview.model_validate(json.loads(match.group(0)))
    except (json.JSONDecodeError, ValidationError) as exc:
        return InferenceFailure("unparseable-response", f"Malformed review JSON: {exc}")
    return _review_from_wire(wire)


class InferenceClient:
    """Synchronous client for the drawing review and suggestion service."""

    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
    ) -> None:
        self.base_url = (base_url or os.getenv("ORTHODRAW_INFERENCE_URL") or DEFAULT_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else os.getenv("ORTHODRAW_API_KEY", "")
        self._http = http_client or httpx.Client(timeout=timeout)

    def close(self) -> None:
        self._http.close()

    # -- transport ---------------------------------------------------------

    def _check_key(self, api_key: Optional[str]) -> Union[str, InferenceFailure]:
        key = api_key if api_key is not None else self.api_key
        if not key:
            return InferenceFailure("invalid-api-key", "An API key is required")
        if not key.startswith(API_KEY_PREFIX):
            return InferenceFailure("invalid-api-key", f"Invalid API key format; keys start with '{API_KEY_PREFIX}'")
        return key

    def _post(self, path: str, api_key: str, body: Dict[str, Any]) -> Union[Any, InferenceFailure]:
        url = f"{self.base_url}{path}"
        try:
            response = self._http.post(
                url,
                json=body,
                headers={"Authorization": f"Bearer {api_key}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("Inference request to %s failed: %s", url, exc)
            return InferenceFailure("network-error", str(exc) or exc.__class__.__name__)

        if response.status_code == 401:
            return InferenceFailure("unauthorized", "Invalid or expired API key", status_code=401)
        if response.is_error:
            detail = f"HTTP {response.status_code}"
            try:
                payload = response.json()
                if isinstance(payload, dict) and payload.get("error"):
                    detail = str(payload["error"])
            except ValueError:
                pass
            return InferenceFailure("http-error", detail, status_code=response.status_code)
        try:
            return response.json()
        except ValueError:
            return InferenceFailure("unparseable-response", "Response body is not JSON")

    # -- operations --------------------------------------------------------

    def review_drawing(
        self,
        image_data: str,
        dimensions: Sequence[Dimension],
        context: Optional[Dict[str, Any]] = None,
        api_key: Optional[str] = None,
    ) -> ReviewResult:
        """Ask the service to review a rendered drawing.

        Args:
            image_data: Data URL (or base64) of the rendered drawing.
            dimensions: Dimensions currently on the drawing; summarised in
                the prompt so corrections can refer to them by id.
            context: Optional extra facts (views, part size, sheet size).
            api_key: Overrides the client's key for this call.
        """
        key = self._check_key(api_key)
        if isinstance(key, InferenceFailure):
            return key

        summary = [
            {"id": d.id, "type": d.type, "value": d.value, "view": d.view, "isCritical": d.is_critical}
            for d in dimensions
        ]
        lines = ["Review this engineering drawing for ASME Y14.5 compliance and quality.", "", "DRAWING CONTEXT:"]
        for name, value in (context or {}).items():
            lines.append(f"- {name}: {value}")
        lines.append(f"- Total Dimensions: {len(summary)}")
        lines += ["", "CURRENT DIMENSIONS:", json.dumps(summary, indent=2), "", "Respond with JSON only."]

        payload = self._post(
            "/vision",
            key,
            {"prompt": "\n".join(lines), "mode": "analyze", "context": REVIEW_SYSTEM_PROMPT, "image": image_data},
        )
        if isinstance(payload, InferenceFailure):
            return payload
        try:
            envelope = ServiceEnvelope.model_validate(payload)
        except ValidationError as exc:
            return InferenceFailure("unparseable-response", f"Malformed service envelope: {exc}")
        if not envelope.success or envelope.error:
            return InferenceFailure("service-error", envelope.error or "Unknown service error")

        result = parse_review_text(envelope.response or envelope.message or "")
        if isinstance(result, ReviewSuccess):
            logger.info(
                "review_drawing: score=%.0f acceptable=%s issues=%d corrections=%d",
                result.overall_score,
                result.is_acceptable,
                len(result.issues),
                len(result.corrections),
            )
        return result

    def suggest_dimensions(
        self,
        part_summary: Dict[str, Any],
        views: Sequence[str] = ("front", "top", "right"),
        standard: Literal["ASME", "ISO"] = "ASME",
        unit: Literal["mm", "in"] = "mm",
        api_key: Optional[str] = None,
    ) -> SuggestionResult:
        """Request dimension suggestions for a part.

        ``part_summary`` must carry a ``bounding_box``; without geometry
        there is nothing to dimension and the call fails locally with a
        ``service-error``.
        """
        key = self._check_key(api_key)
        if isinstance(key, InferenceFailure):
            return key
        if not part_summary.get("bounding_box"):
            return InferenceFailure("service-error", "Part summary has no geometry")

        payload = self._post(
            "/drawing",
            key,
            {"stepData": part_summary, "views": list(views), "standard": standard, "unit": unit},
        )
        if isinstance(payload, InferenceFailure):
            return payload
        if isinstance(payload, dict) and payload.get("success") is False:
            return InferenceFailure("service-error", str(payload.get("error") or "Failed to generate dimensions"))
        try:
            wire = WireSuggestion.model_validate(payload)
        except ValidationError as exc:
            return InferenceFailure("unparseable-response", f"Malformed suggestion payload: {exc}")
        return SuggestionSuccess(
            dimensions=[_dimension_from_wire(d) for d in wire.dimensions],
            notes=list(wire.notes),
            title_block_suggestions=dict(wire.title_block_suggestions),
        )

    def review_and_correct(
        self,
        render: Callable[[List[Dimension]], str],
        dimensions: Sequence[Dimension],
        context: Optional[Dict[str, Any]] = None,
        max_iterations: int = 3,
        acceptable_score: float = 80.0,
        api_key: Optional[str] = None,
    ) -> ReviewLoopResult:
        """Review, apply corrections and re-render until acceptable.

        The loop stops when a review is acceptable with a score of at
        least ``acceptable_score``, when a review fails, when issues are
        reported without any correction to apply, or after
        ``max_iterations`` reviews.

        The drawing is rendered once up front and again after every
        applied correction, so ``final_image`` always shows
        ``final_dimensions``.
        """
        current = list(dimensions)
        image = render(current)
        reviews: List[ReviewResult] = []
        iteration = 0
        while iteration < max_iterations:
            iteration += 1
            review = self.review_drawing(image, current, context, api_key=api_key)
            reviews.append(review)
            if isinstance(review, InferenceFailure):
                logger.warning("review_and_correct: iteration %d failed (%s): %s", iteration, review.kind, review.message)
                break
            logger.info("review_and_correct: iteration %d/%d score %.0f", iteration, max_iterations, review.overall_score)
            if review.is_acceptable and review.overall_score >= acceptable_score:
                break
            if review.corrections:
                current = apply_corrections(current, review.corrections)
                image = render(current)
            elif review.issues:
                logger.info("review_and_correct: %d issues without corrections", len(review.issues))
                break
        return ReviewLoopResult(final_dimensions=current, final_image=image, reviews=reviews, iteration_count=iteration)


__all__ = [
    "DEFAULT_BASE_URL",
    "FailureKind",
    "InferenceFailure",
    "ReviewSuccess",
    "SuggestionSuccess",
    "ReviewResult",
    "SuggestionResult",
    "ReviewLoopResult",
    "parse_review_text",
    "InferenceClient",
]
