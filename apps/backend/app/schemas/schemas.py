"""Pydantic schemas for annotation documents and API request/response validation."""

from typing import Any

from pydantic import BaseModel, Field as PydanticField
from pydantic.alias_generators import to_camel

from app.models.models import ElementType, FieldType


# --- Base schemas ---


class CamelSchema(BaseModel):
    """Base schema for documents exchanged as camelCase JSON."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


# --- Annotation / prediction documents ---


class NormalizedRect(CamelSchema):
    """Rectangle in page-relative [0, 1] coordinates (right/bottom not clamped)."""

    x: float
    y: float
    width: float = PydanticField(ge=0)
    height: float = PydanticField(ge=0)


class FieldAnnotation(CamelSchema):
    """Hand-labeled ground-truth field."""

    id: str | None = None  # Stable across labeling revisions
    type: FieldType
    rect: NormalizedRect
    attributes: dict[str, Any] | None = None


class FieldPrediction(FieldAnnotation):
    """Field produced by a detector."""

    confidence: float | None = None
    extra: dict[str, Any] | None = None  # Detector-specific output


class PageAnnotation(CamelSchema):
    """Ground-truth fields for one page."""

    page_index: int
    width: float | None = None  # Absolute size in PDF units
    height: float | None = None
    fields: list[FieldAnnotation] = []


class PagePrediction(CamelSchema):
    """Predicted fields for one page."""

    page_index: int
    fields: list[FieldPrediction] = []


class DocumentAnnotation(CamelSchema):
    """Ground truth for a whole document."""

    document_id: str
    pages: list[PageAnnotation] = []
    source_path: str | None = None
    metadata: dict[str, Any] | None = None


class DetectionOutput(CamelSchema):
    """Detector output for a whole document."""

    document_id: str
    pages: list[PagePrediction] = []
    summary: dict[str, Any] | None = None


# --- Detection API schemas ---


class BoundingBox(BaseModel):
    """Schema for an element bounding box."""

    x: float
    y: float
    width: float
    height: float


class TextBoxInput(BaseModel):
    """Known text run in the uploaded image's pixel space."""

    text: str = ""
    bbox: BoundingBox


class DetectedElementResponse(BaseModel):
    """Schema for one detected element."""

    type: ElementType
    field_type: FieldType | None = None
    bbox: BoundingBox
    normalized_bbox: BoundingBox
    confidence: float


class DetectionResponse(BaseModel):
    """Schema for raster detection response."""

    width: int
    height: int
    elements: list[DetectedElementResponse]
    detection_time_ms: float
    total_candidates: int
    filtered_candidates: int


# --- Evaluation API schemas ---


class EvaluationRequest(CamelSchema):
    """Schema for scoring predictions against optional ground truth."""

    annotations: DocumentAnnotation | None = None
    predictions: DetectionOutput
    threshold: float | None = PydanticField(default=None, gt=0, le=1)
