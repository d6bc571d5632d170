"""Schemas package."""

from app.schemas.schemas import (
    BoundingBox,
    CamelSchema,
    DetectedElementResponse,
    DetectionOutput,
    DetectionResponse,
    DocumentAnnotation,
    EvaluationRequest,
    FieldAnnotation,
    FieldPrediction,
    NormalizedRect,
    PageAnnotation,
    PagePrediction,
    TextBoxInput,
)

__all__ = [
    "BoundingBox",
    "CamelSchema",
    "DetectedElementResponse",
    "DetectionOutput",
    "DetectionResponse",
    "DocumentAnnotation",
    "EvaluationRequest",
    "FieldAnnotation",
    "FieldPrediction",
    "NormalizedRect",
    "PageAnnotation",
    "PagePrediction",
    "TextBoxInput",
]
