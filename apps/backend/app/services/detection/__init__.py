"""Raster form field detection."""

from app.services.detection.detector import RasterFieldDetector
from app.services.detection.elements import (
    DetectedElement,
    DetectionOptions,
    DetectionResult,
    TextBox,
)
from app.services.detection.geometry import BBox, iou, normalize_bbox

__all__ = [
    "BBox",
    "DetectedElement",
    "DetectionOptions",
    "DetectionResult",
    "RasterFieldDetector",
    "TextBox",
    "iou",
    "normalize_bbox",
]
