"""Field detection API routes."""

import asyncio
import json
import logging

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status
from pydantic import TypeAdapter, ValidationError

from app.core.config import get_settings
from app.models import ELEMENT_FIELD_TYPES
from app.schemas import (
    BoundingBox,
    DetectedElementResponse,
    DetectionResponse,
    TextBoxInput,
)
from app.services.detection.detector import RasterFieldDetector
from app.services.detection.elements import DetectionOptions, TextBox
from app.services.detection.geometry import BBox, normalize_bbox
from app.services.document import document_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/detection", tags=["detection"])

text_boxes_adapter = TypeAdapter(list[TextBoxInput])


def parse_text_boxes(raw: str | None) -> list[TextBox] | None:
    """Parse the optional ``text_boxes`` form field (a JSON list)."""
    if not raw:
        return None

    try:
        items = text_boxes_adapter.validate_python(json.loads(raw))
    except (ValueError, ValidationError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid text_boxes: {e}",
        )

    return [TextBox(text=item.text, bbox=BBox(**item.bbox.model_dump())) for item in items]


@router.post("/detect", response_model=DetectionResponse)
async def detect_fields(
    file: UploadFile = File(...),
    text_boxes: str | None = Form(None),
    confidence_threshold: float | None = Form(None, ge=0, le=1),
    scale: float | None = Form(None, gt=0),
):
    """
    Detect form fields in an uploaded page image.

    The image is treated as a page rendered at ``scale`` (defaults to the
    configured render scale); size thresholds are adjusted accordingly.
    Known text boxes, in the image's pixel space, suppress detections
    that fall inside printed text.
    """
    settings = get_settings()

    file_content = await file.read()
    if len(file_content) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large. Maximum size: {settings.max_upload_bytes} bytes",
        )

    try:
        pixels = document_service.load_image(file_content)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    known_text = parse_text_boxes(text_boxes)
    options = DetectionOptions.for_scale(
        scale or settings.render_scale,
        merge_threshold=settings.detection_merge_threshold,
        confidence_threshold=(
            confidence_threshold
            if confidence_threshold is not None
            else settings.detection_confidence_threshold
        ),
    )

    height, width = pixels.shape[:2]
    detector = RasterFieldDetector(options)
    result = await asyncio.to_thread(detector.detect_with_stats, pixels, width, height, known_text)

    logger.info(
        "Detected %d elements in %s (%dx%d)",
        len(result.elements),
        file.filename,
        width,
        height,
    )

    elements = [
        DetectedElementResponse(
            type=e.type,
            field_type=ELEMENT_FIELD_TYPES.get(e.type),
            bbox=BoundingBox(**e.bbox.to_dict()),
            normalized_bbox=BoundingBox(**normalize_bbox(e.bbox, width, height).to_dict()),
            confidence=e.confidence,
        )
        for e in result.elements
    ]

    return DetectionResponse(
        width=width,
        height=height,
        elements=elements,
        detection_time_ms=result.detection_time_ms,
        total_candidates=result.total_candidates,
        filtered_candidates=result.filtered_candidates,
    )
