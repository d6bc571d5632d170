"""
Raster field detector for identifying form fields in rendered page images.

This module works purely on pixels, so it handles scanned and flattened
documents that carry no vector drawings or form widgets:
1. Per-type detection passes over a brightness view of the page
2. Size and text-overlap filtering
3. Merging of adjacent same-type candidates
4. Confidence thresholding
"""

import logging
import time
from typing import Any

from app.services.detection.elements import (
    DetectedElement,
    DetectionOptions,
    DetectionResult,
    TextBox,
)
from app.services.detection.passes import DETECTION_PASSES
from app.services.detection.postprocess import postprocess
from app.services.detection.raster import PixelBuffer

logger = logging.getLogger(__name__)


class RasterFieldDetector:
    """
    Heuristic form field detector over a page's pixel buffer.

    Detection strategies:
    1. Text fields: underlines with clear space above, and bordered boxes
    2. Checkboxes: small squares with dark perimeters
    3. Radio buttons: small circles with dark circumferences
    4. Signature areas: wide, low bordered rectangles
    5. Standalone lines: isolated horizontal strokes

    The detector holds only its options; every call builds its own state, so
    one instance can be shared across threads.
    """

    def __init__(self, options: DetectionOptions | None = None):
        self.options = options or DetectionOptions()

    def detect(
        self,
        pixels: Any,
        width: int,
        height: int,
        text_boxes: list[TextBox] | None = None,
    ) -> list[DetectedElement]:
        """
        Detect form fields in a page image.

        Args:
            pixels: RGBA/RGB/grayscale buffer (bytes-like or numpy array)
            width: Image width in pixels
            height: Image height in pixels
            text_boxes: Known text runs in the same pixel space (optional)

        Returns:
            Detected elements in pixel coordinates
        """
        return self.detect_with_stats(pixels, width, height, text_boxes).elements

    def detect_with_stats(
        self,
        pixels: Any,
        width: int,
        height: int,
        text_boxes: list[TextBox] | None = None,
    ) -> DetectionResult:
        """Same as ``detect`` but also reports timing and candidate counts."""
        start_time = time.time()

        if width <= 0 or height <= 0:
            return DetectionResult(
                elements=[],
                detection_time_ms=0.0,
                total_candidates=0,
                filtered_candidates=0,
            )

        buffer = PixelBuffer(pixels, width, height)
        options = self.options.for_page(buffer.height)

        candidates: list[DetectedElement] = []
        for detection_pass in DETECTION_PASSES:
            found = detection_pass(buffer, options)
            logger.debug("%s found %d candidates", detection_pass.__name__, len(found))
            candidates.extend(found)

        elements = postprocess(candidates, options, buffer.height, text_boxes)

        detection_time_ms = (time.time() - start_time) * 1000
        logger.debug(
            "Detected %d elements from %d candidates on %dx%d page in %.1fms",
            len(elements),
            len(candidates),
            width,
            height,
            detection_time_ms,
        )

        return DetectionResult(
            elements=elements,
            detection_time_ms=detection_time_ms,
            total_candidates=len(candidates),
            filtered_candidates=len(elements),
        )
