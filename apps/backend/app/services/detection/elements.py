"""Value types produced and consumed by the raster field detector."""

from dataclasses import dataclass, replace

from app.models import ElementType
from app.services.detection.geometry import BBox

# Render scale the default option values were tuned for.
BASE_RENDER_SCALE = 3.0


@dataclass(frozen=True)
class DetectedElement:
    """A detected field candidate in pixel coordinates."""
    type: ElementType
    bbox: BBox
    confidence: float

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "bbox": self.bbox.to_dict(),
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class TextBox:
    """Known text run from the page text layer, in pixel coordinates."""
    text: str
    bbox: BBox


@dataclass(frozen=True)
class DetectionOptions:
    """Pixel-space tuning knobs for the raster detector."""
    min_text_field_height: float = 12  # ~10pt text height
    max_field_height: float = 200  # Capped to half the page height per call
    min_checkbox_size: int = 8
    max_checkbox_size: int = 20
    min_radio_size: int = 8
    max_radio_size: int = 16
    merge_threshold: float = 5
    confidence_threshold: float = 0.3

    @classmethod
    def for_scale(cls, scale: float, **overrides) -> "DetectionOptions":
        """
        Build options for pages rendered at ``scale``.

        Every pixel distance grows linearly with the render scale relative to
        the 3x baseline; the confidence threshold is scale independent.
        """
        base = cls(**overrides)
        factor = scale / BASE_RENDER_SCALE if scale > 0 else 1.0
        if factor == 1.0:
            return base

        def size(value: int) -> int:
            return max(2, int(round(value * factor)))

        return replace(
            base,
            min_text_field_height=base.min_text_field_height * factor,
            max_field_height=base.max_field_height * factor,
            min_checkbox_size=size(base.min_checkbox_size),
            max_checkbox_size=size(base.max_checkbox_size),
            min_radio_size=size(base.min_radio_size),
            max_radio_size=size(base.max_radio_size),
            merge_threshold=base.merge_threshold * factor,
        )

    def for_page(self, page_height: float) -> "DetectionOptions":
        """Copy with ``max_field_height`` limited to half the page height."""
        return replace(
            self,
            max_field_height=min(self.max_field_height, page_height * 0.5),
        )


@dataclass
class DetectionResult:
    """Result of running the detector on one page."""
    elements: list[DetectedElement]
    detection_time_ms: float
    total_candidates: int
    filtered_candidates: int
