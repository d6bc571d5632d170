"""
Built-in benchmark detectors.

- ``empty``: lower-bound baseline with no predictions
- ``heuristic:raster``: renders pages and runs ``RasterFieldDetector``
- ``acroform``: reports the PDF's existing form widgets
- ``vector``: field hints from stroked lines and rectangles
- ``text``: field hints from leader characters and checkbox glyphs
- ``anchors``: fields suggested next to colon labels, signature lines,
  leaders and checkbox glyphs
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Any

import fitz  # PyMuPDF

from app.core.config import get_settings
from app.models import ELEMENT_FIELD_TYPES, FieldType
from app.schemas import DetectionOutput, FieldPrediction, NormalizedRect, PagePrediction
from app.services.detection.detector import RasterFieldDetector
from app.services.detection.elements import DetectedElement, DetectionOptions, TextBox
from app.services.detection.geometry import BBox, normalize_bbox
from app.services.document import document_service
from app.services.evaluation.matcher import rect_iou
from app.services.evaluation.registry import Detector, DetectorContext, register_detector

logger = logging.getLogger(__name__)


def element_to_prediction(
    element: DetectedElement, page_width: float, page_height: float
) -> FieldPrediction | None:
    """Map a raster element to a normalized field prediction (None if unmapped)."""
    field_type = ELEMENT_FIELD_TYPES.get(element.type)
    if field_type is None:
        return None

    normalized = normalize_bbox(element.bbox, page_width, page_height)
    return FieldPrediction(
        type=field_type,
        rect=NormalizedRect(**normalized.to_dict()),
        confidence=element.confidence,
        attributes={"detectorSourceType": element.type.value},
    )


def pdf_rect_to_normalized(bbox: BBox, page_rect: fitz.Rect) -> NormalizedRect:
    """Normalize a top-left-origin PDF rect, clamped to the page."""
    normalized = normalize_bbox(bbox, page_rect.width, page_rect.height)
    return NormalizedRect(
        x=min(1.0, max(0.0, normalized.x)),
        y=min(1.0, max(0.0, normalized.y)),
        width=min(1.0, max(0.0, normalized.width)),
        height=min(1.0, max(0.0, normalized.height)),
    )


class EmptyDetector(Detector):
    """Returns no detections; a lower-bound sanity check."""

    name = "Empty baseline"
    description = "Returns no detections; useful as a lower-bound sanity check."

    async def detect(self, context: DetectorContext) -> DetectionOutput:
        annotations = context.sample.annotations
        pages = []
        if annotations is not None:
            pages = [PagePrediction(page_index=page.page_index, fields=[]) for page in annotations.pages]

        return DetectionOutput(
            document_id=context.sample.document_id,
            pages=pages,
            summary={"note": "No detections produced."},
        )


class RasterHeuristicDetector(Detector):
    """
    Render every page and run the raster field detector on it.

    Pages run one at a time in a worker thread under a per-page timeout. A
    page that fails or times out is skipped and listed in the summary.
    """

    detector_id = "heuristic:raster"
    name = "Raster heuristics (PyMuPDF)"
    description = "Renders pages with PyMuPDF and runs the raster field heuristics."

    def __init__(self, scale: float | None = None, page_timeout: float | None = None):
        self.scale = scale
        self.page_timeout = page_timeout

    def build_options(self, scale: float) -> DetectionOptions:
        settings = get_settings()
        return DetectionOptions.for_scale(
            scale,
            merge_threshold=settings.detection_merge_threshold,
            confidence_threshold=settings.detection_confidence_threshold,
        )

    def detect_page(
        self,
        pdf_path: Path,
        page_index: int,
        scale: float,
        detector: RasterFieldDetector,
    ) -> list[FieldPrediction]:
        """Render and detect one page (blocking)."""
        raster = document_service.render_page_at(pdf_path, page_index, scale)
        elements = detector.detect(raster.pixels, raster.width, raster.height, raster.text_boxes)

        fields = []
        for element in elements:
            prediction = element_to_prediction(element, raster.width, raster.height)
            if prediction is not None:
                fields.append(prediction)
        return fields

    async def detect(self, context: DetectorContext) -> DetectionOutput:
        settings = get_settings()
        scale = float(context.options.get("scale") or self.scale or settings.render_scale)
        timeout = self.page_timeout or settings.page_timeout_seconds
        detector = RasterFieldDetector(self.build_options(scale))
        pdf_path = context.sample.pdf_path

        page_count = await asyncio.to_thread(document_service.page_count, pdf_path)

        pages = []
        failed_pages: list[dict[str, Any]] = []
        for page_index in range(page_count):
            try:
                fields = await asyncio.wait_for(
                    asyncio.to_thread(self.detect_page, pdf_path, page_index, scale, detector),
                    timeout=timeout,
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "Page %d of %s timed out after %.1fs",
                    page_index,
                    context.sample.document_id,
                    timeout,
                )
                failed_pages.append({"pageIndex": page_index, "error": "timeout"})
                continue
            except (ValueError, RuntimeError) as e:
                logger.warning(
                    "Page %d of %s failed: %s", page_index, context.sample.document_id, e
                )
                failed_pages.append({"pageIndex": page_index, "error": str(e)})
                continue

            pages.append(PagePrediction(page_index=page_index, fields=fields))

        return DetectionOutput(
            document_id=context.sample.document_id,
            pages=pages,
            summary={
                "detector": self.detector_id,
                "scale": scale,
                "failedPages": failed_pages,
            },
        )


class AcroFormDetector(Detector):
    """Report existing PDF form widgets as detections."""

    detector_id = "acroform"
    name = "Existing AcroForm (PyMuPDF)"
    description = "Reads embedded AcroForm widgets and reports them as detections."

    WIDGET_TYPES = {
        fitz.PDF_WIDGET_TYPE_TEXT: FieldType.TEXT,
        fitz.PDF_WIDGET_TYPE_CHECKBOX: FieldType.CHECKBOX,
        fitz.PDF_WIDGET_TYPE_RADIOBUTTON: FieldType.RADIO,
        fitz.PDF_WIDGET_TYPE_COMBOBOX: FieldType.DROPDOWN,
        fitz.PDF_WIDGET_TYPE_LISTBOX: FieldType.LISTBOX,
        fitz.PDF_WIDGET_TYPE_BUTTON: FieldType.BUTTON,
        fitz.PDF_WIDGET_TYPE_SIGNATURE: FieldType.SIGNATURE,
    }

    def widget_field_type(self, widget: fitz.Widget) -> FieldType | None:
        field_type = self.WIDGET_TYPES.get(widget.field_type)
        if field_type == FieldType.TEXT and widget.field_flags & fitz.PDF_TX_FIELD_IS_MULTILINE:
            return FieldType.MULTILINE
        return field_type

    def read_widgets(self, pdf_path: Path) -> tuple[list[PagePrediction], int]:
        doc = document_service.open_document(pdf_path)
        pages = []
        widget_count = 0
        try:
            for page in doc:
                fields = []
                for widget in page.widgets() or []:
                    field_type = self.widget_field_type(widget)
                    if field_type is None:
                        continue
                    rect = widget.rect
                    fields.append(FieldPrediction(
                        type=field_type,
                        rect=pdf_rect_to_normalized(
                            BBox(x=rect.x0, y=rect.y0, width=rect.width, height=rect.height),
                            page.rect,
                        ),
                        confidence=0.95,
                        attributes={"source": "acroform", "name": widget.field_name},
                    ))
                widget_count += len(fields)
                pages.append(PagePrediction(page_index=page.number, fields=fields))
        finally:
            doc.close()
        return pages, widget_count

    async def detect(self, context: DetectorContext) -> DetectionOutput:
        pages, widget_count = await asyncio.to_thread(self.read_widgets, context.sample.pdf_path)
        return DetectionOutput(
            document_id=context.sample.document_id,
            pages=pages,
            summary={"detector": self.detector_id, "fields": widget_count},
        )


class VectorDetector(Detector):
    """
    Infer fields from the page's vector drawings.

    Horizontal strokes become text fields (long ones become signatures) placed
    on top of the stroke; small near-square rectangles become checkboxes.
    Distances are in PDF points.
    """

    detector_id = "vector"
    name = "Vector primitives (PyMuPDF)"
    description = "Inspects stroked lines and rectangles in the drawing layer as field hints."

    MIN_TEXT_LINE = 0.8 * 72
    MIN_SIGNATURE_LINE = 2.4 * 72
    MAX_LINE_TILT = 1.5  # Allowed vertical drift in points
    LINE_HEIGHT = 8
    SIGNATURE_HEIGHT = 11
    CHECKBOX_MIN = 5
    CHECKBOX_MAX = 28
    CHECKBOX_RATIO_MIN = 0.75

    def line_field(self, x: float, y: float, length: float, page_rect: fitz.Rect) -> FieldPrediction:
        is_signature = length >= self.MIN_SIGNATURE_LINE
        height = self.SIGNATURE_HEIGHT if is_signature else self.LINE_HEIGHT
        return FieldPrediction(
            type=FieldType.SIGNATURE if is_signature else FieldType.TEXT,
            rect=pdf_rect_to_normalized(BBox(x=x, y=y - height, width=length, height=height), page_rect),
            confidence=0.55 if is_signature else 0.4,
            attributes={"source": "vector"},
        )

    def rect_fields(self, rect: fitz.Rect, page_rect: fitz.Rect) -> list[FieldPrediction]:
        width, height = abs(rect.width), abs(rect.height)
        if width == 0 or height == 0:
            return []
        x, y = min(rect.x0, rect.x1), min(rect.y0, rect.y1)

        # Filled thin rectangles are often drawn instead of lines
        if height <= 3.5 and width >= self.MIN_TEXT_LINE:
            return [self.line_field(x, y + height, width, page_rect)]

        ratio = min(width, height) / max(width, height)
        if self.CHECKBOX_MIN <= height <= self.CHECKBOX_MAX and ratio >= self.CHECKBOX_RATIO_MIN:
            return [FieldPrediction(
                type=FieldType.CHECKBOX,
                rect=pdf_rect_to_normalized(BBox(x=x, y=y, width=width, height=height), page_rect),
                confidence=0.65,
                attributes={"source": "vector"},
            )]

        return []

    def page_fields(self, page: fitz.Page) -> list[FieldPrediction]:
        fields = []
        for path in page.get_drawings():
            for item in path.get("items", []):
                if item[0] == "l":  # Line
                    start, end = item[1], item[2]
                    if abs(start.y - end.y) > self.MAX_LINE_TILT:
                        continue
                    length = abs(end.x - start.x)
                    if length < self.MIN_TEXT_LINE:
                        continue
                    line_y = (start.y + end.y) / 2
                    fields.append(self.line_field(min(start.x, end.x), line_y, length, page.rect))
                elif item[0] == "re":  # Rectangle
                    fields.extend(self.rect_fields(item[1], page.rect))
        return fields

    def read_drawings(self, pdf_path: Path) -> list[PagePrediction]:
        doc = document_service.open_document(pdf_path)
        try:
            return [
                PagePrediction(page_index=page.number, fields=self.page_fields(page))
                for page in doc
            ]
        finally:
            doc.close()

    async def detect(self, context: DetectorContext) -> DetectionOutput:
        pages = await asyncio.to_thread(self.read_drawings, context.sample.pdf_path)
        return DetectionOutput(
            document_id=context.sample.document_id,
            pages=pages,
            summary={"detector": self.detector_id},
        )


class TextLayoutDetector(Detector):
    """
    Infer fields from the text layer.

    Runs of leader characters (``____``, ``....``) become text fields and
    checkbox glyphs such as ``[ ]`` or ``☐`` become checkboxes. Positions
    inside a span are interpolated from character offsets.
    """

    detector_id = "text"
    name = "Text layout heuristics (PyMuPDF)"
    description = "Uses the PDF text layer to guess fields from leader lines and checkbox glyphs."

    CHECKBOX_PATTERN = re.compile(r"\[[ xX]?\]|\( \)|[□☐▢○⚪]")
    LEADER_PATTERN = re.compile(r"[_.·•‧\-]{3,}")

    def span_fields(self, text: str, bbox: BBox, page_rect: fitz.Rect) -> list[FieldPrediction]:
        fields = []
        char_width = bbox.width / len(text) if text else 0

        for match in self.CHECKBOX_PATTERN.finditer(text):
            size = max(bbox.height, char_width * (match.end() - match.start()))
            fields.append(FieldPrediction(
                type=FieldType.CHECKBOX,
                rect=pdf_rect_to_normalized(
                    BBox(x=bbox.x + char_width * match.start(), y=bbox.bottom - size, width=size, height=size),
                    page_rect,
                ),
                confidence=0.55,
                attributes={"source": "text"},
            ))

        for match in self.LEADER_PATTERN.finditer(text):
            width = max(char_width * (match.end() - match.start()), 12)
            height = max(bbox.height * 0.6, 3)
            fields.append(FieldPrediction(
                type=FieldType.TEXT,
                rect=pdf_rect_to_normalized(
                    BBox(x=bbox.x + char_width * match.start(), y=bbox.bottom - height, width=width, height=height),
                    page_rect,
                ),
                confidence=0.35,
                attributes={"source": "text"},
            ))

        return fields

    def read_text(self, pdf_path: Path) -> list[PagePrediction]:
        doc = document_service.open_document(pdf_path)
        pages = []
        try:
            for page in doc:
                fields = []
                for text_box in document_service.extract_text_boxes(page):
                    fields.extend(self.span_fields(text_box.text, text_box.bbox, page.rect))
                pages.append(PagePrediction(page_index=page.number, fields=fields))
        finally:
            doc.close()
        return pages

    async def detect(self, context: DetectorContext) -> DetectionOutput:
        pages = await asyncio.to_thread(self.read_text, context.sample.pdf_path)
        return DetectionOutput(
            document_id=context.sample.document_id,
            pages=pages,
            summary={"detector": self.detector_id},
        )


def suppress_overlaps(fields: list[FieldPrediction], iou_threshold: float) -> list[FieldPrediction]:
    """
    Area-ordered non-maximum suppression.

    Larger fields are kept first; any later field whose IoU with a kept field
    reaches ``iou_threshold`` is dropped.
    """
    remaining = sorted(fields, key=lambda f: f.rect.width * f.rect.height, reverse=True)
    kept: list[FieldPrediction] = []
    for candidate in remaining:
        if all(rect_iou(candidate.rect, field.rect) < iou_threshold for field in kept):
            kept.append(candidate)
    return kept


class AnchorsDetector(Detector):
    """
    Suggest fields next to label anchors in the text layer.

    Spans are grouped into lines by baseline. On each line:

    - a whitelisted label ending in a colon (``Name:``) gets a text field, or
      a signature field for signature labels
    - a line mentioning "signature" without a colon gets a signature field to
      its right
    - long leader fragments (``______``) become text fields
    - up to two ``[``, ``☐`` or ``□`` glyphs get a checkbox to their left

    Overlapping suggestions on a page are thinned with ``suppress_overlaps``.
    Distances are in PDF points and a span's height stands in for its font size.
    """

    detector_id = "anchors"
    name = "Label anchors (PyMuPDF)"
    description = "Anchors on colon labels and leader lines to suggest nearby fields."

    LINE_Y_TOLERANCE = 3
    COLON_RIGHT_LIMIT = 0.9  # Page fraction
    PAD_X = 16
    RIGHT_MARGIN_RATIO = 0.95
    MIN_TEXT_WIDTH = 60
    MAX_TEXT_WIDTH = 252  # ~3.5in
    SIGNATURE_WIDTH = 200
    DATE_WIDTH = 80
    MIN_LEADER_WIDTH = 108  # 1.5in
    NEXT_TOKEN_PADDING = 6
    CHECKBOX_SIZE = 18
    CHECKBOXES_PER_LINE = 2
    NMS_IOU = 0.35

    LABEL_WHITELIST = {
        "name", "address", "city", "state", "zip", "email", "phone", "date",
        "signature", "dob", "ssn", "county", "case", "docket",
    }
    LABEL_EXCLUDE = {
        "court", "instructions", "page", "section", "plaintiff", "defendant",
        "commonwealth", "massachusetts",
    }
    CHECKBOX_GLYPHS = ("[", "☐", "□")
    LEADER_PATTERN = re.compile(r"[_.·•‧\-]{3,}")

    def group_lines(self, text_boxes: list[TextBox]) -> list[tuple[float, list[TextBox]]]:
        """Bucket spans by baseline; returns ``(baseline, spans)`` top to bottom."""
        lines: dict[int, tuple[float, list[TextBox]]] = {}
        for text_box in text_boxes:
            key = round(text_box.bbox.bottom / self.LINE_Y_TOLERANCE)
            lines.setdefault(key, (text_box.bbox.bottom, []))[1].append(text_box)

        result = []
        for baseline, spans in lines.values():
            result.append((baseline, sorted(spans, key=lambda s: s.bbox.x)))
        return sorted(result, key=lambda line: line[0])

    def colon_field(
        self,
        spans: list[TextBox],
        baseline: float,
        font_size: float,
        page_rect: fitz.Rect,
    ) -> FieldPrediction | None:
        """Field for a ``Label:`` line whose label is whitelisted."""
        colon_x = None
        colon_font = font_size
        for span in spans:
            index = span.text.find(":")
            if index != -1:
                colon_x = span.bbox.x + span.bbox.width / len(span.text) * (index + 1)
                colon_font = span.bbox.height
                break

        if colon_x is None or colon_x / page_rect.width > self.COLON_RIGHT_LIMIT:
            return None

        label = "".join(span.text for span in spans).split(":", 1)[0].lower()
        tokens = set(re.findall(r"[a-z0-9]+", label))
        if not tokens & self.LABEL_WHITELIST or tokens & self.LABEL_EXCLUDE:
            return None

        line_end = max(span.bbox.right for span in spans)
        anchor = max(colon_x + self.PAD_X, line_end + self.PAD_X * 0.25)
        if anchor >= page_rect.width:
            return None

        x = min(anchor, page_rect.width * self.RIGHT_MARGIN_RATIO)
        page_right = page_rect.width - self.PAD_X
        next_span = next((s for s in spans if s.bbox.x > colon_x + self.NEXT_TOKEN_PADDING), None)
        if next_span is not None:
            right_edge = min(next_span.bbox.x - self.NEXT_TOKEN_PADDING, page_right)
        else:
            right_edge = min(x + self.MAX_TEXT_WIDTH, page_right)
        right_edge = max(right_edge, x + self.MIN_TEXT_WIDTH)
        width = min(right_edge - x, self.MAX_TEXT_WIDTH)

        is_signature = "signature" in tokens
        if not is_signature and tokens & {"date", "dob"}:
            width = max(min(width, self.DATE_WIDTH), self.MIN_TEXT_WIDTH)

        # Fields are placed below the label line
        font = max(colon_font, font_size)
        height = font * 1.5 if is_signature else font * 4
        top = baseline + font * (4 if is_signature else 6)
        top = max(0.0, min(top, page_rect.height - height))

        return FieldPrediction(
            type=FieldType.SIGNATURE if is_signature else FieldType.TEXT,
            rect=pdf_rect_to_normalized(BBox(x=x, y=top, width=width, height=height), page_rect),
            confidence=0.6 if is_signature else 0.45,
            attributes={"source": "anchors", "anchor": "colon"},
        )

    def signature_field(
        self,
        spans: list[TextBox],
        baseline: float,
        font_size: float,
        page_rect: fitz.Rect,
    ) -> FieldPrediction | None:
        """Signature area to the right of a colon-less "signature" line."""
        x = max(span.bbox.right for span in spans) + self.PAD_X
        page_right = page_rect.width * self.RIGHT_MARGIN_RATIO
        width = min(max(self.SIGNATURE_WIDTH, page_rect.width * 0.35), page_right - x)
        if not self.MIN_TEXT_WIDTH <= width <= self.MAX_TEXT_WIDTH:
            return None

        height = font_size * 1.4
        top = max(0.0, baseline - height * 0.4)
        return FieldPrediction(
            type=FieldType.SIGNATURE,
            rect=pdf_rect_to_normalized(BBox(x=x, y=top, width=width, height=height), page_rect),
            confidence=0.45,
            attributes={"source": "anchors", "anchor": "signature"},
        )

    def leader_fields(self, spans: list[TextBox], page_rect: fitz.Rect) -> list[FieldPrediction]:
        fields = []
        for span in spans:
            if not self.LEADER_PATTERN.search(span.text):
                continue
            if span.bbox.width < self.MIN_LEADER_WIDTH:
                continue

            width = min(max(span.bbox.width, self.MIN_TEXT_WIDTH), self.MAX_TEXT_WIDTH)
            height = max(span.bbox.height * 0.6, 6)
            top = max(0.0, span.bbox.bottom - height * 0.6)
            fields.append(FieldPrediction(
                type=FieldType.TEXT,
                rect=pdf_rect_to_normalized(BBox(x=span.bbox.x, y=top, width=width, height=height), page_rect),
                confidence=0.35,
                attributes={"source": "anchors", "anchor": "leader"},
            ))
        return fields

    def checkbox_fields(self, spans: list[TextBox], page_rect: fitz.Rect) -> list[FieldPrediction]:
        fields = []
        for span in spans:
            indices = sorted(
                index
                for index in (span.text.find(glyph) for glyph in self.CHECKBOX_GLYPHS)
                if index >= 0
            )
            char_width = span.bbox.width / len(span.text)
            for index in indices:
                if len(fields) >= self.CHECKBOXES_PER_LINE:
                    return fields

                glyph_x = span.bbox.x + index * char_width
                bbox = BBox(
                    x=max(0.0, glyph_x - self.CHECKBOX_SIZE - 2),
                    y=max(0.0, span.bbox.bottom - self.CHECKBOX_SIZE * 0.6),
                    width=self.CHECKBOX_SIZE,
                    height=self.CHECKBOX_SIZE,
                )
                fields.append(FieldPrediction(
                    type=FieldType.CHECKBOX,
                    rect=pdf_rect_to_normalized(bbox, page_rect),
                    confidence=0.4,
                    attributes={"source": "anchors", "anchor": "glyph"},
                ))
        return fields

    def page_fields(self, page: fitz.Page) -> list[FieldPrediction]:
        fields = []
        for baseline, spans in self.group_lines(document_service.extract_text_boxes(page)):
            text = "".join(span.text for span in spans)
            font_size = max(10.0, max(span.bbox.height for span in spans))

            if ":" not in text and "signature" in text.lower():
                field = self.signature_field(spans, baseline, font_size, page.rect)
                if field is not None:
                    fields.append(field)

            fields.extend(self.leader_fields(spans, page.rect))
            fields.extend(self.checkbox_fields(spans, page.rect))

            if ":" in text:
                field = self.colon_field(spans, baseline, font_size, page.rect)
                if field is not None:
                    fields.append(field)

        return suppress_overlaps(fields, self.NMS_IOU)

    def read_anchors(self, pdf_path: Path) -> list[PagePrediction]:
        doc = document_service.open_document(pdf_path)
        try:
            return [
                PagePrediction(page_index=page.number, fields=self.page_fields(page))
                for page in doc
            ]
        finally:
            doc.close()

    async def detect(self, context: DetectorContext) -> DetectionOutput:
        pages = await asyncio.to_thread(self.read_anchors, context.sample.pdf_path)
        return DetectionOutput(
            document_id=context.sample.document_id,
            pages=pages,
            summary={"detector": self.detector_id},
        )


def register_builtin_detectors() -> None:
    register_detector("empty", EmptyDetector())
    register_detector(RasterHeuristicDetector.detector_id, RasterHeuristicDetector())
    register_detector(AcroFormDetector.detector_id, AcroFormDetector())
    register_detector(VectorDetector.detector_id, VectorDetector())
    register_detector(TextLayoutDetector.detector_id, TextLayoutDetector())
    register_detector(AnchorsDetector.detector_id, AnchorsDetector())


register_builtin_detectors()
