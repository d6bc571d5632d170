"""Document rasterization service for PDF pages and uploaded images."""

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path

import cv2
import fitz  # PyMuPDF
import numpy as np
from PIL import Image

from app.services.detection.elements import TextBox
from app.services.detection.geometry import BBox

logger = logging.getLogger(__name__)


@dataclass
class PageRaster:
    """One rendered page: RGB pixels plus its text layer in pixel space."""
    page_index: int
    pixels: np.ndarray  # H x W x 3, uint8
    width: int
    height: int
    text_boxes: list[TextBox] = field(default_factory=list)
    scale: float = 1.0

    @property
    def pdf_width(self) -> float:
        return self.width / self.scale

    @property
    def pdf_height(self) -> float:
        return self.height / self.scale


class DocumentRasterService:
    """Service for turning documents into pixel buffers for detection."""

    def open_document(self, pdf_path: Path) -> fitz.Document:
        """
        Open a PDF file.

        Raises:
            FileNotFoundError: The file does not exist
            ValueError: The file is not a readable PDF
        """
        pdf_path = Path(pdf_path)
        if not pdf_path.is_file():
            raise FileNotFoundError(f"PDF not found: {pdf_path}")

        try:
            return fitz.open(pdf_path)
        except RuntimeError as e:
            raise ValueError(f"Cannot open PDF {pdf_path}: {e}") from e

    def page_count(self, pdf_path: Path) -> int:
        doc = self.open_document(pdf_path)
        try:
            return len(doc)
        finally:
            doc.close()

    def render_page(self, page: fitz.Page, scale: float) -> PageRaster:
        """Render a page to RGB pixels at ``scale`` (1.0 = 72 DPI)."""
        mat = fitz.Matrix(scale, scale)
        pix = page.get_pixmap(matrix=mat, alpha=False)

        img = Image.frombytes("RGB", [pix.width, pix.height], pix.samples)
        pixels = np.asarray(img, dtype=np.uint8)

        return PageRaster(
            page_index=page.number,
            pixels=pixels,
            width=pix.width,
            height=pix.height,
            text_boxes=self.extract_text_boxes(page, scale),
            scale=scale,
        )

    def render_pages(self, pdf_path: Path, scale: float) -> Iterator[PageRaster]:
        """Yield every page of a PDF rendered at ``scale``."""
        doc = self.open_document(pdf_path)
        try:
            for page in doc:
                yield self.render_page(page, scale)
        finally:
            doc.close()

    def render_page_at(self, pdf_path: Path, page_index: int, scale: float) -> PageRaster:
        """Open a PDF and render a single page."""
        doc = self.open_document(pdf_path)
        try:
            if page_index < 0 or page_index >= len(doc):
                raise ValueError(f"Page {page_index} out of range for {pdf_path}")
            return self.render_page(doc[page_index], scale)
        finally:
            doc.close()

    def extract_text_boxes(self, page: fitz.Page, scale: float = 1.0) -> list[TextBox]:
        """
        Extract span-level text boxes scaled into pixel space.

        Whitespace-only spans are skipped.
        """
        blocks = page.get_text("dict", flags=fitz.TEXT_PRESERVE_WHITESPACE)
        text_boxes = []

        for block in blocks.get("blocks", []):
            if block.get("type") != 0:  # Text block
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    span_text = span.get("text", "")
                    span_bbox = span.get("bbox", [])
                    if not span_text.strip() or len(span_bbox) < 4:
                        continue

                    text_boxes.append(TextBox(
                        text=span_text,
                        bbox=BBox(
                            x=span_bbox[0] * scale,
                            y=span_bbox[1] * scale,
                            width=(span_bbox[2] - span_bbox[0]) * scale,
                            height=(span_bbox[3] - span_bbox[1]) * scale,
                        ),
                    ))

        return text_boxes

    def load_image(self, data: bytes) -> np.ndarray:
        """
        Decode an uploaded image into an H x W x 3 RGB array.

        Raises:
            ValueError: The bytes are not a decodable image
        """
        if not data:
            raise ValueError("Empty image upload")

        buffer = np.frombuffer(data, dtype=np.uint8)
        image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
        if image is None:
            raise ValueError("Unsupported or corrupt image data")

        return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


# Singleton instance
document_service = DocumentRasterService()
