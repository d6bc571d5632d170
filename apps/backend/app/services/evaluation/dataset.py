"""Loader for PDF + ground-truth annotation datasets."""

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path

from pydantic import ValidationError

from app.core.config import get_settings
from app.schemas import DocumentAnnotation

logger = logging.getLogger(__name__)


@dataclass
class DatasetSample:
    """A PDF in the dataset and its ground truth, if any."""
    document_id: str
    pdf_path: Path
    annotation_path: Path | None = None
    annotations: DocumentAnnotation | None = None


def discover_annotation_path(pdf_path: Path, extensions: list[str]) -> Path | None:
    """First ``<stem><extension>`` file next to the PDF, in extension order."""
    for extension in extensions:
        candidate = pdf_path.with_name(f"{pdf_path.stem}{extension}")
        if candidate.is_file():
            return candidate
    return None


def has_valid_rect(field: object) -> bool:
    """True when a raw field has a finite rect with non-negative size."""
    rect = field.get("rect") if isinstance(field, dict) else None
    if not isinstance(rect, dict):
        return False
    try:
        x, y, width, height = (float(rect[key]) for key in ("x", "y", "width", "height"))
    except (KeyError, TypeError, ValueError):
        return False
    return all(math.isfinite(v) for v in (x, y, width, height)) and width >= 0 and height >= 0


def drop_malformed_fields(document_id: str, pages: list) -> list:
    """Remove fields with unusable geometry; the rest of the page is kept."""
    cleaned = []
    for page in pages:
        fields = page.get("fields") if isinstance(page, dict) else None
        if not isinstance(fields, list):
            cleaned.append(page)
            continue

        kept = [f for f in fields if has_valid_rect(f)]
        if len(kept) != len(fields):
            logger.debug(
                "Dropped %d fields with malformed geometry from %s page %s",
                len(fields) - len(kept),
                document_id,
                page.get("pageIndex"),
            )
        cleaned.append({**page, "fields": kept})
    return cleaned


def parse_annotations(document_id: str, annotation_path: Path, data: object) -> DocumentAnnotation:
    """
    Validate raw annotation JSON.

    ``documentId`` defaults to the PDF stem and a missing or non-list
    ``pages`` becomes an empty list. Fields with malformed geometry are
    dropped rather than failing the whole file.

    Raises:
        ValueError: The content is not an object or fails validation
    """
    if not isinstance(data, dict):
        raise ValueError(f"Annotation file {annotation_path} must contain an object")

    pages = data.get("pages")
    return DocumentAnnotation.model_validate({
        "documentId": data.get("documentId") or document_id,
        "pages": drop_malformed_fields(document_id, pages) if isinstance(pages, list) else [],
        "sourcePath": data.get("sourcePath"),
        "metadata": data.get("metadata"),
    })


def load_annotations(document_id: str, annotation_path: Path) -> DocumentAnnotation | None:
    """Read one annotation file; log and return None when it is unusable."""
    try:
        raw = annotation_path.read_text(encoding="utf-8")
        return parse_annotations(document_id, annotation_path, json.loads(raw))
    except (OSError, ValueError, ValidationError) as e:
        logger.warning("Failed to read annotations for %s: %s", document_id, e)
        return None


def load_dataset(
    test_dir: Path | None = None,
    annotation_extensions: list[str] | None = None,
) -> list[DatasetSample]:
    """
    List the PDFs of a dataset directory with their ground truth.

    Args:
        test_dir: Dataset root (defaults to ``settings.dataset_path``)
        annotation_extensions: Candidate annotation suffixes, tried in order

    Returns:
        Samples sorted by file name; an empty list when the directory is missing
    """
    settings = get_settings()
    test_dir = Path(test_dir) if test_dir is not None else settings.dataset_path
    extensions = annotation_extensions or settings.annotation_extensions

    if not test_dir.is_dir():
        logger.warning("Dataset directory not found: %s", test_dir)
        return []

    samples = []
    for pdf_path in sorted(test_dir.iterdir(), key=lambda p: p.name):
        if not pdf_path.is_file() or pdf_path.suffix.lower() != ".pdf":
            continue

        document_id = pdf_path.stem
        sample = DatasetSample(document_id=document_id, pdf_path=pdf_path)

        annotation_path = discover_annotation_path(pdf_path, extensions)
        if annotation_path is not None:
            sample.annotation_path = annotation_path
            sample.annotations = load_annotations(document_id, annotation_path)

        samples.append(sample)

    return samples
