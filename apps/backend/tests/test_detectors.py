"""Benchmark detector, registry and runner tests."""

import json
import time
from pathlib import Path

import fitz
import pytest

from app.core.config import get_settings
from app.models import ElementType, FieldType
from app.schemas import DetectionOutput, FieldPrediction, NormalizedRect
from app.services.detection import BBox, DetectedElement
from app.services.evaluation import (
    DatasetSample,
    Detector,
    DetectorContext,
    element_to_prediction,
    get_detector,
    list_detectors,
    load_dataset,
    register_detector,
    require_detector,
    run_benchmark,
    run_dataset,
    select_samples,
)
from app.services.evaluation.detectors import (
    AcroFormDetector,
    AnchorsDetector,
    EmptyDetector,
    RasterHeuristicDetector,
    TextLayoutDetector,
    VectorDetector,
    suppress_overlaps,
)
from app.services.evaluation.registry import unregister_detector
from app.services.evaluation.runner import report_path

pytestmark = pytest.mark.asyncio


def context_for(pdf_path: Path, annotations=None, **options) -> DetectorContext:
    sample = DatasetSample(document_id=pdf_path.stem, pdf_path=pdf_path, annotations=annotations)
    return DetectorContext(sample=sample, dataset_root=pdf_path.parent, options=options)


class FailingDetector(Detector):
    name = "Failing"
    description = "Always raises."

    async def detect(self, context: DetectorContext) -> DetectionOutput:
        raise RuntimeError("boom")


@pytest.fixture
def failing_detector():
    register_detector("test:failing", FailingDetector())
    yield "test:failing"
    unregister_detector("test:failing")


class TestRegistry:
    """Detector registry tests."""

    async def test_builtin_detectors(self):
        ids = [d["id"] for d in list_detectors()]
        for detector_id in ["empty", "heuristic:raster", "acroform", "vector", "text", "anchors"]:
            assert detector_id in ids

    async def test_listing_has_names(self):
        for detector in list_detectors():
            assert detector["name"]
            assert detector["description"]

    async def test_duplicate_registration(self):
        with pytest.raises(ValueError):
            register_detector("empty", EmptyDetector())

    async def test_unknown_detector(self):
        assert get_detector("nope") is None
        with pytest.raises(KeyError):
            require_detector("nope")


class TestElementMapping:
    """Raster element to prediction mapping tests."""

    async def test_maps_fillable_types(self):
        element = DetectedElement(type=ElementType.CHECKBOX, bbox=BBox(30, 60, 30, 30), confidence=0.8)
        prediction = element_to_prediction(element, 300, 600)

        assert prediction.type == FieldType.CHECKBOX
        assert prediction.rect.x == 0.1
        assert prediction.rect.y == 0.1
        assert prediction.rect.width == 0.1
        assert prediction.rect.height == 0.05
        assert prediction.confidence == 0.8
        assert prediction.attributes == {"detectorSourceType": "checkbox"}

    async def test_layout_elements_are_dropped(self):
        element = DetectedElement(type=ElementType.LINE, bbox=BBox(0, 0, 100, 2), confidence=0.5)
        assert element_to_prediction(element, 300, 600) is None


class TestBuiltinDetectors:
    """Built-in detector tests."""

    async def test_empty_detector(self, dataset_dir: Path):
        sample = {s.document_id: s for s in load_dataset(dataset_dir)}["b_form"]
        output = await EmptyDetector().detect(DetectorContext(sample=sample, dataset_root=dataset_dir))

        assert output.document_id == "b_form"
        assert [p.page_index for p in output.pages] == [0]
        assert output.pages[0].fields == []

    async def test_raster_detector(self, make_pdf):
        def underline(c):
            c.setLineWidth(0.6)
            c.line(60, 100, 240, 100)

        pdf_path = make_pdf("underline.pdf", underline)
        output = await RasterHeuristicDetector().detect(context_for(pdf_path))

        assert output.summary["detector"] == "heuristic:raster"
        assert output.summary["scale"] == 3.0
        assert output.summary["failedPages"] == []
        assert len(output.pages) == 1

        text_fields = [f for f in output.pages[0].fields if f.type == FieldType.TEXT]
        assert text_fields
        for field in text_fields:
            assert field.attributes["detectorSourceType"] == "text"
            assert 0 <= field.rect.x <= 1
            assert 0 <= field.rect.y <= 1

    async def test_raster_detector_scale_option(self, make_pdf):
        pdf_path = make_pdf("blank.pdf")
        output = await RasterHeuristicDetector().detect(context_for(pdf_path, scale=1.5))

        assert output.summary["scale"] == 1.5
        assert output.pages[0].fields == []

    async def test_failed_page_is_skipped(self, make_pdf, monkeypatch):
        pdf_path = make_pdf("two_pages.pdf", lambda c: None, lambda c: None)
        detector = RasterHeuristicDetector()

        def detect_page(pdf_path, page_index, scale, raster_detector):
            if page_index == 0:
                raise ValueError("corrupt page")
            return []

        monkeypatch.setattr(detector, "detect_page", detect_page)
        output = await detector.detect(context_for(pdf_path))

        assert [p.page_index for p in output.pages] == [1]
        assert output.summary["failedPages"] == [{"pageIndex": 0, "error": "corrupt page"}]

    async def test_page_timeout(self, make_pdf, monkeypatch):
        pdf_path = make_pdf("slow.pdf")
        detector = RasterHeuristicDetector(page_timeout=0.05)

        def detect_page(pdf_path, page_index, scale, raster_detector):
            time.sleep(0.5)
            return []

        monkeypatch.setattr(detector, "detect_page", detect_page)
        output = await detector.detect(context_for(pdf_path))

        assert output.pages == []
        assert output.summary["failedPages"] == [{"pageIndex": 0, "error": "timeout"}]

    async def test_acroform_detector(self, tmp_path: Path):
        pdf_path = tmp_path / "widgets.pdf"
        doc = fitz.open()
        page = doc.new_page(width=300, height=200)

        text = fitz.Widget()
        text.field_type = fitz.PDF_WIDGET_TYPE_TEXT
        text.field_name = "name"
        text.rect = fitz.Rect(30, 40, 180, 60)
        page.add_widget(text)

        checkbox = fitz.Widget()
        checkbox.field_type = fitz.PDF_WIDGET_TYPE_CHECKBOX
        checkbox.field_name = "agree"
        checkbox.rect = fitz.Rect(30, 100, 42, 112)
        page.add_widget(checkbox)

        doc.save(pdf_path)
        doc.close()

        output = await AcroFormDetector().detect(context_for(pdf_path))
        fields = {f.attributes["name"]: f for f in output.pages[0].fields}

        assert output.summary["fields"] == 2
        assert fields["name"].type == FieldType.TEXT
        assert fields["name"].rect.x == pytest.approx(0.1)
        assert fields["name"].rect.y == pytest.approx(0.2)
        assert fields["agree"].type == FieldType.CHECKBOX

    async def test_vector_detector(self, make_pdf):
        def shapes(c):
            c.setLineWidth(1)
            c.line(60, 100, 210, 100)

        pdf_path = make_pdf("vector.pdf", shapes)
        output = await VectorDetector().detect(context_for(pdf_path))
        fields = output.pages[0].fields

        assert len(fields) == 1
        assert fields[0].type == FieldType.TEXT
        assert fields[0].rect.x == pytest.approx(0.2)
        # Field sits on top of the stroke at y = 100pt
        assert fields[0].rect.y + fields[0].rect.height == pytest.approx(0.5)

    async def test_vector_detector_long_line_is_signature(self, make_pdf):
        def shapes(c):
            c.setLineWidth(1)
            c.line(20, 50, 280, 50)

        pdf_path = make_pdf("signature.pdf", shapes)
        output = await VectorDetector().detect(context_for(pdf_path))

        assert [f.type for f in output.pages[0].fields] == [FieldType.SIGNATURE]

    async def test_text_layout_detector(self, make_pdf):
        def text(c):
            c.setFont("Helvetica", 10)
            c.drawString(30, 150, "Name: ____________")
            c.drawString(30, 100, "[ ] I agree")

        pdf_path = make_pdf("text.pdf", text)
        output = await TextLayoutDetector().detect(context_for(pdf_path))
        types = sorted(f.type.value for f in output.pages[0].fields)

        assert types == ["checkbox", "text"]

    async def test_anchors_detector(self, make_pdf):
        def labels(c):
            c.setFont("Helvetica", 12)
            c.drawString(30, 370, "Name:")
            c.drawString(30, 200, "[ ] I agree")
            c.drawString(30, 80, "Signature")

        pdf_path = make_pdf("labels.pdf", labels, pagesize=(300, 400))
        output = await AnchorsDetector().detect(context_for(pdf_path))
        fields = {f.type: f for f in output.pages[0].fields}

        assert output.summary == {"detector": "anchors"}
        assert sorted(t.value for t in fields) == ["checkbox", "signature", "text"]

        # Text field starts right of the colon, below the label line
        assert fields[FieldType.TEXT].rect.x > 0.2
        assert fields[FieldType.TEXT].rect.y > 30 / 400
        # Signature area sits to the right of the word, on its line
        signature = fields[FieldType.SIGNATURE].rect
        assert signature.x > 0.25
        assert signature.y == pytest.approx(0.79, abs=0.03)
        # Checkbox is placed left of the bracket
        assert fields[FieldType.CHECKBOX].rect.x < 30 / 300

    async def test_anchors_ignores_excluded_labels(self, make_pdf):
        def labels(c):
            c.setFont("Helvetica", 12)
            c.drawString(30, 150, "Court name:")
            c.drawString(30, 100, "Instructions:")
            c.drawString(30, 50, "Comments:")

        pdf_path = make_pdf("excluded.pdf", labels)
        output = await AnchorsDetector().detect(context_for(pdf_path))

        assert output.pages[0].fields == []

    async def test_suppress_overlaps_keeps_larger_field(self):
        def prediction(x, y, width, height):
            return FieldPrediction(
                type=FieldType.TEXT,
                rect=NormalizedRect(x=x, y=y, width=width, height=height),
            )

        small = prediction(0.1, 0.1, 0.2, 0.05)
        large = prediction(0.1, 0.1, 0.3, 0.05)
        apart = prediction(0.5, 0.5, 0.1, 0.05)

        kept = suppress_overlaps([small, large, apart], 0.35)
        assert kept == [large, apart]


class TestRunner:
    """Benchmark runner tests."""

    async def test_select_samples(self, dataset_dir: Path):
        samples = load_dataset(dataset_dir)

        assert [s.document_id for s in select_samples(samples, ["B_FORM"])] == ["b_form"]
        assert len(select_samples(samples, limit=2)) == 2
        assert select_samples(samples, limit=0) == []

    async def test_report_path(self, tmp_path: Path):
        path = report_path(tmp_path, "doc", "heuristic:raster")
        assert path == tmp_path / "doc.heuristic_raster.json"

    async def test_run_benchmark_skips_unlabeled(self, dataset_dir: Path, tmp_path: Path):
        out_dir = tmp_path / "reports"
        reports = await run_benchmark("empty", load_dataset(dataset_dir), out_dir=out_dir)

        assert [r.document_id for r in reports] == ["b_form"]
        assert reports[0].micro.recall == 0.0
        assert reports[0].micro.support == 1

        written = json.loads((out_dir / "b_form.empty.json").read_text())
        assert written["documentId"] == "b_form"
        assert written["summary"] == {"note": "No detections produced."}

    async def test_run_benchmark_continues_after_failure(self, dataset_dir: Path, failing_detector):
        reports = await run_benchmark(failing_detector, load_dataset(dataset_dir))
        assert reports == []

    async def test_run_benchmark_unknown_detector(self, dataset_dir: Path):
        with pytest.raises(KeyError):
            await run_benchmark("nope", load_dataset(dataset_dir))

    async def test_run_dataset(self, dataset_dir: Path):
        reports = await run_dataset("heuristic:raster", test_dir=dataset_dir, sample_ids=["b_form"])

        assert len(reports) == 1
        report = reports[0]
        assert report.document_id == "b_form"
        assert report.summary["detector"] == "heuristic:raster"
        assert report.micro.support == 1

    async def test_threshold_defaults_to_settings(self, dataset_dir: Path, monkeypatch):
        monkeypatch.setattr(get_settings(), "evaluation_iou_threshold", 0.3)

        reports = await run_benchmark("empty", load_dataset(dataset_dir))
        assert reports[0].threshold == 0.3

        reports = await run_benchmark("empty", load_dataset(dataset_dir), threshold=0.8)
        assert reports[0].threshold == 0.8
