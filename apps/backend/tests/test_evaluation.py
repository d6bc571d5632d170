"""Evaluator metric tests."""

import pytest

from app.models import FieldType
from app.schemas import DetectionOutput, DocumentAnnotation
from app.services.evaluation import TypeMetrics, evaluate


def rect(x, y=0.1, width=0.2, height=0.05):
    return {"x": x, "y": y, "width": width, "height": height}


def annotations(*pages):
    return DocumentAnnotation.model_validate({
        "documentId": "doc",
        "pages": [{"pageIndex": i, "fields": fields} for i, fields in enumerate(pages)],
    })


def predictions(*pages, summary=None):
    return DetectionOutput.model_validate({
        "documentId": "doc",
        "pages": [{"pageIndex": i, "fields": fields} for i, fields in enumerate(pages)],
        "summary": summary,
    })


class TestTypeMetrics:
    """Per-type metric tests."""

    def test_from_counts(self):
        metrics = TypeMetrics.from_counts(tp=3, fp=1, fn=2)
        assert metrics.precision == 0.75
        assert metrics.recall == 0.6
        assert metrics.f1 == pytest.approx(2 * 0.75 * 0.6 / 1.35)

    def test_zero_denominators(self):
        metrics = TypeMetrics.from_counts(tp=0, fp=0, fn=0)
        assert (metrics.precision, metrics.recall, metrics.f1) == (0.0, 0.0, 0.0)


class TestEvaluate:
    """Document evaluation tests."""

    def test_half_right(self):
        truth = annotations([
            {"type": "text", "rect": rect(0.1)},
            {"type": "text", "rect": rect(0.5)},
        ])
        output = predictions([
            {"type": "text", "rect": rect(0.1)},
            {"type": "text", "rect": rect(0.1, y=0.8)},
        ])

        report = evaluate(truth, output, 0.5)
        text = report.per_type[FieldType.TEXT]

        assert (text.tp, text.fp, text.fn) == (1, 1, 1)
        assert text.precision == 0.5
        assert text.recall == 0.5
        assert text.f1 == 0.5
        assert report.micro.f1 == 0.5
        assert report.macro.f1 == 0.5

    def test_self_evaluation_is_perfect(self):
        fields = [
            {"type": "text", "rect": rect(0.1)},
            {"type": "checkbox", "rect": rect(0.5, width=0.02, height=0.02)},
        ]
        report = evaluate(annotations(fields, fields), predictions(fields, fields))

        assert report.micro.precision == 1.0
        assert report.micro.recall == 1.0
        assert report.micro.f1 == 1.0
        assert report.macro.f1 == 1.0
        assert report.micro.support == 4
        assert report.micro.predicted == 4
        assert report.false_positives == []
        assert report.false_negatives == []

    def test_empty_predictions(self):
        truth = annotations([{"type": "signature", "rect": rect(0.1)}])
        report = evaluate(truth, predictions())

        assert report.micro.recall == 0.0
        assert report.micro.precision == 0.0
        assert report.micro.f1 == 0.0
        assert report.micro.support == 1
        assert len(report.false_negatives) == 1

    def test_missing_annotations_count_every_prediction_as_false_positive(self):
        output = predictions([
            {"type": "text", "rect": rect(0.1)},
            {"type": "radio", "rect": rect(0.5)},
        ])
        report = evaluate(None, output)

        assert report.micro.fp == 2
        assert report.micro.tp == 0
        assert report.micro.precision == 0.0
        assert report.micro.support == 0
        assert report.micro.predicted == 2

    def test_nothing_to_score(self):
        report = evaluate(annotations(), predictions())

        assert report.per_type == {}
        assert report.micro.f1 == 0.0
        assert report.macro.f1 == 0.0

    def test_macro_averages_types(self):
        truth = annotations([{"type": "text", "rect": rect(0.1)}])
        output = predictions([
            {"type": "text", "rect": rect(0.1)},
            {"type": "checkbox", "rect": rect(0.5)},
        ])
        report = evaluate(truth, output)

        assert list(report.per_type) == [FieldType.TEXT, FieldType.CHECKBOX]
        assert report.macro.precision == 0.5
        assert report.macro.recall == 0.5
        assert report.macro.f1 == 0.5
        assert report.micro.precision == 0.5
        assert report.micro.recall == 1.0
        assert report.micro.f1 == pytest.approx(2 / 3)

    def test_types_are_matched_separately(self):
        truth = annotations([{"type": "text", "rect": rect(0.1)}])
        output = predictions([{"type": "multiline", "rect": rect(0.1)}])
        report = evaluate(truth, output)

        assert report.per_type[FieldType.TEXT].fn == 1
        assert report.per_type[FieldType.MULTILINE].fp == 1
        assert report.matches == []

    def test_pages_are_matched_separately(self):
        truth = annotations([{"type": "text", "rect": rect(0.1)}], [])
        output = predictions([], [{"type": "text", "rect": rect(0.1)}])
        report = evaluate(truth, output)

        assert report.micro.tp == 0
        assert report.micro.fn == 1
        assert report.micro.fp == 1

    def test_threshold(self):
        truth = annotations([{"type": "text", "rect": rect(0.1)}])
        # Shifted by a quarter width: IoU 0.15 / 0.25 = 0.6
        output = predictions([{"type": "text", "rect": rect(0.15)}])

        assert evaluate(truth, output, 0.5).micro.tp == 1
        assert evaluate(truth, output, 0.7).micro.tp == 0

    def test_report_serialization(self):
        truth = annotations([{"id": "f1", "type": "text", "rect": rect(0.1)}])
        output = predictions(
            [{"type": "text", "rect": rect(0.1), "confidence": 0.9}],
            summary={"detector": "test"},
        )
        data = evaluate(truth, output, 0.5).to_dict()

        assert data["documentId"] == "doc"
        assert data["threshold"] == 0.5
        assert set(data["perType"]) == {"text"}
        assert data["micro"]["support"] == 1
        assert data["matches"][0]["truth"]["field"]["id"] == "f1"
        assert data["matches"][0]["prediction"]["field"]["confidence"] == 0.9
        assert data["falsePositives"] == []
        assert data["summary"] == {"detector": "test"}

    def test_report_without_summary(self):
        data = evaluate(annotations(), predictions()).to_dict()
        assert "summary" not in data
