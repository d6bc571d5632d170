"""Dataset loader tests."""

import json
from pathlib import Path

from app.services.evaluation.dataset import (
    discover_annotation_path,
    load_annotations,
    load_dataset,
)


class TestLoadDataset:
    """Dataset directory tests."""

    def test_samples_sorted_by_name(self, dataset_dir: Path):
        samples = load_dataset(dataset_dir)
        assert [s.document_id for s in samples] == ["a_broken", "b_form", "c_unlabeled"]

    def test_valid_annotations(self, dataset_dir: Path):
        sample = {s.document_id: s for s in load_dataset(dataset_dir)}["b_form"]

        assert sample.annotation_path == dataset_dir / "b_form.groundtruth.json"
        assert sample.annotations is not None
        assert sample.annotations.document_id == "b_form"
        assert len(sample.annotations.pages[0].fields) == 1

    def test_unreadable_annotations(self, dataset_dir: Path):
        sample = {s.document_id: s for s in load_dataset(dataset_dir)}["a_broken"]

        assert sample.annotation_path == dataset_dir / "a_broken.json"
        assert sample.annotations is None

    def test_unlabeled_sample(self, dataset_dir: Path):
        sample = {s.document_id: s for s in load_dataset(dataset_dir)}["c_unlabeled"]
        assert sample.annotation_path is None
        assert sample.annotations is None

    def test_missing_directory(self, tmp_path: Path):
        assert load_dataset(tmp_path / "missing") == []


class TestAnnotations:
    """Annotation file tests."""

    def test_extension_priority(self, tmp_path: Path):
        pdf = tmp_path / "doc.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        (tmp_path / "doc.json").write_text("{}")
        (tmp_path / "doc.annotations.json").write_text("{}")

        found = discover_annotation_path(pdf, [".groundtruth.json", ".annotations.json", ".json"])
        assert found == tmp_path / "doc.annotations.json"

    def test_document_id_defaults_to_stem(self, tmp_path: Path):
        path = tmp_path / "doc.json"
        path.write_text(json.dumps({"pages": [{"pageIndex": 0, "fields": []}]}))

        annotations = load_annotations("doc", path)
        assert annotations.document_id == "doc"
        assert annotations.pages[0].page_index == 0

    def test_pages_must_be_a_list(self, tmp_path: Path):
        path = tmp_path / "doc.json"
        path.write_text(json.dumps({"documentId": "other", "pages": {"0": []}}))

        annotations = load_annotations("doc", path)
        assert annotations.document_id == "other"
        assert annotations.pages == []

    def test_non_object_is_rejected(self, tmp_path: Path):
        path = tmp_path / "doc.json"
        path.write_text("[1, 2, 3]")
        assert load_annotations("doc", path) is None

    def test_invalid_field_is_rejected(self, tmp_path: Path):
        path = tmp_path / "doc.json"
        path.write_text(json.dumps({
            "pages": [{"pageIndex": 0, "fields": [{"type": "stamp", "rect": {"x": 0, "y": 0, "width": 1, "height": 1}}]}],
        }))
        assert load_annotations("doc", path) is None

    def test_malformed_geometry_is_dropped(self, tmp_path: Path):
        path = tmp_path / "doc.json"
        path.write_text(json.dumps({
            "pages": [{
                "pageIndex": 0,
                "fields": [
                    {"type": "text", "rect": {"x": 0.1, "y": 0.1, "width": 0.3, "height": 0.05}},
                    {"type": "text", "rect": {"x": 0.1, "y": 0.3, "width": -0.3, "height": 0.05}},
                    {"type": "checkbox", "rect": {"x": 0.5, "y": 0.5, "width": "wide", "height": 0.02}},
                    {"type": "checkbox"},
                ],
            }],
        }))

        annotations = load_annotations("doc", path)
        assert annotations is not None
        fields = annotations.pages[0].fields
        assert len(fields) == 1
        assert fields[0].rect.width == 0.3
