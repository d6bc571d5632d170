"""Greedy IoU matching of predicted fields against ground truth."""

from dataclasses import dataclass, field
from typing import Any

from app.models import FieldType
from app.schemas import FieldAnnotation, NormalizedRect
from app.services.detection.geometry import BBox, iou


@dataclass(frozen=True)
class Instance:
    """A field together with the page it sits on."""
    page_index: int
    field: FieldAnnotation

    def to_dict(self) -> dict[str, Any]:
        return {
            "pageIndex": self.page_index,
            "field": self.field.model_dump(mode="json", by_alias=True, exclude_none=True),
        }


@dataclass(frozen=True)
class MatchRecord:
    """An accepted truth/prediction pair."""
    type: FieldType
    page_index: int
    truth: Instance
    prediction: Instance
    iou: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "pageIndex": self.page_index,
            "truth": self.truth.to_dict(),
            "prediction": self.prediction.to_dict(),
            "iou": self.iou,
        }


@dataclass
class MatchRun:
    """Outcome of matching one field type."""
    matches: list[MatchRecord] = field(default_factory=list)
    false_positives: list[Instance] = field(default_factory=list)
    false_negatives: list[Instance] = field(default_factory=list)


def rect_to_bbox(rect: NormalizedRect) -> BBox:
    return BBox(x=rect.x, y=rect.y, width=rect.width, height=rect.height)


def rect_iou(a: NormalizedRect, b: NormalizedRect) -> float:
    """IoU of two normalized rectangles."""
    return iou(rect_to_bbox(a), rect_to_bbox(b))


def greedy_match(
    field_type: FieldType,
    truths: list[Instance],
    predictions: list[Instance],
    iou_threshold: float,
) -> MatchRun:
    """
    Pair truths with predictions of one type, highest IoU first.

    Only pairs on the same page with IoU >= ``iou_threshold`` are candidates.
    Candidates are stably sorted by IoU (ties keep enumeration order) and
    accepted while both sides are still unclaimed. This is not an optimal
    bipartite assignment.

    Args:
        field_type: Type recorded on every match
        truths: Ground-truth instances of that type
        predictions: Predicted instances of that type
        iou_threshold: Minimum IoU for a pair to count

    Returns:
        MatchRun with matches and the unclaimed instances on each side
    """
    candidates = []
    for truth_index, truth in enumerate(truths):
        for prediction_index, prediction in enumerate(predictions):
            if truth.page_index != prediction.page_index:
                continue

            overlap = rect_iou(truth.field.rect, prediction.field.rect)
            if overlap >= iou_threshold:
                candidates.append((truth_index, prediction_index, overlap))

    # sorted() is stable
    candidates = sorted(candidates, key=lambda c: c[2], reverse=True)

    matched_truths: set[int] = set()
    matched_predictions: set[int] = set()
    run = MatchRun()

    for truth_index, prediction_index, overlap in candidates:
        if truth_index in matched_truths or prediction_index in matched_predictions:
            continue

        truth = truths[truth_index]
        run.matches.append(MatchRecord(
            type=field_type,
            page_index=truth.page_index,
            truth=truth,
            prediction=predictions[prediction_index],
            iou=overlap,
        ))
        matched_truths.add(truth_index)
        matched_predictions.add(prediction_index)

    run.false_negatives = [t for i, t in enumerate(truths) if i not in matched_truths]
    run.false_positives = [p for i, p in enumerate(predictions) if i not in matched_predictions]

    return run
