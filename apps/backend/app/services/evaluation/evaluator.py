"""
Scoring of detector output against ground truth.

Every field type present in either the truth or the prediction document is
matched independently with ``greedy_match`` and summarized as per-type,
micro-averaged and macro-averaged precision/recall/F1.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any

from app.models import FieldType
from app.schemas import DetectionOutput, DocumentAnnotation
from app.services.evaluation.matcher import Instance, MatchRecord, greedy_match

logger = logging.getLogger(__name__)

DEFAULT_IOU_THRESHOLD = 0.5


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def _ratio(numerator: float, denominator: float) -> float:
    return 0.0 if denominator == 0 else numerator / denominator


@dataclass(frozen=True)
class TypeMetrics:
    """Counts and scores for one field type."""
    tp: int
    fp: int
    fn: int
    precision: float
    recall: float
    f1: float

    @classmethod
    def from_counts(cls, tp: int, fp: int, fn: int) -> "TypeMetrics":
        precision = _ratio(tp, tp + fp)
        recall = _ratio(tp, tp + fn)
        f1 = _ratio(2 * precision * recall, precision + recall)
        return cls(
            tp=tp,
            fp=fp,
            fn=fn,
            precision=_finite(precision),
            recall=_finite(recall),
            f1=_finite(f1),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "tp": self.tp,
            "fp": self.fp,
            "fn": self.fn,
            "precision": self.precision,
            "recall": self.recall,
            "f1": self.f1,
        }


@dataclass(frozen=True)
class AggregateMetrics:
    """Metrics summed or averaged over all active types."""
    tp: int
    fp: int
    fn: int
    precision: float
    recall: float
    f1: float
    support: int
    predicted: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "tp": self.tp,
            "fp": self.fp,
            "fn": self.fn,
            "precision": self.precision,
            "recall": self.recall,
            "f1": self.f1,
            "support": self.support,
            "predicted": self.predicted,
        }


@dataclass
class EvaluationReport:
    """Result of evaluating one document."""
    document_id: str
    threshold: float
    per_type: dict[FieldType, TypeMetrics]
    micro: AggregateMetrics
    macro: AggregateMetrics
    matches: list[MatchRecord] = field(default_factory=list)
    false_positives: list[Instance] = field(default_factory=list)
    false_negatives: list[Instance] = field(default_factory=list)
    summary: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready camelCase representation."""
        data = {
            "documentId": self.document_id,
            "threshold": self.threshold,
            "perType": {t.value: m.to_dict() for t, m in self.per_type.items()},
            "micro": self.micro.to_dict(),
            "macro": self.macro.to_dict(),
            "matches": [m.to_dict() for m in self.matches],
            "falsePositives": [i.to_dict() for i in self.false_positives],
            "falseNegatives": [i.to_dict() for i in self.false_negatives],
        }
        if self.summary is not None:
            data["summary"] = self.summary
        return data


def flatten_truth(annotations: DocumentAnnotation | None) -> list[Instance]:
    if annotations is None:
        return []
    return [
        Instance(page_index=page.page_index, field=f)
        for page in annotations.pages
        for f in page.fields
    ]


def flatten_predictions(output: DetectionOutput) -> list[Instance]:
    return [
        Instance(page_index=page.page_index, field=f)
        for page in output.pages
        for f in page.fields
    ]


def active_types(truths: list[Instance], predictions: list[Instance]) -> list[FieldType]:
    """Field types present on either side, in first-seen order."""
    seen: dict[FieldType, None] = {}
    for instance in truths + predictions:
        seen.setdefault(instance.field.type, None)
    return list(seen)


def evaluate(
    annotations: DocumentAnnotation | None,
    predictions: DetectionOutput,
    iou_threshold: float = DEFAULT_IOU_THRESHOLD,
) -> EvaluationReport:
    """
    Evaluate a detector's output for one document.

    Args:
        annotations: Ground truth, or None when the document is unlabeled
            (every prediction then counts as a false positive)
        predictions: Detector output
        iou_threshold: Minimum IoU for a prediction to match a truth

    Returns:
        EvaluationReport with per-type, micro and macro metrics
    """
    truths = flatten_truth(annotations)
    predicted = flatten_predictions(predictions)

    per_type: dict[FieldType, TypeMetrics] = {}
    matches: list[MatchRecord] = []
    false_positives: list[Instance] = []
    false_negatives: list[Instance] = []

    tp = fp = fn = 0
    macro_precision = macro_recall = macro_f1 = 0.0

    types = active_types(truths, predicted)
    for field_type in types:
        run = greedy_match(
            field_type,
            [t for t in truths if t.field.type == field_type],
            [p for p in predicted if p.field.type == field_type],
            iou_threshold,
        )
        matches.extend(run.matches)
        false_positives.extend(run.false_positives)
        false_negatives.extend(run.false_negatives)

        metrics = TypeMetrics.from_counts(
            tp=len(run.matches),
            fp=len(run.false_positives),
            fn=len(run.false_negatives),
        )
        per_type[field_type] = metrics

        tp += metrics.tp
        fp += metrics.fp
        fn += metrics.fn
        macro_precision += metrics.precision
        macro_recall += metrics.recall
        macro_f1 += metrics.f1

    micro_scores = TypeMetrics.from_counts(tp=tp, fp=fp, fn=fn)
    micro = AggregateMetrics(
        tp=tp,
        fp=fp,
        fn=fn,
        precision=micro_scores.precision,
        recall=micro_scores.recall,
        f1=micro_scores.f1,
        support=tp + fn,
        predicted=tp + fp,
    )
    macro = AggregateMetrics(
        tp=tp,
        fp=fp,
        fn=fn,
        precision=_ratio(macro_precision, len(types)),
        recall=_ratio(macro_recall, len(types)),
        f1=_ratio(macro_f1, len(types)),
        support=len(truths),
        predicted=len(predicted),
    )

    logger.debug(
        "Evaluated %s: %d types, micro F1 %.3f, macro F1 %.3f",
        predictions.document_id,
        len(types),
        micro.f1,
        macro.f1,
    )

    return EvaluationReport(
        document_id=predictions.document_id,
        threshold=iou_threshold,
        per_type=per_type,
        micro=micro,
        macro=macro,
        matches=matches,
        false_positives=false_positives,
        false_negatives=false_negatives,
        summary=predictions.summary,
    )
