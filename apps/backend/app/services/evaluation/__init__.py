"""Benchmarking of detectors against labeled datasets."""

from app.services.evaluation.dataset import DatasetSample, load_dataset
from app.services.evaluation.detectors import element_to_prediction
from app.services.evaluation.evaluator import (
    AggregateMetrics,
    EvaluationReport,
    TypeMetrics,
    evaluate,
)
from app.services.evaluation.matcher import Instance, MatchRecord, MatchRun, greedy_match
from app.services.evaluation.registry import (
    Detector,
    DetectorContext,
    get_detector,
    list_detectors,
    register_detector,
    require_detector,
)
from app.services.evaluation.runner import run_benchmark, run_dataset, select_samples

__all__ = [
    "AggregateMetrics",
    "DatasetSample",
    "Detector",
    "DetectorContext",
    "EvaluationReport",
    "Instance",
    "MatchRecord",
    "MatchRun",
    "TypeMetrics",
    "element_to_prediction",
    "evaluate",
    "get_detector",
    "greedy_match",
    "list_detectors",
    "load_dataset",
    "register_detector",
    "require_detector",
    "run_benchmark",
    "run_dataset",
    "select_samples",
]
