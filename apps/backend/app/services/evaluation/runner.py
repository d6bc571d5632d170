"""Run a registered detector over dataset samples and score each document."""

import json
import logging
from pathlib import Path
from typing import Any

from app.core.config import get_settings
from app.services.evaluation.dataset import DatasetSample, load_dataset
from app.services.evaluation.evaluator import EvaluationReport, evaluate
from app.services.evaluation.registry import DetectorContext, require_detector

logger = logging.getLogger(__name__)


def select_samples(
    samples: list[DatasetSample],
    sample_ids: list[str] | None = None,
    limit: int = 10,
) -> list[DatasetSample]:
    """Filter samples by case-insensitive document id, then apply ``limit``."""
    if sample_ids:
        wanted = {s.lower() for s in sample_ids}
        samples = [s for s in samples if s.document_id.lower() in wanted]
    return samples[:max(0, limit)]


def report_path(out_dir: Path, document_id: str, detector_id: str) -> Path:
    """``<document>.<detector>.json``; ``:`` in ids is kept out of file names."""
    safe_detector = detector_id.replace(":", "_")
    return out_dir / f"{document_id}.{safe_detector}.json"


def write_report(report: EvaluationReport, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")


async def run_benchmark(
    detector_id: str,
    samples: list[DatasetSample],
    threshold: float | None = None,
    out_dir: Path | None = None,
    dataset_root: Path | None = None,
    options: dict[str, Any] | None = None,
) -> list[EvaluationReport]:
    """
    Evaluate one detector on each annotated sample.

    Samples without annotations are skipped. A sample whose detector run
    raises is logged and skipped so the remaining samples still run.
    ``threshold`` defaults to ``settings.evaluation_iou_threshold``.

    Raises:
        KeyError: ``detector_id`` is not registered
    """
    detector = require_detector(detector_id)
    if threshold is None:
        threshold = get_settings().evaluation_iou_threshold
    reports = []

    for sample in samples:
        if sample.annotations is None:
            logger.warning("Skipping %s (no annotations)", sample.document_id)
            continue

        context = DetectorContext(
            sample=sample,
            dataset_root=dataset_root or sample.pdf_path.parent,
            options=options or {},
        )
        try:
            detections = await detector.detect(context)
        except (OSError, ValueError, RuntimeError) as e:
            logger.error("Detector %s failed on %s: %s", detector_id, sample.document_id, e)
            continue

        report = evaluate(sample.annotations, detections, threshold)
        reports.append(report)

        if out_dir is not None:
            write_report(report, report_path(out_dir, sample.document_id, detector_id))

    return reports


async def run_dataset(
    detector_id: str,
    test_dir: Path | None = None,
    sample_ids: list[str] | None = None,
    limit: int = 10,
    threshold: float | None = None,
    out_dir: Path | None = None,
    options: dict[str, Any] | None = None,
) -> list[EvaluationReport]:
    """Load a dataset directory and benchmark ``detector_id`` on it."""
    samples = select_samples(load_dataset(test_dir), sample_ids, limit)
    logger.info("Running detector %s on %d samples", detector_id, len(samples))
    return await run_benchmark(
        detector_id,
        samples,
        threshold=threshold,
        out_dir=out_dir,
        dataset_root=test_dir,
        options=options,
    )
