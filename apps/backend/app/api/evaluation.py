"""Evaluation API routes."""

from typing import Any

from fastapi import APIRouter

from app.core.config import get_settings
from app.schemas import EvaluationRequest
from app.services.evaluation import evaluate, list_detectors

router = APIRouter(prefix="/evaluation", tags=["evaluation"])


@router.post("/evaluate")
async def evaluate_predictions(request: EvaluationRequest) -> dict[str, Any]:
    """
    Score predictions against ground truth.

    Without annotations every prediction counts as a false positive.
    """
    threshold = request.threshold or get_settings().evaluation_iou_threshold
    report = evaluate(request.annotations, request.predictions, threshold)
    return report.to_dict()


@router.get("/detectors")
async def get_detectors() -> list[dict[str, str]]:
    """List detectors available for benchmarking."""
    return list_detectors()
