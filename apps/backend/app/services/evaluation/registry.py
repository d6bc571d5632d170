"""Registry of document-level detectors that can be benchmarked."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from app.schemas import DetectionOutput
from app.services.evaluation.dataset import DatasetSample


@dataclass
class DetectorContext:
    """Everything a detector gets to look at for one sample."""
    sample: DatasetSample
    dataset_root: Path
    options: dict[str, Any] = field(default_factory=dict)  # From CLI flags


class Detector(ABC):
    """A strategy that turns one dataset sample into predictions."""

    name: str = ""
    description: str = ""

    @abstractmethod
    async def detect(self, context: DetectorContext) -> DetectionOutput:
        """Produce predictions for ``context.sample``."""


_registry: dict[str, Detector] = {}


def register_detector(detector_id: str, detector: Detector) -> None:
    """Register a detector under a unique id."""
    if detector_id in _registry:
        raise ValueError(f"Detector {detector_id} is already registered")
    _registry[detector_id] = detector


def unregister_detector(detector_id: str) -> None:
    _registry.pop(detector_id, None)


def get_detector(detector_id: str) -> Detector | None:
    return _registry.get(detector_id)


def list_detectors() -> list[dict[str, str]]:
    """Registered detectors in registration order."""
    return [
        {"id": detector_id, "name": detector.name, "description": detector.description}
        for detector_id, detector in _registry.items()
    ]


def require_detector(detector_id: str) -> Detector:
    """Like ``get_detector`` but raises ``KeyError`` for unknown ids."""
    detector = get_detector(detector_id)
    if detector is None:
        raise KeyError(f"Unknown detector: {detector_id}")
    return detector
