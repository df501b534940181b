"""Confidence banding for detection review lists."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional

from estimator.models.domain import Detection

# Legacy rows written before confidence was stored are treated as certain
LEGACY_CONFIDENCE: float = 1.0

DEFAULT_MIN_CONFIDENCE: float = 0.0
DEFAULT_SHOW_LOW_CONFIDENCE: bool = True


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    LOW = "low"
    HIDDEN = "hidden"


@dataclass
class FilteredDetections:
    visible: List[Detection] = field(default_factory=list)
    dimmed: List[Detection] = field(default_factory=list)
    hidden: List[Detection] = field(default_factory=list)


def effective_confidence(confidence: Optional[float]) -> float:
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        return LEGACY_CONFIDENCE
    return float(confidence)


def classify_confidence(
    confidence: Optional[float],
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
    show_low_confidence: bool = DEFAULT_SHOW_LOW_CONFIDENCE,
) -> ConfidenceLevel:
    if effective_confidence(confidence) >= min_confidence:
        return ConfidenceLevel.HIGH
    return ConfidenceLevel.LOW if show_low_confidence else ConfidenceLevel.HIDDEN


def passes_filter(
    confidence: Optional[float],
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
    show_low_confidence: bool = DEFAULT_SHOW_LOW_CONFIDENCE,
) -> bool:
    """True when the detection should be drawn at all (high or dimmed)."""
    return classify_confidence(confidence, min_confidence, show_low_confidence) != ConfidenceLevel.HIDDEN


def filter_detections(
    detections: Iterable[Detection],
    min_confidence: float = DEFAULT_MIN_CONFIDENCE,
    show_low_confidence: bool = DEFAULT_SHOW_LOW_CONFIDENCE,
) -> FilteredDetections:
    """Partition detections into visible / dimmed / hidden, preserving order."""
    result = FilteredDetections()
    buckets = {
        ConfidenceLevel.HIGH: result.visible,
        ConfidenceLevel.LOW: result.dimmed,
        ConfidenceLevel.HIDDEN: result.hidden,
    }
    for det in detections:
        buckets[classify_confidence(det.confidence, min_confidence, show_low_confidence)].append(det)
    return result
