"""
test_confidence_filter.py — confidence banding for review lists.
"""

import pytest

from estimator.models.domain import Detection
from estimator.services.confidence_filter import (
    ConfidenceLevel,
    classify_confidence,
    effective_confidence,
    filter_detections,
    passes_filter,
)


class TestClassifyConfidence:

    def test_at_threshold_is_high(self):
        assert classify_confidence(0.5, 0.5) == ConfidenceLevel.HIGH

    def test_below_threshold_dimmed_when_shown(self):
        assert classify_confidence(0.49, 0.5, show_low_confidence=True) == ConfidenceLevel.LOW

    def test_below_threshold_hidden_when_not_shown(self):
        assert classify_confidence(0.49, 0.5, show_low_confidence=False) == ConfidenceLevel.HIDDEN

    def test_legacy_none_counts_as_certain(self):
        """Rows written before confidence was stored are never hidden."""
        assert effective_confidence(None) == 1.0
        assert classify_confidence(None, 0.99, show_low_confidence=False) == ConfidenceLevel.HIGH

    def test_defaults_show_everything(self):
        assert classify_confidence(0.0) == ConfidenceLevel.HIGH
        assert passes_filter(0.0)


class TestFilterDetections:

    def test_partition_preserves_order(self):
        dets = [
            Detection(id="a", page_id="p", confidence=0.9),
            Detection(id="b", page_id="p", confidence=0.2),
            Detection(id="c", page_id="p", confidence=None),
            Detection(id="d", page_id="p", confidence=0.3),
        ]
        shown = filter_detections(dets, min_confidence=0.5, show_low_confidence=True)
        assert [d.id for d in shown.visible] == ["a", "c"]
        assert [d.id for d in shown.dimmed] == ["b", "d"]
        assert shown.hidden == []

        hidden = filter_detections(dets, min_confidence=0.5, show_low_confidence=False)
        assert [d.id for d in hidden.hidden] == ["b", "d"]
        assert not passes_filter(0.2, 0.5, show_low_confidence=False)
