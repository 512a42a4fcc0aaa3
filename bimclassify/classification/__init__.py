"""Batch classification orchestration."""

from bimclassify.classification.service import (
    BatchClassificationResult,
    ClassificationService,
    Classifier,
    build_classifier_payload,
)

__all__ = [
    "BatchClassificationResult",
    "ClassificationService",
    "Classifier",
    "build_classifier_payload",
]
