"""Classification suggestion aggregate, events and durable storage."""

from bimclassify.suggestions.aggregate import ClassificationSuggestion
from bimclassify.suggestions.events import (
    ClassificationApproved,
    ClassificationRejected,
    ClassificationSuggested,
    DomainEvent,
)

__all__ = [
    "ClassificationApproved",
    "ClassificationRejected",
    "ClassificationSuggested",
    "ClassificationSuggestion",
    "DomainEvent",
]
