"""Human review of classification suggestions."""

from bimclassify.review.publisher import (
    EventPublisher,
    LoggingEventPublisher,
    RecordingEventPublisher,
)
from bimclassify.review.service import ReviewService

__all__ = [
    "EventPublisher",
    "LoggingEventPublisher",
    "RecordingEventPublisher",
    "ReviewService",
]
