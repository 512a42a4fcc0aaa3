"""Event publisher contract for review audit events."""

from __future__ import annotations

import logging
from typing import Protocol

from bimclassify.suggestions.events import DomainEvent

logger = logging.getLogger(__name__)


class EventPublisher(Protocol):
    async def publish(self, event: DomainEvent) -> None:
        ...


class LoggingEventPublisher:
    """Default publisher: writes each event to the audit log."""

    def __init__(self, logger_name: str = "bimclassify.audit"):
        self.logger = logging.getLogger(logger_name)

    async def publish(self, event: DomainEvent) -> None:
        self.logger.info("%s %s", event.event_type, event.to_dict())


class RecordingEventPublisher:
    """Keeps published events in memory (tests, dry runs)."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> None:
        self.events.append(event)
