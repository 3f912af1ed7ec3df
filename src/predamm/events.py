"""Event sinks - where ledger, engine and registry events are published."""

from __future__ import annotations

from typing import Protocol

import structlog

from predamm.models.events import VenueEvent

log = structlog.get_logger(__name__)


class EventSink(Protocol):
    """Receives committed venue events (failed calls publish nothing)."""

    def emit(self, event: VenueEvent) -> None: ...


class EventRecorder:
    """In-memory sink. Keeps every event in order; used by tests and the API."""

    def __init__(self) -> None:
        self.events: list[VenueEvent] = []

    def emit(self, event: VenueEvent) -> None:
        self.events.append(event)
        log.debug("event", event_type=event.event_type, condition_id=event.scope_id)

    def of_type(self, event_type: str) -> list[VenueEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


class FanoutSink:
    """Publish each event to several sinks in order."""

    def __init__(self, *sinks: EventSink) -> None:
        self.sinks = list(sinks)

    def emit(self, event: VenueEvent) -> None:
        for sink in self.sinks:
            sink.emit(event)
