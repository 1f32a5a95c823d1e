"""Tracker implementation for creating TraceEvents."""

import uuid
from datetime import datetime, timezone
from typing import Protocol

import aiosqlite

from ..logging_config import get_logger
from ..models import Event, TraceEvent
from ..storage import IStorage

logger = get_logger(__name__)


class ITracker(Protocol):
    """Records what sessions do as TraceEvents."""

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage."""
        ...

    async def track_event(self, event_type: str, actor: str, event: Event) -> None:
        """Record a summary of a bus/relay Event."""
        ...


def summarize_event(event: Event) -> dict:
    """Small, display-friendly description of an Event."""
    return {
        "type": event.type.value,
        "payload_id": event.payload_id,
        "sender_id": event.sender_id,
        "receiver_id": event.receiver_id,
        "timestamp": event.timestamp.isoformat(),
    }


class Tracker:
    """Creates TraceEvents from direct track() calls."""

    def __init__(self, storage: IStorage):
        self._storage = storage

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and save to Storage.

        Tracing never breaks the caller: storage errors are logged and dropped.
        """
        trace_event = TraceEvent(
            id=str(uuid.uuid4()),
            event_type=event_type,
            actor=actor,
            data=data,
            timestamp=datetime.now(timezone.utc),
        )
        try:
            await self._storage.save_trace_event(trace_event)
        except aiosqlite.Error as e:
            logger.error("Failed to save trace event %s: %s", event_type, e)

    async def track_event(self, event_type: str, actor: str, event: Event) -> None:
        """Record a summary of a bus/relay Event."""
        await self.track(event_type, actor, summarize_event(event))
