"""Tracing and observability data models."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class TraceEvent:
    """A single observability record of what a session did."""

    id: str
    event_type: str  # e.g. "session_initialized", "event_relayed"
    actor: str  # "session:<user_id>", "poller:<user_id>", "application"
    data: dict
    timestamp: datetime
