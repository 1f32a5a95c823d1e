"""Core data models for chatlink."""

from .messages import ChatMessage, User, new_id, utcnow
from .calls import Call, CallStatus
from .events import (
    Event,
    EventPayload,
    EventType,
    UserStatus,
    decode_event,
    encode_event,
    event_to_dict,
    parse_timestamp,
)
from .tracing import TraceEvent

__all__ = [
    # Messages
    "ChatMessage",
    "User",
    "new_id",
    "utcnow",
    # Calls
    "Call",
    "CallStatus",
    # Events
    "Event",
    "EventPayload",
    "EventType",
    "UserStatus",
    "decode_event",
    "encode_event",
    "event_to_dict",
    "parse_timestamp",
    # Tracing
    "TraceEvent",
]
