"""Typed events delivered through the bus and the broadcast log."""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Union

from .calls import Call, CallStatus
from .messages import ChatMessage


class EventType(str, Enum):
    """Event kinds exchanged between sessions."""

    MESSAGE = "message"
    USER_STATUS = "user-status"
    CALL_REQUEST = "call-request"
    CALL_ACCEPT = "call-accept"
    CALL_REJECT = "call-reject"
    CALL_END = "call-end"


@dataclass
class UserStatus:
    """Payload of a user-status event."""

    user_id: str
    online: bool


EventPayload = Union[ChatMessage, Call, UserStatus]

PAYLOAD_TYPES: dict[EventType, type] = {
    EventType.MESSAGE: ChatMessage,
    EventType.USER_STATUS: UserStatus,
    EventType.CALL_REQUEST: Call,
    EventType.CALL_ACCEPT: Call,
    EventType.CALL_REJECT: Call,
    EventType.CALL_END: Call,
}


@dataclass
class Event:
    """An event envelope. The payload type is fixed by the event type."""

    type: EventType
    data: EventPayload
    timestamp: datetime
    sender_id: str
    receiver_id: str | None = None

    def __post_init__(self) -> None:
        self.type = EventType(self.type)
        expected = PAYLOAD_TYPES[self.type]
        if not isinstance(self.data, expected):
            raise TypeError(
                f"{self.type.value} event expects {expected.__name__}, "
                f"got {type(self.data).__name__}"
            )

    def is_for(self, user_id: str) -> bool:
        """Check whether user_id should receive this event."""
        return self.receiver_id is None or self.receiver_id == user_id

    @property
    def payload_id(self) -> str:
        """Identity used by consumers to de-duplicate deliveries."""
        if isinstance(self.data, UserStatus):
            return f"{self.data.user_id}:{self.data.online}:{self.timestamp.isoformat()}"
        return self.data.id


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO timestamp, treating naive values as UTC."""
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _payload_to_dict(data: EventPayload) -> dict:
    if isinstance(data, ChatMessage):
        return {
            "id": data.id,
            "sender_id": data.sender_id,
            "receiver_id": data.receiver_id,
            "content": data.content,
            "timestamp": data.timestamp.isoformat(),
            "read": data.read,
        }
    if isinstance(data, Call):
        return {
            "id": data.id,
            "caller_id": data.caller_id,
            "receiver_id": data.receiver_id,
            "status": data.status.value,
            "start_time": data.start_time.isoformat(),
            "end_time": data.end_time.isoformat() if data.end_time else None,
        }
    return {"user_id": data.user_id, "online": data.online}


def _payload_from_dict(event_type: EventType, raw: dict) -> EventPayload:
    kind = PAYLOAD_TYPES[event_type]
    if kind is ChatMessage:
        return ChatMessage(
            id=raw["id"],
            sender_id=raw["sender_id"],
            receiver_id=raw["receiver_id"],
            content=raw["content"],
            timestamp=parse_timestamp(raw["timestamp"]),
            read=bool(raw.get("read", False)),
        )
    if kind is Call:
        end_time = raw.get("end_time")
        return Call(
            id=raw["id"],
            caller_id=raw["caller_id"],
            receiver_id=raw["receiver_id"],
            status=CallStatus(raw["status"]),
            start_time=parse_timestamp(raw["start_time"]),
            end_time=parse_timestamp(end_time) if end_time else None,
        )
    return UserStatus(user_id=raw["user_id"], online=bool(raw["online"]))


def event_to_dict(event: Event) -> dict:
    """Convert an event into plain JSON-compatible data."""
    return {
        "type": event.type.value,
        "data": _payload_to_dict(event.data),
        "timestamp": event.timestamp.isoformat(),
        "sender_id": event.sender_id,
        "receiver_id": event.receiver_id,
    }


def encode_event(event: Event) -> str:
    """Serialize an event for the broadcast log."""
    return json.dumps(event_to_dict(event))


def decode_event(raw: str) -> Event:
    """Parse broadcast log contents.

    Raises ValueError on anything that is not a well-formed event.
    """
    try:
        doc = json.loads(raw)
        event_type = EventType(doc["type"])
        return Event(
            type=event_type,
            data=_payload_from_dict(event_type, doc["data"]),
            timestamp=parse_timestamp(doc["timestamp"]),
            sender_id=doc["sender_id"],
            receiver_id=doc.get("receiver_id"),
        )
    except (KeyError, TypeError, AttributeError) as e:
        raise ValueError(f"Malformed event: {e}") from e
