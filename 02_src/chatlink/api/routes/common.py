"""Response models and helpers shared by the API routers."""

from datetime import datetime
from typing import Any

from fastapi import HTTPException
from pydantic import BaseModel

from ...app import IApplication
from ...models import Call, ChatMessage, Event, event_to_dict
from ...session import Session


class StatusResponse(BaseModel):
    """Response model for status."""

    status: str


class MessageResponse(BaseModel):
    """Response model for a chat message."""

    id: str
    sender_id: str
    receiver_id: str
    content: str
    timestamp: datetime
    read: bool


class CallResponse(BaseModel):
    """Response model for a call."""

    id: str
    caller_id: str
    receiver_id: str
    status: str
    start_time: datetime
    end_time: datetime | None = None


class EventResponse(BaseModel):
    """Response model for a delivered event."""

    type: str
    data: dict[str, Any]
    timestamp: datetime
    sender_id: str
    receiver_id: str | None = None


def message_to_response(message: ChatMessage) -> dict:
    return {
        "id": message.id,
        "sender_id": message.sender_id,
        "receiver_id": message.receiver_id,
        "content": message.content,
        "timestamp": message.timestamp,
        "read": message.read,
    }


def call_to_response(call: Call) -> dict:
    return {
        "id": call.id,
        "caller_id": call.caller_id,
        "receiver_id": call.receiver_id,
        "status": call.status.value,
        "start_time": call.start_time,
        "end_time": call.end_time,
    }


def event_to_response(event: Event) -> dict:
    return event_to_dict(event)


def require_session(app: IApplication, session_id: str) -> Session:
    """Open session or 404."""
    session = app.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return session
