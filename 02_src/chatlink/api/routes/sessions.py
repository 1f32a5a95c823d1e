"""Session and messaging API routes."""

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from ...app import IApplication
from ...errors import SessionNotInitializedError
from .common import (
    EventResponse,
    MessageResponse,
    StatusResponse,
    event_to_response,
    message_to_response,
    require_session,
)


class OpenSessionRequest(BaseModel):
    """Request model for opening a session."""

    user_id: str


class SessionResponse(BaseModel):
    """Response model for a session."""

    session_id: str
    user_id: str | None
    state: str


class SendMessageRequest(BaseModel):
    """Request model for sending a message."""

    receiver_id: str
    content: str


class MarkReadRequest(BaseModel):
    """Request model for marking a conversation read."""

    sender_id: str


class MarkReadResponse(BaseModel):
    """Response model for mark-as-read."""

    updated: int


def create_sessions_router(app: IApplication) -> APIRouter:
    """Create sessions router."""
    router = APIRouter(prefix="/api/sessions", tags=["sessions"])

    @router.post("", response_model=SessionResponse)
    async def open_session(request: OpenSessionRequest) -> dict:
        """Open a session for a user (marks the user online)."""
        try:
            session = await app.open_session(request.user_id)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        return {
            "session_id": session.id,
            "user_id": session.user_id,
            "state": session.state.value,
        }

    @router.get("/{session_id}", response_model=SessionResponse)
    async def get_session(session_id: str) -> dict:
        """Describe an open session."""
        session = require_session(app, session_id)
        return {
            "session_id": session.id,
            "user_id": session.user_id,
            "state": session.state.value,
        }

    @router.delete("/{session_id}", response_model=StatusResponse)
    async def close_session(session_id: str) -> dict:
        """Disconnect a session (marks the user offline)."""
        if not await app.close_session(session_id):
            raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
        return {"status": "ok"}

    @router.post("/{session_id}/messages", response_model=MessageResponse)
    async def send_message(session_id: str, request: SendMessageRequest) -> dict:
        """Send a message from the session's user."""
        session = require_session(app, session_id)
        try:
            message = await session.send_message(request.receiver_id, request.content)
        except SessionNotInitializedError as e:
            raise HTTPException(status_code=409, detail=str(e))
        return message_to_response(message)

    @router.get("/{session_id}/messages/{peer_id}", response_model=list[MessageResponse])
    async def get_conversation(session_id: str, peer_id: str) -> list[dict]:
        """Messages between the session's user and peer_id, oldest first."""
        session = require_session(app, session_id)
        if session.user_id is None:
            raise HTTPException(status_code=409, detail="Session not initialized")
        messages = await session.get_messages_between_users(session.user_id, peer_id)
        return [message_to_response(m) for m in messages]

    @router.post("/{session_id}/messages/read", response_model=MarkReadResponse)
    async def mark_read(session_id: str, request: MarkReadRequest) -> dict:
        """Mark messages from sender_id as read."""
        session = require_session(app, session_id)
        updated = await session.mark_messages_as_read(request.sender_id)
        return {"updated": updated}

    @router.get("/{session_id}/events", response_model=list[EventResponse])
    async def drain_events(
        session_id: str,
        poll: bool = Query(False, description="Run one poller tick before draining"),
    ) -> list[dict]:
        """Drain events delivered to this session since the last call."""
        session = require_session(app, session_id)
        inbox = app.get_inbox(session_id)
        if inbox is None:
            raise HTTPException(status_code=404, detail=f"Session {session_id} not found")

        if poll:
            await session.poll()
        return [event_to_response(e) for e in inbox.drain()]

    return router
