"""Call signalling API routes."""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from ...app import IApplication
from ...errors import CallConflictError, SessionNotInitializedError
from .common import CallResponse, call_to_response, require_session


class InitiateCallRequest(BaseModel):
    """Request model for starting a call."""

    receiver_id: str


def create_calls_router(app: IApplication) -> APIRouter:
    """Create calls router."""
    router = APIRouter(prefix="/api/sessions/{session_id}/calls", tags=["calls"])

    @router.post("", response_model=CallResponse)
    async def initiate_call(session_id: str, request: InitiateCallRequest) -> dict:
        """Ring receiver_id."""
        session = require_session(app, session_id)
        try:
            call = await session.initiate_call(request.receiver_id)
        except (SessionNotInitializedError, CallConflictError) as e:
            raise HTTPException(status_code=409, detail=str(e))
        return call_to_response(call)

    @router.get("/active", response_model=CallResponse | None)
    async def get_active_call(session_id: str) -> dict | None:
        """The session user's call that has not ended, or null."""
        session = require_session(app, session_id)
        call = await session.get_active_call()
        return call_to_response(call) if call else None

    @router.post("/{call_id}/accept", response_model=CallResponse)
    async def accept_call(session_id: str, call_id: str) -> dict:
        """ringing -> ongoing."""
        session = require_session(app, session_id)
        call = await session.accept_call(call_id)
        if call is None:
            raise HTTPException(status_code=404, detail=f"Call {call_id} not found")
        return call_to_response(call)

    @router.post("/{call_id}/reject", response_model=CallResponse)
    async def reject_call(session_id: str, call_id: str) -> dict:
        """ringing -> ended, caller gets call-reject."""
        session = require_session(app, session_id)
        call = await session.reject_call(call_id)
        if call is None:
            raise HTTPException(status_code=404, detail=f"Call {call_id} not ringing")
        return call_to_response(call)

    @router.post("/{call_id}/end", response_model=CallResponse)
    async def end_call(session_id: str, call_id: str) -> dict:
        """Any non-ended call -> ended."""
        session = require_session(app, session_id)
        call = await session.end_call(call_id)
        if call is None:
            raise HTTPException(status_code=404, detail=f"Call {call_id} not found")
        return call_to_response(call)

    return router
