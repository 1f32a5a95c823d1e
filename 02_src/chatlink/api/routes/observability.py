"""Observability API routes."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException, Query

from ...app import IApplication


class TraceEventResponse(BaseModel):
    """Response model for trace event."""

    id: str
    event_type: str
    actor: str
    data: dict[str, Any]
    timestamp: datetime


class OpenSessionInfo(BaseModel):
    """One open session as seen by operators."""

    session_id: str
    user_id: str | None
    state: str
    pending_events: int


def create_observability_router(app: IApplication) -> APIRouter:
    """Create observability router."""
    router = APIRouter(prefix="/api", tags=["observability"])

    @router.get("/trace-events", response_model=list[TraceEventResponse])
    async def get_trace_events(
        after: str | None = Query(None, description="ISO timestamp filter"),
        limit: int = Query(100, ge=1, le=1000),
        event_type: str | None = Query(None, description="Filter by event type"),
        actor: str | None = Query(None, description="Filter by actor, e.g. session:2"),
    ) -> list[dict]:
        """Get trace events (newest first) with optional filters."""
        after_dt = None
        if after:
            try:
                after_dt = datetime.fromisoformat(after)
            except ValueError:
                raise HTTPException(
                    status_code=400, detail="Invalid after timestamp format"
                )

        try:
            events = await app.storage.get_trace_events(
                after=after_dt,
                event_types=[event_type] if event_type else None,
                actor=actor,
                limit=limit,
            )
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))

        return [
            {
                "id": e.id,
                "event_type": e.event_type,
                "actor": e.actor,
                "data": e.data,
                "timestamp": e.timestamp,
            }
            for e in events
        ]

    @router.get("/open-sessions", response_model=list[OpenSessionInfo])
    async def list_open_sessions() -> list[dict]:
        """Sessions currently registered with the application."""
        result = []
        for session in app.sessions:
            inbox = app.get_inbox(session.id)
            result.append(
                {
                    "session_id": session.id,
                    "user_id": session.user_id,
                    "state": session.state.value,
                    "pending_events": len(inbox) if inbox else 0,
                }
            )
        return result

    return router
