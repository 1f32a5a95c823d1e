"""User directory API routes."""

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ...app import IApplication
from ...directory import user_to_dict
from ...models import User


class UserModel(BaseModel):
    """A user with presence fields."""

    id: str
    first_name: str
    last_name: str
    email: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    online: bool = False
    last_seen: datetime | None = None
    avatar: str | None = None


class StatusResponse(BaseModel):
    """Response model for status."""

    status: str
    count: int


def create_users_router(app: IApplication) -> APIRouter:
    """Create users router."""
    router = APIRouter(prefix="/api/users", tags=["users"])

    @router.get("", response_model=list[UserModel])
    async def list_users() -> list[dict]:
        """All users with their online/last_seen state."""
        users = await app.directory.get_users()
        return [user_to_dict(u) for u in users]

    @router.post("", response_model=StatusResponse)
    async def replace_users(users: list[UserModel]) -> dict:
        """Replace the local directory copy (also the target of remote mirrors)."""
        try:
            # Straight to storage: mirroring from here could loop back to this endpoint.
            await app.storage.save_users([User(**u.model_dump()) for u in users])
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e))
        return {"status": "ok", "count": len(users)}

    return router
