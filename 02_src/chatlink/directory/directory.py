"""User directory backed by local storage with an optional remote mirror."""

import os
from typing import Protocol

import httpx

from ..logging_config import get_logger
from ..models import User
from ..storage import IStorage

logger = get_logger(__name__)


class IUserDirectory(Protocol):
    """Where users and their presence fields live."""

    async def get_users(self) -> list[User]:
        """All users. Returns [] on any read error, never raises."""
        ...

    async def save_users(self, users: list[User]) -> None:
        """Persist users locally, then best-effort to the remote mirror."""
        ...


def user_to_dict(user: User) -> dict:
    """JSON-compatible form of a User."""
    return {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
        "created_at": user.created_at.isoformat(),
        "online": user.online,
        "last_seen": user.last_seen.isoformat() if user.last_seen else None,
        "avatar": user.avatar,
    }


class UserDirectory:
    """Local copy in Storage is authoritative; remote_url only receives copies."""

    def __init__(
        self,
        storage: IStorage,
        remote_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ):
        self._storage = storage
        self._remote_url = (
            remote_url if remote_url is not None else os.getenv("USER_DIRECTORY_URL")
        )
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    async def get_users(self) -> list[User]:
        """All users. Returns [] on any read error, never raises."""
        try:
            return await self._storage.get_users()
        except Exception as e:
            logger.error("Error getting users: %s", e, exc_info=True)
            return []

    async def get_user(self, user_id: str) -> User | None:
        """Look up one user."""
        for user in await self.get_users():
            if user.id == user_id:
                return user
        return None

    async def save_users(self, users: list[User]) -> None:
        """Persist users locally, then best-effort to the remote mirror."""
        try:
            await self._storage.save_users(users)
        except Exception as e:
            logger.error("Error saving users locally: %s", e, exc_info=True)
            return

        if self._remote_url:
            await self._push_remote(users)

    async def _push_remote(self, users: list[User]) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)

        try:
            response = await self._client.post(
                self._remote_url,
                json=[user_to_dict(user) for user in users],
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Error saving users to %s: %s", self._remote_url, e)

    async def close(self) -> None:
        """Close the HTTP client if this directory created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
        self._client = None
