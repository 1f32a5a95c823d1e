"""Presence tracking on top of the user directory."""

from typing import Awaitable, Callable

from ..directory import IUserDirectory
from ..logging_config import get_logger
from ..models import User, UserStatus, utcnow

logger = get_logger(__name__)

Announce = Callable[[UserStatus], Awaitable[object]]


class PresenceTracker:
    """Maintains online/last_seen for users in the directory."""

    def __init__(self, directory: IUserDirectory):
        self._directory = directory

    async def update_user_status(
        self,
        user_id: str,
        online: bool,
        announce: Announce | None = None,
    ) -> User | None:
        """Set online/last_seen for user_id and save the directory.

        Unknown users are ignored. `announce` is awaited with the new status
        after the directory is saved; callers pass it only when listeners exist.
        """
        users = await self._directory.get_users()
        user = next((u for u in users if u.id == user_id), None)
        if user is None:
            logger.debug("Presence update for unknown user %s ignored", user_id)
            return None

        user.online = online
        user.last_seen = utcnow()
        await self._directory.save_users(users)

        if announce is not None:
            await announce(UserStatus(user_id=user_id, online=online))
        return user

    async def get_status(self, user_id: str) -> UserStatus | None:
        """Current presence for a user, None if unknown."""
        for user in await self._directory.get_users():
            if user.id == user_id:
                return UserStatus(user_id=user.id, online=user.online)
        return None
