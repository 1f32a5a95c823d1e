"""Application bootstrap and lifecycle management."""

import os
from typing import Protocol

from .config import SessionConfig, resolve_db_path
from .directory import UserDirectory
from .logging_config import get_logger
from .session import Inbox, Session
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap, lifecycle and the registry of open sessions."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Disconnect sessions, then shut components down in reverse order."""
        ...

    async def reset(self) -> None:
        """Drop all sessions and stored data."""
        ...

    async def open_session(self, user_id: str) -> Session:
        """Create, initialize and register a session for user_id."""
        ...

    def get_session(self, session_id: str) -> Session | None:
        """Look up an open session."""
        ...

    def get_inbox(self, session_id: str) -> Inbox | None:
        """Inbox attached to an open session."""
        ...

    async def close_session(self, session_id: str) -> bool:
        """Disconnect and forget a session. False if unknown."""
        ...

    @property
    def sessions(self) -> list[Session]:
        """Open sessions."""
        ...

    @property
    def storage(self) -> IStorage:
        """Shared storage."""
        ...

    @property
    def directory(self) -> UserDirectory:
        """Shared user directory."""
        ...


class Application:
    """Main application bootstrap."""

    def __init__(self, db_path: str | None = None, config: SessionConfig | None = None):
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)
        self._config = config or SessionConfig.from_env()

        # Components (will be initialized in start())
        self._storage: IStorage | None = None
        self._directory: UserDirectory | None = None
        self._tracker: ITracker | None = None

        self._sessions: dict[str, Session] = {}
        self._inboxes: dict[str, Inbox] = {}

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")

        # 1. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. Directory and Tracker (depend on Storage)
        self._directory = UserDirectory(self._storage)
        self._tracker = Tracker(self._storage)
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Disconnect sessions, then shut components down in reverse order."""
        # Every user with an open session is marked offline here.
        await self._close_all_sessions()

        if self._directory:
            await self._directory.close()
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Drop all sessions and stored data."""
        await self._close_all_sessions()

        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")

    async def open_session(self, user_id: str) -> Session:
        """Create, initialize and register a session for user_id."""
        session = Session(
            storage=self.storage,
            directory=self.directory,
            tracker=self._tracker,
            config=self._config,
        )
        await session.initialize(user_id)

        inbox = Inbox()
        inbox.attach(session.bus)

        self._sessions[session.id] = session
        self._inboxes[session.id] = inbox
        logger.info(
            "Opened session %s for %s",
            session.id,
            user_id,
            extra={"session_id": session.id, "user_id": user_id},
        )
        return session

    def get_session(self, session_id: str) -> Session | None:
        """Look up an open session."""
        return self._sessions.get(session_id)

    def get_inbox(self, session_id: str) -> Inbox | None:
        """Inbox attached to an open session."""
        return self._inboxes.get(session_id)

    async def close_session(self, session_id: str) -> bool:
        """Disconnect and forget a session. False if unknown."""
        session = self._sessions.pop(session_id, None)
        self._inboxes.pop(session_id, None)
        if session is None:
            return False
        await session.disconnect()
        return True

    async def _close_all_sessions(self) -> None:
        for session_id in list(self._sessions):
            await self.close_session(session_id)

    @property
    def sessions(self) -> list[Session]:
        """Open sessions."""
        return list(self._sessions.values())

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        if not self._storage:
            raise RuntimeError("Application not started")
        return self._storage

    @property
    def directory(self) -> UserDirectory:
        """Get user directory instance."""
        if not self._directory:
            raise RuntimeError("Application not started")
        return self._directory
