"""Pytest configuration and fixtures."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from chatlink.config import SessionConfig  # noqa: E402
from chatlink.models import User  # noqa: E402

# Background loops effectively never fire; tests drive poll()/relay.check() by hand.
MANUAL_CONFIG = SessionConfig(
    poll_interval=3600.0,
    message_recency_window=5.0,
    call_recency_window=10.0,
    broadcast_clear_delay=3600.0,
    relay_watch_interval=3600.0,
)


def make_user(user_id: str, first_name: str) -> User:
    return User(
        id=user_id,
        first_name=first_name,
        last_name="Test",
        email=f"{first_name.lower()}@example.com",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from chatlink.storage import Storage

    st = Storage(":memory:")
    await st.init()
    yield st
    await st.close()


@pytest.fixture
def config():
    """Session config with manual polling and relaying."""
    return MANUAL_CONFIG


@pytest_asyncio.fixture
async def directory(storage):
    """User directory seeded with users 1, 2 and 3 (no remote mirror)."""
    from chatlink.directory import UserDirectory

    d = UserDirectory(storage, remote_url="")
    await d.save_users(
        [make_user("1", "Alice"), make_user("2", "Bob"), make_user("3", "Carol")]
    )
    yield d
    await d.close()


@pytest.fixture
def tracker(storage):
    """Create Tracker with storage."""
    from chatlink.tracker import Tracker

    return Tracker(storage=storage)


@pytest.fixture
def event_bus():
    """Create a standalone EventBus."""
    from chatlink.event_bus import EventBus

    return EventBus()


@pytest_asyncio.fixture
async def make_session(storage, directory, tracker, config):
    """Factory for sessions sharing one storage; disconnects them afterwards."""
    from chatlink.session import Session

    created = []

    def factory(session_config: SessionConfig | None = None) -> Session:
        session = Session(
            storage=storage,
            directory=directory,
            tracker=tracker,
            config=session_config or config,
        )
        created.append(session)
        return session

    yield factory

    for session in created:
        await session.disconnect()


@pytest_asyncio.fixture
async def alice(make_session):
    """Active session for user 1."""
    session = make_session()
    await session.initialize("1")
    return session


@pytest_asyncio.fixture
async def bob(make_session):
    """Active session for user 2."""
    session = make_session()
    await session.initialize("2")
    return session
