"""Tests for PresenceTracker."""

from datetime import datetime, timezone

import pytest

from chatlink.presence import PresenceTracker


@pytest.fixture
def presence(directory):
    return PresenceTracker(directory)


class TestUpdateUserStatus:
    """Tests for PresenceTracker.update_user_status()."""

    async def test_sets_online_and_last_seen(self, presence, directory):
        """Test that the directory entry is updated and saved."""
        before = datetime.now(timezone.utc)

        user = await presence.update_user_status("2", True)

        assert user is not None and user.online
        saved = await directory.get_user("2")
        assert saved.online is True
        assert saved.last_seen >= before

    async def test_other_users_untouched(self, presence, directory):
        """Test that only the named user changes."""
        await presence.update_user_status("2", True)

        assert (await directory.get_user("1")).online is False
        assert (await directory.get_user("3")).last_seen is None

    async def test_unknown_user_ignored(self, presence, directory):
        """Test that unknown ids change nothing and announce nothing."""
        announced = []

        async def announce(status):
            announced.append(status)

        assert await presence.update_user_status("99", True, announce) is None
        assert announced == []
        assert len(await directory.get_users()) == 3

    async def test_announce_after_save(self, presence, directory):
        """Test that announce sees the saved state."""
        seen = []

        async def announce(status):
            seen.append((status, (await directory.get_user(status.user_id)).online))

        await presence.update_user_status("1", True, announce)

        status, stored_online = seen[0]
        assert status.user_id == "1"
        assert status.online is True
        assert stored_online is True

    async def test_get_status(self, presence):
        """Test reading presence back."""
        await presence.update_user_status("1", True)

        status = await presence.get_status("1")

        assert status.online is True
        assert await presence.get_status("99") is None
