"""Chat message and user data models."""

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone

_id_lock = threading.Lock()
_last_id = 0


def new_id() -> str:
    """Return a creation-time based id, strictly increasing within the process."""
    global _last_id
    with _id_lock:
        candidate = time.time_ns() // 1000  # microseconds
        if candidate <= _last_id:
            candidate = _last_id + 1
        _last_id = candidate
    return str(candidate)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class ChatMessage:
    """A direct message between two users.

    Only ``read`` changes after creation, and only the receiving session sets it.
    """

    id: str
    sender_id: str
    receiver_id: str
    content: str
    timestamp: datetime
    read: bool = False


@dataclass
class User:
    """A user entry owned by the user directory.

    chatlink only touches ``online`` and ``last_seen``.
    """

    id: str
    first_name: str
    last_name: str
    email: str
    created_at: datetime
    online: bool = False
    last_seen: datetime | None = None
    avatar: str | None = None
