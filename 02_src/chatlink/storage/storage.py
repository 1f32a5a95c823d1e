"""SQLite storage implementation."""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Protocol, TypeVar

import aiosqlite

from ..config import resolve_db_path
from ..logging_config import get_logger
from ..models import (
    Call,
    CallStatus,
    ChatMessage,
    TraceEvent,
    User,
    parse_timestamp,
)

logger = get_logger(__name__)

T = TypeVar("T")


def _ts(value: datetime) -> str:
    """Normalize a datetime for storage so string order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _decode_rows(rows: Iterable, decode: Callable[[tuple], T], what: str) -> list[T]:
    """Decode rows; malformed data makes the whole read come back empty."""
    try:
        return [decode(row) for row in rows]
    except (ValueError, TypeError) as e:
        logger.warning("Malformed %s rows in storage, returning empty: %s", what, e)
        return []


def _message_from_row(row: tuple) -> ChatMessage:
    return ChatMessage(
        id=row[0],
        sender_id=row[1],
        receiver_id=row[2],
        content=row[3],
        timestamp=parse_timestamp(row[4]),
        read=bool(row[5]),
    )


def _call_from_row(row: tuple) -> Call:
    return Call(
        id=row[0],
        caller_id=row[1],
        receiver_id=row[2],
        status=CallStatus(row[3]),
        start_time=parse_timestamp(row[4]),
        end_time=parse_timestamp(row[5]) if row[5] else None,
    )


def _user_from_row(row: tuple) -> User:
    return User(
        id=row[0],
        first_name=row[1],
        last_name=row[2],
        email=row[3],
        created_at=parse_timestamp(row[4]),
        online=bool(row[5]),
        last_seen=parse_timestamp(row[6]) if row[6] else None,
        avatar=row[7],
    )


_MESSAGE_COLUMNS = "id, sender_id, receiver_id, content, timestamp, read"
_CALL_COLUMNS = "id, caller_id, receiver_id, status, start_time, end_time"
_USER_COLUMNS = (
    "id, first_name, last_name, email, created_at, online, last_seen, avatar"
)


class IStorage(Protocol):
    """Shared event store for messages, calls, users and the broadcast log."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Messages
    async def save_message(self, message: ChatMessage) -> None:
        """Append a message."""
        ...

    async def get_messages_between(self, user_a: str, user_b: str) -> list[ChatMessage]:
        """Messages exchanged between two users, oldest first."""
        ...

    async def get_unread_messages(
        self, receiver_id: str, since: datetime | None = None
    ) -> list[ChatMessage]:
        """Unread messages for a receiver, optionally newer than `since`."""
        ...

    async def mark_messages_read(self, message_ids: list[str]) -> int:
        """Set read flag on the given messages. Returns rows changed."""
        ...

    async def mark_conversation_read(self, sender_id: str, receiver_id: str) -> int:
        """Set read flag on everything sender sent to receiver. Returns rows changed."""
        ...

    # Calls
    async def save_call(self, call: Call) -> None:
        """Insert or overwrite a call."""
        ...

    async def get_call(self, call_id: str) -> Call | None:
        """Get a call by ID."""
        ...

    async def get_ringing_calls(
        self, receiver_id: str, since: datetime | None = None
    ) -> list[Call]:
        """Ringing calls for a receiver, optionally started after `since`."""
        ...

    async def get_active_calls(self, user_id: str) -> list[Call]:
        """Calls involving the user that have not ended."""
        ...

    # Users
    async def get_users(self) -> list[User]:
        """All users in the local directory copy."""
        ...

    async def save_users(self, users: list[User]) -> None:
        """Replace the local directory copy."""
        ...

    # Broadcasts
    async def write_broadcast(self, value: str) -> int:
        """Append a broadcast. Returns its seq."""
        ...

    async def read_broadcast(self) -> str | None:
        """Newest broadcast still present, if any."""
        ...

    async def read_broadcasts(self, after_seq: int) -> list[tuple[int, str]]:
        """Broadcasts with seq above after_seq, oldest first."""
        ...

    async def latest_broadcast_seq(self) -> int:
        """Highest seq handed out so far (0 if none)."""
        ...

    async def clear_broadcast(self, seq: int | None = None) -> bool:
        """Delete one broadcast by seq, or all of them."""
        ...

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        ...

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


class Storage:
    """SQLite storage implementation."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> str | Path:
        """Resolved database location."""
        return self._db_path

    async def init(self) -> None:
        """Initialize database and create tables."""
        self._conn = await aiosqlite.connect(self._db_path)

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Storage not initialized")
        return self._conn

    # Messages
    async def save_message(self, message: ChatMessage) -> None:
        """Append a message."""
        conn = self._require_conn()

        await conn.execute(
            """
            INSERT INTO messages (id, sender_id, receiver_id, content, timestamp, read)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                message.id,
                message.sender_id,
                message.receiver_id,
                message.content,
                _ts(message.timestamp),
                int(message.read),
            ),
        )
        await conn.commit()

    async def get_messages_between(self, user_a: str, user_b: str) -> list[ChatMessage]:
        """Messages exchanged between two users, oldest first."""
        conn = self._require_conn()

        cursor = await conn.execute(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages
            WHERE (sender_id = ? AND receiver_id = ?)
               OR (sender_id = ? AND receiver_id = ?)
            ORDER BY timestamp ASC, seq ASC
            """,
            (user_a, user_b, user_b, user_a),
        )
        rows = await cursor.fetchall()
        return _decode_rows(rows, _message_from_row, "message")

    async def get_unread_messages(
        self, receiver_id: str, since: datetime | None = None
    ) -> list[ChatMessage]:
        """Unread messages for a receiver, optionally newer than `since`."""
        conn = self._require_conn()

        conditions = ["receiver_id = ?", "read = 0"]
        params: list = [receiver_id]
        if since:
            conditions.append("timestamp > ?")
            params.append(_ts(since))

        cursor = await conn.execute(
            f"""
            SELECT {_MESSAGE_COLUMNS}
            FROM messages
            WHERE {' AND '.join(conditions)}
            ORDER BY timestamp ASC, seq ASC
            """,
            params,
        )
        rows = await cursor.fetchall()
        return _decode_rows(rows, _message_from_row, "message")

    async def mark_messages_read(self, message_ids: list[str]) -> int:
        """Set read flag on the given messages. Returns rows changed."""
        conn = self._require_conn()
        if not message_ids:
            return 0

        placeholders = ",".join("?" * len(message_ids))
        cursor = await conn.execute(
            f"UPDATE messages SET read = 1 WHERE read = 0 AND id IN ({placeholders})",
            message_ids,
        )
        await conn.commit()
        return cursor.rowcount

    async def mark_conversation_read(self, sender_id: str, receiver_id: str) -> int:
        """Set read flag on everything sender sent to receiver. Returns rows changed."""
        conn = self._require_conn()

        cursor = await conn.execute(
            """
            UPDATE messages SET read = 1
            WHERE sender_id = ? AND receiver_id = ? AND read = 0
            """,
            (sender_id, receiver_id),
        )
        await conn.commit()
        return cursor.rowcount

    # Calls
    async def save_call(self, call: Call) -> None:
        """Insert or overwrite a call."""
        conn = self._require_conn()

        await conn.execute(
            """
            INSERT OR REPLACE INTO calls
            (id, caller_id, receiver_id, status, start_time, end_time)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                call.id,
                call.caller_id,
                call.receiver_id,
                call.status.value,
                _ts(call.start_time),
                _ts(call.end_time) if call.end_time else None,
            ),
        )
        await conn.commit()

    async def get_call(self, call_id: str) -> Call | None:
        """Get a call by ID."""
        conn = self._require_conn()

        cursor = await conn.execute(
            f"SELECT {_CALL_COLUMNS} FROM calls WHERE id = ?",
            (call_id,),
        )
        row = await cursor.fetchone()

        if not row:
            return None

        calls = _decode_rows([row], _call_from_row, "call")
        return calls[0] if calls else None

    async def get_ringing_calls(
        self, receiver_id: str, since: datetime | None = None
    ) -> list[Call]:
        """Ringing calls for a receiver, optionally started after `since`."""
        conn = self._require_conn()

        conditions = ["receiver_id = ?", "status = ?"]
        params: list = [receiver_id, CallStatus.RINGING.value]
        if since:
            conditions.append("start_time > ?")
            params.append(_ts(since))

        cursor = await conn.execute(
            f"""
            SELECT {_CALL_COLUMNS}
            FROM calls
            WHERE {' AND '.join(conditions)}
            ORDER BY start_time ASC
            """,
            params,
        )
        rows = await cursor.fetchall()
        return _decode_rows(rows, _call_from_row, "call")

    async def get_active_calls(self, user_id: str) -> list[Call]:
        """Calls involving the user that have not ended."""
        conn = self._require_conn()

        cursor = await conn.execute(
            f"""
            SELECT {_CALL_COLUMNS}
            FROM calls
            WHERE (caller_id = ? OR receiver_id = ?) AND status != ?
            ORDER BY start_time ASC
            """,
            (user_id, user_id, CallStatus.ENDED.value),
        )
        rows = await cursor.fetchall()
        return _decode_rows(rows, _call_from_row, "call")

    # Users
    async def get_users(self) -> list[User]:
        """All users in the local directory copy."""
        conn = self._require_conn()

        cursor = await conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users ORDER BY created_at ASC, id ASC"
        )
        rows = await cursor.fetchall()
        return _decode_rows(rows, _user_from_row, "user")

    async def save_users(self, users: list[User]) -> None:
        """Replace the local directory copy."""
        conn = self._require_conn()

        await conn.execute("DELETE FROM users")
        await conn.executemany(
            f"""
            INSERT INTO users ({_USER_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    user.id,
                    user.first_name,
                    user.last_name,
                    user.email,
                    _ts(user.created_at),
                    int(user.online),
                    _ts(user.last_seen) if user.last_seen else None,
                    user.avatar,
                )
                for user in users
            ],
        )
        await conn.commit()

    # Broadcasts
    async def write_broadcast(self, value: str) -> int:
        """Append a broadcast. Returns its seq."""
        conn = self._require_conn()

        cursor = await conn.execute(
            "INSERT INTO broadcasts (value, created_at) VALUES (?, ?)",
            (value, _ts(datetime.now(timezone.utc))),
        )
        await conn.commit()
        return cursor.lastrowid

    async def read_broadcast(self) -> str | None:
        """Newest broadcast still present, if any."""
        conn = self._require_conn()

        cursor = await conn.execute(
            "SELECT value FROM broadcasts ORDER BY seq DESC LIMIT 1"
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def read_broadcasts(self, after_seq: int) -> list[tuple[int, str]]:
        """Broadcasts with seq above after_seq, oldest first."""
        conn = self._require_conn()

        cursor = await conn.execute(
            "SELECT seq, value FROM broadcasts WHERE seq > ? ORDER BY seq ASC",
            (after_seq,),
        )
        rows = await cursor.fetchall()
        return [(row[0], row[1]) for row in rows]

    async def latest_broadcast_seq(self) -> int:
        """Highest seq handed out so far (0 if none)."""
        conn = self._require_conn()

        # sqlite_sequence survives deletes, MAX(seq) does not
        cursor = await conn.execute(
            "SELECT seq FROM sqlite_sequence WHERE name = 'broadcasts'"
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def clear_broadcast(self, seq: int | None = None) -> bool:
        """Delete one broadcast by seq, or all of them."""
        conn = self._require_conn()

        if seq is None:
            cursor = await conn.execute("DELETE FROM broadcasts")
        else:
            cursor = await conn.execute("DELETE FROM broadcasts WHERE seq = ?", (seq,))
        await conn.commit()
        return cursor.rowcount > 0

    # TraceEvents
    async def save_trace_event(self, event: TraceEvent) -> None:
        """Save a trace event."""
        conn = self._require_conn()

        await conn.execute(
            """
            INSERT INTO trace_events (id, event_type, actor, data, timestamp)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                event.id or str(uuid.uuid4()),
                event.event_type,
                event.actor,
                json.dumps(event.data),
                _ts(event.timestamp),
            ),
        )
        await conn.commit()

    async def get_trace_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters (newest first)."""
        conn = self._require_conn()

        conditions = []
        params: list = []

        if after:
            conditions.append("timestamp > ?")
            params.append(_ts(after))
        if event_types:
            placeholders = ",".join("?" * len(event_types))
            conditions.append(f"event_type IN ({placeholders})")
            params.extend(event_types)
        if actor:
            conditions.append("actor = ?")
            params.append(actor)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT id, event_type, actor, data, timestamp
            FROM trace_events
            {where_clause}
            ORDER BY timestamp DESC
            LIMIT ?
        """
        params.append(limit)

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        return _decode_rows(
            rows,
            lambda row: TraceEvent(
                id=row[0],
                event_type=row[1],
                actor=row[2],
                data=json.loads(row[3]),
                timestamp=parse_timestamp(row[4]),
            ),
            "trace event",
        )

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        conn = self._require_conn()

        tables = [
            "messages",
            "calls",
            "users",
            "broadcasts",
            "trace_events",
        ]

        for table in tables:
            await conn.execute(f"DELETE FROM {table}")

        await conn.commit()
