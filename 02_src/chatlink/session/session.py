"""Session: one user's logical connection to the messaging layer."""

import asyncio
import contextlib
import uuid
from enum import Enum
from typing import Protocol

import aiosqlite

from ..calls import start_call, transition
from ..config import SessionConfig
from ..delivery import CrossContextRelay, DeliveryPoller
from ..directory import IUserDirectory
from ..errors import CallConflictError, SessionNotInitializedError
from ..event_bus import EventBus, EventHandler, Unsubscribe
from ..logging_config import get_logger
from ..models import (
    Call,
    CallStatus,
    ChatMessage,
    Event,
    EventPayload,
    EventType,
    User,
    UserStatus,
    new_id,
    utcnow,
)
from ..presence import PresenceTracker
from ..storage import IStorage
from ..tracker import ITracker

logger = get_logger(__name__)


class SessionState(str, Enum):
    """Session lifecycle states."""

    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    DISCONNECTED = "disconnected"


class ISession(Protocol):
    """Operations the UI layer uses for one connected user."""

    async def initialize(self, user_id: str) -> None:
        """Become active for user_id: presence online, poller and relay running."""
        ...

    async def disconnect(self) -> None:
        """Presence offline, stop poller and relay, drop subscriptions."""
        ...

    def subscribe(self, event_type: EventType, handler: EventHandler) -> Unsubscribe:
        """Listen for one event type on this session."""
        ...

    async def send_message(self, receiver_id: str, content: str) -> ChatMessage:
        """Store a message and notify the receiver."""
        ...

    async def get_messages_between_users(
        self, user_a: str, user_b: str
    ) -> list[ChatMessage]:
        """Conversation between two users, oldest first."""
        ...

    async def mark_messages_as_read(self, sender_id: str) -> int:
        """Mark everything sender_id sent to the local user as read."""
        ...

    async def initiate_call(self, receiver_id: str) -> Call:
        """Start ringing receiver_id."""
        ...

    async def accept_call(self, call_id: str) -> Call | None:
        """ringing -> ongoing."""
        ...

    async def reject_call(self, call_id: str) -> Call | None:
        """ringing -> ended, caller is told it was rejected."""
        ...

    async def end_call(self, call_id: str) -> Call | None:
        """Any non-ended call -> ended."""
        ...

    async def get_active_call(self) -> Call | None:
        """The local user's call that has not ended, if any."""
        ...


class Session:
    """A single user's connection: event bus, poller, relay, presence and calls.

    Storage, directory and tracker are injected and may be shared with other
    sessions (in this process or another one using the same database file).
    """

    def __init__(
        self,
        storage: IStorage,
        directory: IUserDirectory,
        tracker: ITracker | None = None,
        config: SessionConfig | None = None,
        session_id: str | None = None,
    ):
        self.id = session_id or str(uuid.uuid4())
        self._storage = storage
        self._tracker = tracker
        self._config = config or SessionConfig.from_env()

        self._bus = EventBus()
        self._presence = PresenceTracker(directory)
        self._directory = directory
        self._poller = DeliveryPoller(storage, self._config, self._bus.publish)
        self._relay = CrossContextRelay(storage, self._config, self._deliver_relayed)

        self._state = SessionState.UNINITIALIZED
        self._user_id: str | None = None
        # Bumped on every initialize/disconnect; in-flight work from an older
        # epoch must not touch shared state.
        self._epoch = 0
        self._poll_task: asyncio.Task | None = None

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def user_id(self) -> str | None:
        """User this session is active for."""
        return self._user_id

    @property
    def is_active(self) -> bool:
        """True between initialize() and disconnect()."""
        return self._state is SessionState.ACTIVE

    @property
    def bus(self) -> EventBus:
        """The session's local event bus."""
        return self._bus

    @property
    def relay(self) -> CrossContextRelay:
        """The session's cross-context relay."""
        return self._relay

    def _is_current(self, epoch: int) -> bool:
        return self._state is SessionState.ACTIVE and self._epoch == epoch

    def _require_active(self) -> str:
        if not self.is_active or self._user_id is None:
            raise SessionNotInitializedError("Session not initialized")
        return self._user_id

    # Lifecycle
    async def initialize(self, user_id: str) -> None:
        """Become active for user_id: presence online, poller and relay running."""
        if self.is_active:
            if self._user_id == user_id:
                return
            await self.disconnect()

        self._epoch += 1
        epoch = self._epoch
        self._user_id = user_id
        self._state = SessionState.ACTIVE

        # No announcement: nobody has subscribed yet.
        await self._presence.update_user_status(user_id, True)

        self._poll_task = asyncio.create_task(self._poll_loop(user_id, epoch))
        await self._relay.start(user_id)

        logger.info(
            "Session initialized for user %s",
            user_id,
            extra={"session_id": self.id, "user_id": user_id},
        )
        await self._track("session_initialized", {"session_id": self.id})

    async def disconnect(self) -> None:
        """Presence offline, stop poller and relay, drop subscriptions."""
        if not self.is_active:
            return

        user_id = self._user_id
        self._state = SessionState.DISCONNECTED
        self._epoch += 1

        await self._presence.update_user_status(user_id, False)

        task, self._poll_task = self._poll_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self._relay.stop()
        self._bus.clear()

        logger.info(
            "Session disconnected for user %s",
            user_id,
            extra={"session_id": self.id, "user_id": user_id},
        )
        await self._track("session_disconnected", {"session_id": self.id}, user_id)
        self._user_id = None

    async def _poll_loop(self, user_id: str, epoch: int) -> None:
        """Background poller. Exits when the epoch it was started for is over."""

        def still_current() -> bool:
            return self._is_current(epoch)

        try:
            while still_current():
                await asyncio.sleep(self._config.poll_interval)
                if not still_current():
                    break
                try:
                    await self._tick(user_id, still_current)
                except Exception as e:
                    logger.error(
                        "Poll tick error for %s: %s", user_id, e, exc_info=True
                    )
        except asyncio.CancelledError:
            if still_current():
                # Cancelled by event loop shutdown rather than disconnect().
                await self._on_abnormal_exit(user_id)
            raise

    async def _on_abnormal_exit(self, user_id: str) -> None:
        self._state = SessionState.DISCONNECTED
        self._epoch += 1
        logger.warning(
            "Session for %s torn down without disconnect, marking offline",
            user_id,
            extra={"session_id": self.id, "user_id": user_id},
        )
        await self._presence.update_user_status(user_id, False)
        await self._relay.stop()
        self._bus.clear()
        self._user_id = None

    # Delivery
    def subscribe(self, event_type: EventType, handler: EventHandler) -> Unsubscribe:
        """Listen for one event type on this session."""
        return self._bus.subscribe(event_type, handler)

    async def poll(self) -> int:
        """Run one poller tick now. Returns number of events published."""
        if not self.is_active or self._user_id is None:
            return 0
        epoch = self._epoch
        return await self._tick(self._user_id, lambda: self._is_current(epoch))

    async def _tick(self, user_id: str, still_current) -> int:
        delivered = await self._poller.tick(user_id, still_current)
        if delivered:
            await self._track(
                "poll_delivered", {"count": delivered}, actor=f"poller:{user_id}"
            )
        return delivered

    async def _deliver_relayed(self, event: Event) -> None:
        if self._tracker:
            await self._tracker.track_event(
                "event_relayed", f"relay:{self._user_id}", event
            )
        await self._bus.publish(event)

    async def emit(
        self,
        event_type: EventType,
        data: EventPayload,
        receiver_id: str | None = None,
    ) -> Event | None:
        """Broadcast an event from the local user.

        Returns None (and logs) when the session is not active. Events addressed
        to the local user, or to nobody in particular, are also published on the
        local bus.
        """
        event_type = EventType(event_type)
        if not self.is_active or self._user_id is None:
            logger.warning(
                "Session not initialized. Event %s not emitted.",
                event_type.value,
                extra={"session_id": self.id, "event_type": event_type.value},
            )
            return None

        event = Event(
            type=event_type,
            data=data,
            timestamp=utcnow(),
            sender_id=self._user_id,
            receiver_id=receiver_id,
        )

        await self._relay.broadcast(event)
        if self._tracker:
            await self._tracker.track_event(
                "event_emitted", f"session:{self._user_id}", event
            )
        if event.is_for(self._user_id):
            await self._bus.publish(event)
        return event

    # Messages
    async def send_message(self, receiver_id: str, content: str) -> ChatMessage:
        """Store a message and notify the receiver."""
        user_id = self._require_active()

        message = ChatMessage(
            id=new_id(),
            sender_id=user_id,
            receiver_id=receiver_id,
            content=content,
            timestamp=utcnow(),
            read=False,
        )

        try:
            await self._storage.save_message(message)
        except aiosqlite.Error as e:
            logger.error("Error saving message: %s", e, exc_info=True)

        await self.emit(EventType.MESSAGE, message, receiver_id)
        return message

    async def get_messages_between_users(
        self, user_a: str, user_b: str
    ) -> list[ChatMessage]:
        """Conversation between two users, oldest first."""
        try:
            return await self._storage.get_messages_between(user_a, user_b)
        except aiosqlite.Error as e:
            logger.error("Error getting messages: %s", e, exc_info=True)
            return []

    async def mark_messages_as_read(self, sender_id: str) -> int:
        """Mark everything sender_id sent to the local user as read."""
        if not self.is_active or self._user_id is None:
            return 0

        try:
            return await self._storage.mark_conversation_read(sender_id, self._user_id)
        except aiosqlite.Error as e:
            logger.error("Error marking messages as read: %s", e, exc_info=True)
            return 0

    # Calls
    async def initiate_call(self, receiver_id: str) -> Call:
        """Start ringing receiver_id.

        Raises CallConflictError if either side already has a call that has
        not ended.
        """
        user_id = self._require_active()

        for participant in (user_id, receiver_id):
            active = await self._active_calls(participant)
            if active:
                raise CallConflictError(participant, active[0].id)

        call = start_call(user_id, receiver_id)
        await self._save_call(call)
        await self.emit(EventType.CALL_REQUEST, call, receiver_id)
        return call

    async def accept_call(self, call_id: str) -> Call | None:
        """ringing -> ongoing. None if the call is unknown or already ended."""
        call = await self._load_call(call_id)
        if call is None or call.status is CallStatus.ENDED:
            return None
        if call.status is CallStatus.ONGOING:
            return call

        call = transition(call, CallStatus.ONGOING)
        await self._save_call(call)
        await self.emit(EventType.CALL_ACCEPT, call, call.caller_id)
        return call

    async def reject_call(self, call_id: str) -> Call | None:
        """ringing -> ended. None unless the call exists and is still ringing."""
        call = await self._load_call(call_id)
        if call is None or call.status is not CallStatus.RINGING:
            return None

        call = transition(call, CallStatus.ENDED)
        await self._save_call(call)
        await self.emit(EventType.CALL_REJECT, call, call.caller_id)
        return call

    async def end_call(self, call_id: str) -> Call | None:
        """Any non-ended call -> ended. None if unknown or already ended."""
        call = await self._load_call(call_id)
        if call is None or call.status is CallStatus.ENDED:
            return None

        call = transition(call, CallStatus.ENDED)
        await self._save_call(call)

        if self._user_id is not None:
            await self.emit(EventType.CALL_END, call, call.other_party(self._user_id))
        return call

    async def get_active_call(self) -> Call | None:
        """The local user's call that has not ended, if any."""
        if not self.is_active or self._user_id is None:
            return None

        calls = await self._active_calls(self._user_id)
        if len(calls) > 1:
            logger.warning(
                "User %s has %d active calls", self._user_id, len(calls)
            )
        return calls[0] if calls else None

    async def _active_calls(self, user_id: str) -> list[Call]:
        try:
            return await self._storage.get_active_calls(user_id)
        except aiosqlite.Error as e:
            logger.error("Error getting calls: %s", e, exc_info=True)
            return []

    async def _load_call(self, call_id: str) -> Call | None:
        try:
            return await self._storage.get_call(call_id)
        except aiosqlite.Error as e:
            logger.error("Error getting call %s: %s", call_id, e, exc_info=True)
            return None

    async def _save_call(self, call: Call) -> None:
        try:
            await self._storage.save_call(call)
        except aiosqlite.Error as e:
            logger.error("Error saving call %s: %s", call.id, e, exc_info=True)

        await self._track(
            "call_transition",
            {
                "call_id": call.id,
                "status": call.status.value,
                "caller_id": call.caller_id,
                "receiver_id": call.receiver_id,
            },
        )

    # Presence
    async def update_user_status(self, user_id: str, online: bool) -> User | None:
        """Set a user's presence; announce it only while this session is active."""
        announce = self._announce_status if self.is_active else None
        return await self._presence.update_user_status(user_id, online, announce)

    async def _announce_status(self, status: UserStatus) -> None:
        await self.emit(EventType.USER_STATUS, status)

    async def get_users(self) -> list[User]:
        """All users known to the directory."""
        return await self._directory.get_users()

    # Tracing
    async def _track(
        self,
        event_type: str,
        data: dict,
        user_id: str | None = None,
        actor: str | None = None,
    ) -> None:
        if not self._tracker:
            return
        actor = actor or f"session:{user_id or self._user_id}"
        await self._tracker.track(event_type, actor, data)
