"""Poll-based delivery: replays recent store rows as bus events."""

from datetime import timedelta
from typing import Awaitable, Callable

import aiosqlite

from ..config import SessionConfig
from ..logging_config import get_logger
from ..models import Event, EventType, utcnow
from ..storage import IStorage

logger = get_logger(__name__)

Dispatch = Callable[[Event], Awaitable[None]]
StillCurrent = Callable[[], bool]


class DeliveryPoller:
    """Rescans the store for events addressed to one user.

    Stands in for a push channel: unread messages and ringing calls inside
    the recency windows are published again on every tick. Consumers
    de-duplicate by payload id.
    """

    def __init__(self, storage: IStorage, config: SessionConfig, dispatch: Dispatch):
        self._storage = storage
        self._config = config
        self._dispatch = dispatch

    async def tick(self, user_id: str, still_current: StillCurrent) -> int:
        """Run one scan for user_id. Returns number of events published.

        still_current() is re-checked after every suspension; once it turns
        False the tick stops without persisting read flags.
        """
        if not still_current():
            return 0

        delivered = 0
        now = utcnow()
        try:
            messages = await self._storage.get_unread_messages(
                user_id,
                since=now - timedelta(seconds=self._config.message_recency_window),
            )

            read_ids = []
            for message in messages:
                if not still_current():
                    logger.info("Stale poll tick for %s aborted", user_id)
                    return delivered
                await self._dispatch(
                    Event(
                        type=EventType.MESSAGE,
                        data=message,
                        timestamp=message.timestamp,
                        sender_id=message.sender_id,
                        receiver_id=message.receiver_id,
                    )
                )
                delivered += 1
                message.read = True
                read_ids.append(message.id)

            if read_ids:
                if not still_current():
                    logger.info("Stale poll tick for %s aborted", user_id)
                    return delivered
                await self._storage.mark_messages_read(read_ids)

            calls = await self._storage.get_ringing_calls(
                user_id,
                since=now - timedelta(seconds=self._config.call_recency_window),
            )
            for call in calls:
                if not still_current():
                    return delivered
                await self._dispatch(
                    Event(
                        type=EventType.CALL_REQUEST,
                        data=call,
                        timestamp=call.start_time,
                        sender_id=call.caller_id,
                        receiver_id=call.receiver_id,
                    )
                )
                delivered += 1

        except aiosqlite.Error as e:
            logger.error(
                "Error polling for events: %s", e, exc_info=True, extra={"user_id": user_id}
            )

        return delivered
