"""Cross-context relay through the shared broadcast log."""

import asyncio
import contextlib
from typing import Awaitable, Callable

from ..config import SessionConfig
from ..logging_config import get_logger
from ..models import Event, decode_event, encode_event
from ..storage import IStorage

logger = get_logger(__name__)

Deliver = Callable[[Event], Awaitable[None]]


class CrossContextRelay:
    """Carries events between execution contexts that share one Storage.

    Every outbound event is appended to the broadcast log under a new seq and
    deleted shortly after. Inbound, a watcher relays every entry whose seq is
    above the last one it saw, so back-to-back emissions are all delivered.
    """

    def __init__(self, storage: IStorage, config: SessionConfig, deliver: Deliver):
        self._storage = storage
        self._config = config
        self._deliver = deliver

        self._user_id: str | None = None
        self._last_seq = 0
        self._lock = asyncio.Lock()
        self._watch_task: asyncio.Task | None = None
        self._pending_clears: dict[asyncio.Task, int] = {}

    @property
    def listening(self) -> bool:
        """True while inbound events are being watched for."""
        return self._user_id is not None

    # Outbound
    async def broadcast(self, event: Event) -> bool:
        """Append event to the log and schedule its removal. False if the write failed."""
        try:
            seq = await self._storage.write_broadcast(encode_event(event))
        except Exception as e:
            logger.error(
                "Broadcast of %s failed: %s",
                event.type.value,
                e,
                exc_info=True,
                extra={"event_type": event.type.value},
            )
            return False

        task = asyncio.create_task(self._clear_later(seq))
        self._pending_clears[task] = seq
        task.add_done_callback(lambda t: self._pending_clears.pop(t, None))
        return True

    async def _clear_later(self, seq: int) -> None:
        await asyncio.sleep(self._config.broadcast_clear_delay)
        try:
            await self._storage.clear_broadcast(seq)
        except Exception as e:
            logger.warning("Failed to clear broadcast %s: %s", seq, e)

    # Inbound
    async def start(self, user_id: str) -> None:
        """Begin watching the log on behalf of user_id."""
        await self.stop()
        self._user_id = user_id
        try:
            # Entries already written predate this listener.
            self._last_seq = await self._storage.latest_broadcast_seq()
        except Exception as e:
            logger.warning("Could not read broadcast log: %s", e)
            self._last_seq = 0
        self._watch_task = asyncio.create_task(self._watch())

    async def stop(self) -> None:
        """Stop watching and flush pending clears."""
        self._user_id = None
        task, self._watch_task = self._watch_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        pending = list(self._pending_clears.items())
        self._pending_clears.clear()
        for clear_task, seq in pending:
            clear_task.cancel()
            try:
                await self._storage.clear_broadcast(seq)
            except Exception as e:
                logger.warning("Failed to clear broadcast %s: %s", seq, e)

    async def check(self) -> bool:
        """Relay every entry written since the last check. True if any event was delivered."""
        async with self._lock:
            entries = await self._storage.read_broadcasts(self._last_seq)
            if not entries:
                return False
            self._last_seq = entries[-1][0]

        delivered = False
        for _, value in entries:
            if self._user_id is None:
                break
            if await self._handle(value):
                delivered = True
        return delivered

    async def _handle(self, value: str) -> bool:
        try:
            event = decode_event(value)
        except ValueError as e:
            logger.error("Error handling broadcast: %s", e)
            return False

        if event.sender_id == self._user_id:
            return False
        if not event.is_for(self._user_id):
            return False

        await self._deliver(event)
        return True

    async def _watch(self) -> None:
        while self._user_id is not None:
            try:
                await asyncio.sleep(self._config.relay_watch_interval)
                await self.check()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Relay watch error: %s", e, exc_info=True)
