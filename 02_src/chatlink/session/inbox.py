"""Inbox: buffers a session's delivered events for clients that poll."""

from collections import deque

from ..event_bus import IEventBus, Unsubscribe
from ..models import Event, EventType


class Inbox:
    """Collects events from a bus, dropping repeats of the same (type, payload id).

    The poller and the relay may both deliver one logical event; clients
    draining the inbox see it once.
    """

    def __init__(self, max_events: int = 500, seen_limit: int = 2000):
        self._events: deque[Event] = deque(maxlen=max_events)
        self._seen: set[tuple[str, str]] = set()
        self._seen_order: deque[tuple[str, str]] = deque()
        self._seen_limit = seen_limit
        self._unsubscribes: list[Unsubscribe] = []

    def attach(self, bus: IEventBus) -> None:
        """Subscribe to every event type on bus."""
        self.detach()
        for event_type in EventType:
            self._unsubscribes.append(bus.subscribe(event_type, self._receive))

    def detach(self) -> None:
        """Remove this inbox's subscriptions."""
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes.clear()

    async def _receive(self, event: Event) -> None:
        key = (event.type.value, event.payload_id)
        if key in self._seen:
            return

        self._seen.add(key)
        self._seen_order.append(key)
        if len(self._seen_order) > self._seen_limit:
            self._seen.discard(self._seen_order.popleft())

        self._events.append(event)

    def drain(self) -> list[Event]:
        """Return and forget buffered events, oldest first."""
        events = list(self._events)
        self._events.clear()
        return events

    def __len__(self) -> int:
        return len(self._events)
