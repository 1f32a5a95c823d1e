"""EventBus implementation for in-session pub/sub."""

from typing import Awaitable, Callable, Protocol

from ..logging_config import get_logger
from ..models import Event, EventType

logger = get_logger(__name__)


EventHandler = Callable[[Event], Awaitable[None]]
Unsubscribe = Callable[[], None]


class IEventBus(Protocol):
    """In-memory pub/sub delivering Events to local handlers."""

    def subscribe(self, event_type: EventType, handler: EventHandler) -> Unsubscribe:
        """Register handler for one event type. Returns a callable that removes it."""
        ...

    async def publish(self, event: Event) -> None:
        """Call every handler registered for event.type, in registration order."""
        ...

    def clear(self) -> None:
        """Drop all subscriptions."""
        ...


class _Subscription:
    """One registration; identity distinguishes repeated handlers."""

    __slots__ = ("handler",)

    def __init__(self, handler: EventHandler):
        self.handler = handler


class EventBus:
    """In-memory pub/sub event bus."""

    def __init__(self):
        self._subscribers: dict[EventType, list[_Subscription]] = {
            event_type: [] for event_type in EventType
        }

    def subscribe(self, event_type: EventType, handler: EventHandler) -> Unsubscribe:
        """Register handler for one event type. Returns a callable that removes it."""
        subscription = _Subscription(handler)
        self._subscribers[EventType(event_type)].append(subscription)

        def unsubscribe() -> None:
            handlers = self._subscribers[EventType(event_type)]
            for i, existing in enumerate(handlers):
                if existing is subscription:
                    del handlers[i]
                    return

        return unsubscribe

    async def publish(self, event: Event) -> None:
        """Call every handler registered for event.type, in registration order."""
        # Snapshot: (un)subscribing from inside a handler affects the next publish only
        handlers = list(self._subscribers.get(event.type, []))

        for i, subscription in enumerate(handlers):
            try:
                await subscription.handler(event)
            except Exception as e:
                logger.error(
                    "Error in %s handler %s: %s",
                    event.type.value,
                    i,
                    e,
                    exc_info=True,
                    extra={"event_type": event.type.value},
                )

    def clear(self) -> None:
        """Drop all subscriptions."""
        for handlers in self._subscribers.values():
            handlers.clear()

    def handler_count(self, event_type: EventType | None = None) -> int:
        """Number of registrations for one type, or for all types."""
        if event_type is not None:
            return len(self._subscribers[EventType(event_type)])
        return sum(len(handlers) for handlers in self._subscribers.values())
