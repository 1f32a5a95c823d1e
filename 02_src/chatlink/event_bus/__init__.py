"""EventBus module."""

from .event_bus import EventBus, EventHandler, IEventBus, Unsubscribe

__all__ = ["EventBus", "EventHandler", "IEventBus", "Unsubscribe"]
