"""chatlink: messaging, presence and call signalling between user sessions."""

from .app import Application, IApplication
from .config import SessionConfig
from .delivery import CrossContextRelay, DeliveryPoller
from .directory import IUserDirectory, UserDirectory
from .errors import CallConflictError, InvalidCallTransition, SessionNotInitializedError
from .event_bus import EventBus, IEventBus
from .models import (
    Call,
    CallStatus,
    ChatMessage,
    Event,
    EventType,
    TraceEvent,
    User,
    UserStatus,
)
from .presence import PresenceTracker
from .session import Inbox, ISession, Session, SessionState
from .storage import IStorage, Storage
from .tracker import ITracker, Tracker

__all__ = [
    # Application
    "Application",
    "IApplication",
    "SessionConfig",
    # Models
    "ChatMessage",
    "User",
    "Call",
    "CallStatus",
    "Event",
    "EventType",
    "UserStatus",
    "TraceEvent",
    # Errors
    "SessionNotInitializedError",
    "CallConflictError",
    "InvalidCallTransition",
    # Components
    "IStorage",
    "Storage",
    "IUserDirectory",
    "UserDirectory",
    "IEventBus",
    "EventBus",
    "PresenceTracker",
    "DeliveryPoller",
    "CrossContextRelay",
    "ITracker",
    "Tracker",
    "ISession",
    "Session",
    "SessionState",
    "Inbox",
]
