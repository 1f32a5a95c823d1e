"""Session module."""

from .inbox import Inbox
from .session import ISession, Session, SessionState

__all__ = ["ISession", "Inbox", "Session", "SessionState"]
