"""Presence module."""

from .presence import PresenceTracker

__all__ = ["PresenceTracker"]
