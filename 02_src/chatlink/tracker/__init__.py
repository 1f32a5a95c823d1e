"""Tracker module."""

from .tracker import ITracker, Tracker, summarize_event

__all__ = ["ITracker", "Tracker", "summarize_event"]
