"""Delivery simulator: store poller and cross-context relay."""

from .poller import DeliveryPoller
from .relay import CrossContextRelay

__all__ = ["CrossContextRelay", "DeliveryPoller"]
