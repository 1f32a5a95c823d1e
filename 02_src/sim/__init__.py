"""Traffic simulator for the chatlink HTTP API."""

from .sim import ISim, Sim

__all__ = ["ISim", "Sim"]
