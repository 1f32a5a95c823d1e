"""Call state machine module."""

from .machine import TRANSITIONS, can_transition, start_call, transition

__all__ = ["TRANSITIONS", "can_transition", "start_call", "transition"]
