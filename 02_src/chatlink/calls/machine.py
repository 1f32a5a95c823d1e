"""Call lifecycle state machine."""

from dataclasses import replace
from datetime import datetime

from ..errors import InvalidCallTransition
from ..models import Call, CallStatus, new_id, utcnow

# ENDED is terminal.
TRANSITIONS: dict[CallStatus, frozenset[CallStatus]] = {
    CallStatus.RINGING: frozenset({CallStatus.ONGOING, CallStatus.ENDED}),
    CallStatus.ONGOING: frozenset({CallStatus.ENDED}),
    CallStatus.ENDED: frozenset(),
}


def can_transition(current: CallStatus, target: CallStatus) -> bool:
    """Check whether current -> target is a legal move."""
    return target in TRANSITIONS[current]


def start_call(caller_id: str, receiver_id: str, now: datetime | None = None) -> Call:
    """Create a new ringing call."""
    return Call(
        id=new_id(),
        caller_id=caller_id,
        receiver_id=receiver_id,
        status=CallStatus.RINGING,
        start_time=now or utcnow(),
    )


def transition(call: Call, target: CallStatus, now: datetime | None = None) -> Call:
    """Return a copy of call moved to target.

    end_time is stamped on the move to ENDED and never before start_time.
    Raises InvalidCallTransition for moves not in TRANSITIONS.
    """
    if not can_transition(call.status, target):
        raise InvalidCallTransition(
            f"Call {call.id}: {call.status.value} -> {target.value} not allowed"
        )

    if target is CallStatus.ENDED:
        end_time = max(now or utcnow(), call.start_time)
        return replace(call, status=target, end_time=end_time)
    return replace(call, status=target)
