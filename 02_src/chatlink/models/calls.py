"""Call-related data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class CallStatus(str, Enum):
    """Call lifecycle states."""

    RINGING = "ringing"
    ONGOING = "ongoing"
    ENDED = "ended"


@dataclass
class Call:
    """A one-to-one call between caller and receiver."""

    id: str
    caller_id: str
    receiver_id: str
    status: CallStatus
    start_time: datetime
    end_time: datetime | None = None  # set only when status becomes ENDED

    def involves(self, user_id: str) -> bool:
        """Check whether user takes part in this call."""
        return user_id in (self.caller_id, self.receiver_id)

    def other_party(self, user_id: str) -> str:
        """Return the participant that is not user_id."""
        return self.receiver_id if self.caller_id == user_id else self.caller_id
