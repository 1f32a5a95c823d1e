"""Exceptions raised by chatlink sessions."""


class SessionNotInitializedError(RuntimeError):
    """Operation needs an active session but initialize() has not been called."""


class CallConflictError(RuntimeError):
    """A participant already has a call that has not ended."""

    def __init__(self, user_id: str, call_id: str):
        super().__init__(f"User {user_id} already has an active call {call_id}")
        self.user_id = user_id
        self.call_id = call_id


class InvalidCallTransition(RuntimeError):
    """Requested call status change is not allowed from the current status."""
