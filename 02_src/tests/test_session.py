"""Tests for Session."""

import asyncio
import contextlib
from dataclasses import replace

import pytest

from chatlink.config import SessionConfig
from chatlink.errors import CallConflictError, SessionNotInitializedError
from chatlink.models import CallStatus, EventType, UserStatus
from chatlink.session import SessionState

from conftest import MANUAL_CONFIG

FAST_POLL = replace(MANUAL_CONFIG, poll_interval=0.01)


def _recorder(session, event_type):
    events = []

    async def handler(event):
        events.append(event)

    session.subscribe(event_type, handler)
    return events


async def _wait_for(predicate, timeout=1.0):
    for _ in range(int(timeout / 0.01)):
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


class TestSessionLifecycle:
    """Tests for initialize() and disconnect()."""

    async def test_new_session_is_uninitialized(self, make_session):
        """Test initial state."""
        session = make_session()

        assert session.state is SessionState.UNINITIALIZED
        assert session.user_id is None
        assert not session.is_active

    async def test_initialize_marks_online(self, alice, directory):
        """Test that initialize makes the session active and the user online."""
        assert alice.state is SessionState.ACTIVE
        assert alice.user_id == "1"
        assert alice.relay.listening
        assert (await directory.get_user("1")).online is True

    async def test_initialize_same_user_is_idempotent(self, alice):
        """Test that a second initialize for the same user keeps the poll task."""
        task = alice._poll_task

        await alice.initialize("1")

        assert alice._poll_task is task
        assert alice.user_id == "1"

    async def test_initialize_other_user_switches(self, alice, directory):
        """Test that initializing for a different user disconnects the first."""
        await alice.initialize("3")

        assert alice.user_id == "3"
        assert (await directory.get_user("1")).online is False
        assert (await directory.get_user("3")).online is True

    async def test_disconnect_marks_offline(self, alice, directory):
        """Test that disconnect tears everything down."""
        _recorder(alice, EventType.MESSAGE)

        await alice.disconnect()

        assert alice.state is SessionState.DISCONNECTED
        assert alice.user_id is None
        assert not alice.relay.listening
        assert alice.bus.handler_count() == 0
        user = await directory.get_user("1")
        assert user.online is False
        assert user.last_seen is not None

    async def test_disconnect_twice_is_noop(self, alice):
        """Test that disconnect on an inactive session does nothing."""
        await alice.disconnect()
        await alice.disconnect()

        assert alice.state is SessionState.DISCONNECTED

    async def test_reinitialize_after_disconnect(self, alice, directory):
        """Test that a disconnected session can be initialized again."""
        await alice.disconnect()
        await alice.initialize("1")

        assert alice.is_active
        assert (await directory.get_user("1")).online is True

    async def test_lifecycle_is_traced(self, alice, storage):
        """Test that initialize writes a trace event."""
        events = await storage.get_trace_events(event_types=["session_initialized"])

        assert events[0].actor == "session:1"
        assert events[0].data == {"session_id": alice.id}

    async def test_abnormal_exit_marks_offline(self, alice, directory):
        """Test that a poll task cancelled from outside marks the user offline."""
        await asyncio.sleep(0)
        task = alice._poll_task

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

        assert alice.state is SessionState.DISCONNECTED
        assert (await directory.get_user("1")).online is False


class TestSessionMessaging:
    """Tests for send_message() and delivery."""

    async def test_message_delivered_on_poll(self, alice, bob, storage):
        """Test that the receiver's poll delivers the message once and marks it read."""
        received = _recorder(bob, EventType.MESSAGE)

        sent = await alice.send_message("2", "hi")
        await bob.poll()

        assert len(received) == 1
        assert received[0].data.content == "hi"
        stored = await storage.get_messages_between("1", "2")
        assert stored[0].id == sent.id
        assert stored[0].read is True

    async def test_message_delivered_by_relay(self, alice, bob):
        """Test that the relay carries the message without waiting for a poll."""
        received = _recorder(bob, EventType.MESSAGE)

        await alice.send_message("2", "hi")
        await bob.relay.check()

        assert [e.data.content for e in received] == ["hi"]

    async def test_sender_bus_not_notified(self, alice, bob):
        """Test that a message to someone else is not published on the sender's bus."""
        own = _recorder(alice, EventType.MESSAGE)

        await alice.send_message("2", "hi")

        assert own == []

    async def test_third_party_not_notified(self, alice, bob, make_session):
        """Test that a message for 2 never reaches user 3."""
        carol = make_session()
        await carol.initialize("3")
        received = _recorder(carol, EventType.MESSAGE)

        await alice.send_message("2", "hi")
        await carol.relay.check()
        await carol.poll()

        assert received == []

    async def test_send_requires_active_session(self, make_session):
        """Test that sending before initialize raises."""
        session = make_session()

        with pytest.raises(SessionNotInitializedError):
            await session.send_message("2", "hi")

    async def test_conversation_order(self, alice, bob):
        """Test that both directions come back oldest first."""
        await alice.send_message("2", "one")
        await bob.send_message("1", "two")
        await alice.send_message("2", "three")

        messages = await alice.get_messages_between_users("2", "1")

        assert [m.content for m in messages] == ["one", "two", "three"]

    async def test_mark_messages_as_read(self, alice, bob, storage):
        """Test that the receiver marks a sender's messages as read."""
        await alice.send_message("2", "one")
        await alice.send_message("2", "two")

        assert await bob.mark_messages_as_read("1") == 2
        assert await bob.mark_messages_as_read("1") == 0
        assert await storage.get_unread_messages("2") == []

    async def test_no_delivery_after_disconnect(self, alice, bob):
        """Test that a disconnected session receives nothing."""
        received = _recorder(bob, EventType.MESSAGE)
        await bob.disconnect()

        await alice.send_message("2", "hi")
        assert await bob.poll() == 0
        await bob.relay.check()

        assert received == []

    async def test_background_poll_delivers(self, make_session):
        """Test that the poll loop delivers on its own."""
        sender = make_session()
        receiver = make_session(FAST_POLL)
        await sender.initialize("1")
        await receiver.initialize("2")
        received = _recorder(receiver, EventType.MESSAGE)

        await sender.send_message("2", "hi")

        assert await _wait_for(lambda: received)

    async def test_background_poll_stops_after_disconnect(self, make_session, storage):
        """Test that messages stored after disconnect stay unread."""
        sender = make_session()
        receiver = make_session(FAST_POLL)
        await sender.initialize("1")
        await receiver.initialize("2")
        received = _recorder(receiver, EventType.MESSAGE)
        await receiver.disconnect()

        await sender.send_message("2", "hi")
        await asyncio.sleep(0.05)

        assert received == []
        assert len(await storage.get_unread_messages("2")) == 1

    async def test_disconnect_from_handler(self, alice, bob, storage):
        """Test that a handler may disconnect its own session mid-tick."""

        async def leave(event):
            await bob.disconnect()

        bob.subscribe(EventType.MESSAGE, leave)
        await alice.send_message("2", "one")
        await alice.send_message("2", "two")

        await bob.poll()

        assert bob.state is SessionState.DISCONNECTED
        assert len(await storage.get_unread_messages("2")) == 2

    async def test_disconnect_from_handler_in_poll_loop(self, make_session):
        """Test that disconnect called from the poll task itself completes."""
        sender = make_session()
        receiver = make_session(FAST_POLL)
        await sender.initialize("1")
        await receiver.initialize("2")

        async def leave(event):
            await receiver.disconnect()

        receiver.subscribe(EventType.MESSAGE, leave)
        await sender.send_message("2", "hi")

        assert await _wait_for(lambda: receiver.state is SessionState.DISCONNECTED)


class TestSessionEmit:
    """Tests for emit() and presence announcements."""

    async def test_emit_inactive_returns_none(self, make_session, caplog):
        """Test that emitting before initialize is logged and dropped."""
        session = make_session()

        event = await session.emit(EventType.USER_STATUS, UserStatus("1", True))

        assert event is None
        assert "not emitted" in caplog.text

    async def test_status_reaches_everyone(self, alice, bob):
        """Test that a status change is published locally and relayed."""
        local = _recorder(bob, EventType.USER_STATUS)
        remote = _recorder(alice, EventType.USER_STATUS)

        await bob.update_user_status("2", False)
        await alice.relay.check()

        assert [e.data.online for e in local] == [False]
        assert [e.data.user_id for e in remote] == ["2"]

    async def test_inactive_status_update_not_announced(self, make_session, directory, storage):
        """Test that an inactive session saves presence without broadcasting."""
        session = make_session()

        await session.update_user_status("3", True)

        assert (await directory.get_user("3")).online is True
        assert await storage.read_broadcast() is None

    async def test_get_users(self, alice):
        """Test directory passthrough."""
        users = await alice.get_users()

        assert {u.id for u in users} == {"1", "2", "3"}


class TestSessionCalls:
    """Tests for the call lifecycle between two sessions."""

    async def test_call_accept_end(self, alice, bob):
        """Test ringing -> ongoing -> ended with notifications to the other side."""
        accepted = _recorder(alice, EventType.CALL_ACCEPT)
        ended = _recorder(bob, EventType.CALL_END)

        call = await alice.initiate_call("2")
        assert call.status is CallStatus.RINGING

        ongoing = await bob.accept_call(call.id)
        await alice.relay.check()
        assert ongoing.status is CallStatus.ONGOING
        assert [e.data.id for e in accepted] == [call.id]

        finished = await alice.end_call(call.id)
        await bob.relay.check()
        await bob.poll()
        assert finished.status is CallStatus.ENDED
        assert finished.end_time is not None
        assert len(ended) == 1

    async def test_ringing_call_polled(self, alice, bob):
        """Test that the receiver's poll raises call-request."""
        requests = _recorder(bob, EventType.CALL_REQUEST)

        call = await alice.initiate_call("2")
        await bob.poll()

        assert [e.data.id for e in requests] == [call.id]

    async def test_reject(self, alice, bob):
        """Test that rejecting ends the call and tells the caller."""
        rejected = _recorder(alice, EventType.CALL_REJECT)
        call = await alice.initiate_call("2")

        result = await bob.reject_call(call.id)
        await alice.relay.check()

        assert result.status is CallStatus.ENDED
        assert len(rejected) == 1
        assert await alice.get_active_call() is None

    async def test_reject_only_while_ringing(self, alice, bob):
        """Test that an ongoing call cannot be rejected."""
        call = await alice.initiate_call("2")
        await bob.accept_call(call.id)

        assert await bob.reject_call(call.id) is None

    async def test_accept_ongoing_returns_call(self, alice, bob):
        """Test that accepting twice is harmless."""
        call = await alice.initiate_call("2")
        await bob.accept_call(call.id)

        again = await bob.accept_call(call.id)

        assert again.status is CallStatus.ONGOING

    async def test_ended_call_is_final(self, alice, bob):
        """Test that ended calls cannot be accepted or ended again."""
        call = await alice.initiate_call("2")
        await alice.end_call(call.id)

        assert await bob.accept_call(call.id) is None
        assert await bob.end_call(call.id) is None

    async def test_unknown_call(self, bob):
        """Test that unknown ids return None."""
        assert await bob.accept_call("missing") is None
        assert await bob.reject_call("missing") is None
        assert await bob.end_call("missing") is None

    async def test_single_active_call(self, alice, bob, make_session):
        """Test that nobody can be in two calls at once."""
        carol = make_session()
        await carol.initialize("3")
        call = await alice.initiate_call("2")

        with pytest.raises(CallConflictError) as excinfo:
            await carol.initiate_call("2")
        assert excinfo.value.call_id == call.id

        with pytest.raises(CallConflictError):
            await alice.initiate_call("3")

    async def test_new_call_after_end(self, alice, bob):
        """Test that ending a call frees both parties."""
        call = await alice.initiate_call("2")
        await bob.end_call(call.id)

        second = await bob.initiate_call("1")

        assert second.id != call.id

    async def test_get_active_call(self, alice, bob):
        """Test that both parties see the active call."""
        call = await alice.initiate_call("2")

        assert (await alice.get_active_call()).id == call.id
        assert (await bob.get_active_call()).id == call.id

    async def test_end_call_notifies_other_party(self, alice, bob):
        """Test that the receiver ending the call notifies the caller."""
        ended = _recorder(alice, EventType.CALL_END)
        call = await alice.initiate_call("2")

        await bob.end_call(call.id)
        await alice.relay.check()

        assert [e.receiver_id for e in ended] == ["1"]

    async def test_call_transitions_traced(self, alice, bob, storage):
        """Test that every saved call state is traced."""
        call = await alice.initiate_call("2")
        await bob.accept_call(call.id)

        events = await storage.get_trace_events(event_types=["call_transition"])

        assert [e.data["status"] for e in events] == ["ongoing", "ringing"]

    async def test_end_then_message_delivers_both(self, make_session):
        """Test that a call end followed at once by a message reaches the other party."""
        alice = make_session(SessionConfig())
        bob = make_session(SessionConfig())
        await alice.initialize("1")
        await bob.initialize("2")
        ended = _recorder(bob, EventType.CALL_END)
        received = _recorder(bob, EventType.MESSAGE)

        call = await alice.initiate_call("2")
        await asyncio.sleep(0.2)
        await alice.end_call(call.id)
        await alice.send_message("2", "bye")
        await asyncio.sleep(0.5)
        await bob.poll()

        assert len(ended) == 1
        assert ended[0].data.id == call.id
        assert {e.data.content for e in received} == {"bye"}
