"""SIM implementation - scripted two-user chat and call over the HTTP API."""

import asyncio
import random
from typing import Protocol

import httpx

from chatlink.logging_config import get_logger
from chatlink.tracker import ITracker

logger = get_logger(__name__)

VIRTUAL_USERS = [
    {"id": "1", "first_name": "Alice", "last_name": "Archer", "email": "alice@example.com"},
    {"id": "2", "first_name": "Bob", "last_name": "Baker", "email": "bob@example.com"},
]

# (sender index, text)
SCRIPT = [
    (0, "Hi Bob!"),
    (1, "Hey Alice, how are you?"),
    (0, "Good. Got a minute for a call?"),
    (1, "Sure, ring me."),
]


class ISim(Protocol):
    """Generate traffic against a running server."""

    async def start(self) -> None:
        """Start scripted scenario."""
        ...

    async def stop(self) -> None:
        """Stop scenario."""
        ...


class Sim:
    """SIM with a scripted conversation followed by a call."""

    def __init__(
        self,
        api_url: str = "http://localhost:8000",
        tracker: ITracker | None = None,
        message_delay: tuple[float, float] = (1.0, 3.0),
    ):
        self._api_url = api_url
        self._tracker = tracker
        self._message_delay = message_delay
        self._running = False
        self._task: asyncio.Task | None = None
        self._client: httpx.AsyncClient | None = None
        self._sessions: dict[str, str] = {}  # user_id -> session_id

    def set_tracker(self, tracker: ITracker) -> None:
        """Inject tracker for SIM trace events."""
        self._tracker = tracker

    async def start(self) -> None:
        """Start scripted scenario."""
        if self._running:
            return

        self._running = True
        self._client = httpx.AsyncClient(base_url=self._api_url, timeout=10.0)

        self._task = asyncio.create_task(self._run_scenario())

    async def stop(self) -> None:
        """Stop scenario."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._client:
            await self._close_sessions()
            await self._client.aclose()
            self._client = None

    async def _run_scenario(self) -> None:
        """Run scripted scenario."""
        try:
            await self._track("sim_started", {"user_count": len(VIRTUAL_USERS)})

            await self._seed_users()
            for user in VIRTUAL_USERS:
                await self._open_session(user["id"])

            for sender_idx, text in SCRIPT:
                if not self._running:
                    return
                sender = VIRTUAL_USERS[sender_idx]["id"]
                receiver = VIRTUAL_USERS[1 - sender_idx]["id"]
                await self._send_message(sender, receiver, text)
                await asyncio.sleep(random.uniform(*self._message_delay))
                await self._drain(receiver)

            if self._running:
                await self._run_call(VIRTUAL_USERS[0]["id"], VIRTUAL_USERS[1]["id"])

        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("SIM scenario error: %s", e)
        finally:
            await self._track("sim_completed", {"user_count": len(VIRTUAL_USERS)})

    async def _run_call(self, caller: str, receiver: str) -> None:
        call = await self._post(f"/api/sessions/{self._sessions[caller]}/calls", {"receiver_id": receiver})
        if not call:
            return
        logger.info("SIM: %s calls %s (%s)", caller, receiver, call["id"])

        await self._drain(receiver)
        await self._post(f"/api/sessions/{self._sessions[receiver]}/calls/{call['id']}/accept")
        await asyncio.sleep(random.uniform(*self._message_delay))
        await self._drain(caller)
        await self._post(f"/api/sessions/{self._sessions[caller]}/calls/{call['id']}/end")
        await self._drain(receiver)

    async def _seed_users(self) -> None:
        await self._post("/api/users", VIRTUAL_USERS)

    async def _open_session(self, user_id: str) -> None:
        data = await self._post("/api/sessions", {"user_id": user_id})
        if data:
            self._sessions[user_id] = data["session_id"]

    async def _close_sessions(self) -> None:
        for user_id, session_id in list(self._sessions.items()):
            try:
                await self._client.delete(f"/api/sessions/{session_id}")
            except httpx.HTTPError as e:
                logger.error("SIM: Failed to close session for %s: %s", user_id, e)
        self._sessions.clear()

    async def _send_message(self, sender: str, receiver: str, text: str) -> None:
        """Send a message via HTTP API."""
        data = await self._post(
            f"/api/sessions/{self._sessions[sender]}/messages",
            {"receiver_id": receiver, "content": text},
        )
        if data:
            logger.info("SIM: %s -> %s: %s", sender, receiver, text)

    async def _drain(self, user_id: str) -> None:
        if not self._client or user_id not in self._sessions:
            return
        try:
            response = await self._client.get(
                f"/api/sessions/{self._sessions[user_id]}/events",
                params={"poll": "true"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("SIM: Failed to drain events for %s: %s", user_id, e)
            return

        for event in response.json():
            logger.info("SIM: %s received %s", user_id, event["type"])

    async def _post(self, path: str, payload: dict | list | None = None) -> dict | None:
        if not self._client:
            return None

        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as e:
            logger.error("SIM: Request to %s failed: %s", path, e)
            return None

        if response.status_code != 200:
            logger.error("SIM: %s returned %s", path, response.status_code)
            return None
        return response.json()

    async def _track(self, event_type: str, data: dict) -> None:
        if self._tracker:
            await self._tracker.track(event_type, "sim", data)
