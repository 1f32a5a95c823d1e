"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "chatlink.db"
DEFAULT_LOG_PATH = LOGS_DIR / "app.log"

DATA_DIR.mkdir(parents=True, exist_ok=True)
LOGS_DIR.mkdir(parents=True, exist_ok=True)


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _env_seconds(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class SessionConfig:
    """Timing knobs for a session's poller and relay (seconds)."""

    poll_interval: float = 3.0
    message_recency_window: float = 5.0
    call_recency_window: float = 10.0
    broadcast_clear_delay: float = 0.1
    relay_watch_interval: float = 0.05

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """Build config from environment variables, falling back to defaults."""
        return cls(
            poll_interval=_env_seconds("POLL_INTERVAL", cls.poll_interval),
            message_recency_window=_env_seconds(
                "MESSAGE_RECENCY_WINDOW", cls.message_recency_window
            ),
            call_recency_window=_env_seconds(
                "CALL_RECENCY_WINDOW", cls.call_recency_window
            ),
            broadcast_clear_delay=_env_seconds(
                "BROADCAST_CLEAR_DELAY", cls.broadcast_clear_delay
            ),
            relay_watch_interval=_env_seconds(
                "RELAY_WATCH_INTERVAL", cls.relay_watch_interval
            ),
        )
