"""Runtime settings and logging setup"""
import logging
import os
from dataclasses import dataclass

from domain.constants import (
    DEFAULT_SOCKET_URL, DEFAULT_API_URL, DEFAULT_AGENT_ID, DEFAULT_AGENT_NAME,
    DEFAULT_PAGE_SIZE, DEFAULT_SCROLL_THRESHOLD, DEFAULT_RECONNECT_ATTEMPTS,
    DEFAULT_RECONNECT_DELAY, DEFAULT_CONNECT_TIMEOUT, DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SETTLE_DELAY, HISTORY_SOURCE_REST, HISTORY_SOURCE_SOCKET,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _env_number(name: str, default: float, cast=float):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Invalid value %r for %s, using default %r", raw, name, default)
        return default


@dataclass
class Settings:
    """Dashboard session configuration

    Every field has a default from domain.constants; `from_env` overrides them
    with CHAT_* environment variables.
    """
    socket_url: str = DEFAULT_SOCKET_URL
    api_url: str = DEFAULT_API_URL
    agent_id: str = DEFAULT_AGENT_ID
    agent_name: str = DEFAULT_AGENT_NAME
    page_size: int = DEFAULT_PAGE_SIZE
    scroll_threshold: float = DEFAULT_SCROLL_THRESHOLD
    reconnect_attempts: int = DEFAULT_RECONNECT_ATTEMPTS
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    settle_delay: float = DEFAULT_SETTLE_DELAY
    history_source: str = HISTORY_SOURCE_REST
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from CHAT_* environment variables"""
        source = os.getenv("CHAT_HISTORY_SOURCE", HISTORY_SOURCE_REST).strip().lower()
        if source not in (HISTORY_SOURCE_REST, HISTORY_SOURCE_SOCKET):
            logger.warning("Unknown CHAT_HISTORY_SOURCE %r, using %r", source, HISTORY_SOURCE_REST)
            source = HISTORY_SOURCE_REST
        return cls(
            socket_url=os.getenv("CHAT_SOCKET_URL", DEFAULT_SOCKET_URL),
            api_url=os.getenv("CHAT_API_URL", DEFAULT_API_URL),
            agent_id=os.getenv("CHAT_AGENT_ID", DEFAULT_AGENT_ID),
            agent_name=os.getenv("CHAT_AGENT_NAME", DEFAULT_AGENT_NAME),
            page_size=_env_number("CHAT_PAGE_SIZE", DEFAULT_PAGE_SIZE, int),
            scroll_threshold=_env_number("CHAT_SCROLL_THRESHOLD", DEFAULT_SCROLL_THRESHOLD),
            reconnect_attempts=_env_number("CHAT_RECONNECT_ATTEMPTS", DEFAULT_RECONNECT_ATTEMPTS, int),
            reconnect_delay=_env_number("CHAT_RECONNECT_DELAY", DEFAULT_RECONNECT_DELAY),
            connect_timeout=_env_number("CHAT_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT),
            request_timeout=_env_number("CHAT_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT),
            settle_delay=_env_number("CHAT_SETTLE_DELAY", DEFAULT_SETTLE_DELAY),
            history_source=source,
            log_level=os.getenv("CHAT_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger"""
    root = logging.getLogger()
    if not any(getattr(h, "_chat_sync", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._chat_sync = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
