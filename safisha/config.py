import logging
import os
from dataclasses import dataclass, field

DEFAULT_API_URL = "http://localhost:3001/api"

API_BASE_URL = (
    os.getenv("SAFISHA_API_URL")
    or os.getenv("VITE_BASE_API_URL")
    or os.getenv("VITE_API_URL")
    or DEFAULT_API_URL
)

REQUEST_TIMEOUT = float(os.getenv("SAFISHA_REQUEST_TIMEOUT") or "10.0")

# optional: persistent client state goes to redis when set
REDIS_URL = os.getenv("REDIS_URL")

NOTIFICATIONS_POLL_SECONDS = float(os.getenv("NOTIFICATIONS_POLL_SECONDS") or "30")
DRAFT_AUTOSAVE_SECONDS = float(os.getenv("DRAFT_AUTOSAVE_SECONDS") or "30")

LOG_LEVEL = os.getenv("LOG_LEVEL") or "INFO"

AUTH_PAGES = ("/login", "/register")


@dataclass(frozen=True)
class Settings:
    api_base_url: str = DEFAULT_API_URL
    request_timeout: float = 10.0
    redis_url: str | None = None
    notifications_poll_seconds: float = 30.0
    draft_autosave_seconds: float = 30.0
    auth_pages: tuple[str, ...] = field(default=AUTH_PAGES)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_base_url=API_BASE_URL.rstrip("/"),
            request_timeout=REQUEST_TIMEOUT,
            redis_url=REDIS_URL,
            notifications_poll_seconds=NOTIFICATIONS_POLL_SECONDS,
            draft_autosave_seconds=DRAFT_AUTOSAVE_SECONDS,
        )


def setup_logging(level: str | int = LOG_LEVEL) -> logging.Logger:
    logger = logging.getLogger("safisha")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
