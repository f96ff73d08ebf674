import inspect
import json
import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)

AUTH_CHANGED = "auth-change"
REQUEST_LOGIN = "request-login"


def build_event(event_type: str, data: dict) -> dict:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "data": data,
    }


def to_json(event: dict) -> str:
    return json.dumps(event, separators=(",", ":"), ensure_ascii=False, default=str)


Handler = Callable[[dict], Any]


class SignalBus:
    """
    In-process publish/subscribe for cross-component notifications
    ("auth changed", "request login"). Handlers run in subscription order;
    a failing handler is logged and does not stop the others.
    """

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self.history: list[dict] = []

    def subscribe(self, event_type: str, handler: Handler) -> Callable[[], None]:
        self._handlers[event_type].append(handler)

        def unsubscribe():
            try:
                self._handlers[event_type].remove(handler)
            except ValueError:
                pass

        return unsubscribe

    async def emit(self, event_type: str, **data) -> dict:
        event = build_event(event_type, data)
        self.history.append(event)
        logger.debug(to_json(event))

        for handler in list(self._handlers[event_type]):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Signal handler failed for {event_type}")
        return event

    def emitted(self, event_type: str) -> list[dict]:
        return [e for e in self.history if e["event_type"] == event_type]
