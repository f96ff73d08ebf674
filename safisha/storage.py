import json
import logging
from typing import Any, Protocol

from .config import Settings
from .redis_client import get_redis

logger = logging.getLogger(__name__)

AUTH_TOKEN = "auth_token"
LEGACY_TOKEN = "token"
REFRESH_TOKEN = "refresh_token"
USER_DATA = "user_data"
REGISTRATION_DRAFT = "business_registration_draft"

KEYS = (AUTH_TOKEN, LEGACY_TOKEN, REFRESH_TOKEN, USER_DATA, REGISTRATION_DRAFT)
CREDENTIAL_KEYS = (AUTH_TOKEN, LEGACY_TOKEN, REFRESH_TOKEN, USER_DATA)


class Storage(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class RedisStorage:
    """
    Key-value storage kept in redis, one string per key under a namespace.
    Several client processes sharing a namespace see each other's writes
    (last write wins).
    """

    def __init__(self, client, namespace: str = "safisha"):
        self.client = client
        self.namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> str | None:
        return await self.client.get(self._key(key))

    async def set(self, key: str, value: str) -> None:
        await self.client.set(self._key(key), value)

    async def delete(self, key: str) -> None:
        await self.client.delete(self._key(key))


def open_storage(settings: Settings):
    if settings.redis_url:
        return RedisStorage(get_redis(settings.redis_url))
    return MemoryStorage()


async def get_json(storage: Storage, key: str) -> Any:
    """Read a JSON value; a corrupt value reads as None."""
    raw = await storage.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Discarding unreadable value stored under {key}")
        return None


async def set_json(storage: Storage, key: str, value: Any) -> None:
    await storage.set(key, json.dumps(value, default=str))
