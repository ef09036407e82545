"""Key-value session store interface and implementations."""

import heapq
import time
from typing import Any, Protocol

from redis.asyncio import Redis
from redis.exceptions import RedisError

from toolchat.config import Settings
from toolchat.errors import ConfigurationError, StoreError
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


def conversation_key(session_id: str) -> str:
    return f"conversation:{session_id}"


class SessionStore(Protocol):
    """Interface for the external key-value store.

    A failed read is reported as a missing key. A failed write raises StoreError;
    callers on bookkeeping paths log and swallow it.
    """

    async def get(self, key: str) -> str | None:
        """Return the value for key, or None if missing, expired or unreadable."""
        ...

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store value under key, expiring after ttl_seconds."""
        ...

    async def close(self) -> None:
        """Release any underlying connections."""
        ...


class InMemorySessionStore:
    """In-process store with per-key expiry, for demos and tests.

    Expired entries are dropped when read and swept on every write, so keys that
    are written but never read again do not accumulate.
    """

    def __init__(self):
        self._items: dict[str, tuple[str, float | None]] = {}
        # (expires_at, key); entries go stale when a key is overwritten
        self._deadlines: list[tuple[float, str]] = []

    async def get(self, key: str) -> str | None:
        item = self._items.get(key)
        if item is None:
            return None

        value, expires_at = item
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._items[key]
            return None
        return value

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        current = time.monotonic()
        self._sweep(current)

        expires_at = current + ttl_seconds if ttl_seconds > 0 else None
        self._items[key] = (value, expires_at)
        if expires_at is not None:
            heapq.heappush(self._deadlines, (expires_at, key))

    def _sweep(self, current: float) -> None:
        while self._deadlines and self._deadlines[0][0] <= current:
            expires_at, key = heapq.heappop(self._deadlines)
            item = self._items.get(key)
            if item is not None and item[1] == expires_at:
                del self._items[key]

    async def close(self) -> None:
        self._items.clear()
        self._deadlines.clear()

    def __len__(self) -> int:
        return len(self._items)


class RedisSessionStore:
    """Session store backed by Redis (SETEX for expiry)."""

    def __init__(self, url: str):
        """Create a store for the given URL (e.g. redis://localhost:6379/0)."""
        self._url = url
        self._client: Redis[Any] | None = None

    @property
    def client(self) -> "Redis[Any]":
        """Return the Redis client, creating it on first use."""
        if self._client is None:
            self._client = Redis.from_url(self._url, decode_responses=True)
            logger.info(f"Redis client created for {self._url.split('@')[-1]}")
        return self._client

    async def get(self, key: str) -> str | None:
        try:
            value = await self.client.get(key)
        except RedisError as e:
            logger.warning(f"Redis get {key} failed: {e}")
            return None
        return value if value is None else str(value)

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            if ttl_seconds > 0:
                await self.client.setex(key, ttl_seconds, value)
            else:
                await self.client.set(key, value)
        except RedisError as e:
            raise StoreError(f"Redis put {key} failed: {e}") from e

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("Redis connection closed")


def build_session_store(settings: Settings) -> SessionStore | None:
    """Create the store selected by settings, or None when storage is disabled."""
    if settings.store_backend == "disabled":
        logger.info("Session storage disabled")
        return None

    if settings.store_backend == "redis":
        if not settings.redis_url or not settings.redis_url.strip():
            raise ConfigurationError(
                "Redis store selected but REDIS_URL is not set",
                details={"store_backend": settings.store_backend},
            )
        return RedisSessionStore(settings.redis_url.strip())

    return InMemorySessionStore()
