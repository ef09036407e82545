"""Tests for the session store implementations."""

from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from toolchat.config import Settings
from toolchat.errors import ConfigurationError, StoreError
from toolchat.services.store import (
    InMemorySessionStore,
    RedisSessionStore,
    build_session_store,
    conversation_key,
    session_key,
)


def test_keys():
    assert session_key("abc") == "session:abc"
    assert conversation_key("abc") == "conversation:abc"


class TestInMemorySessionStore:
    """Tests for the in-process store."""

    @pytest.mark.asyncio
    async def test_put_and_get(self):
        store = InMemorySessionStore()
        await store.put("k", "v", 60)
        assert await store.get("k") == "v"
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_put_overwrites(self):
        store = InMemorySessionStore()
        await store.put("k", "one", 60)
        await store.put("k", "two", 60)
        assert await store.get("k") == "two"
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_expiry(self):
        store = InMemorySessionStore()
        with patch("toolchat.services.store.time.monotonic", return_value=1000.0):
            await store.put("k", "v", 10)

        with patch("toolchat.services.store.time.monotonic", return_value=1009.0):
            assert await store.get("k") == "v"

        with patch("toolchat.services.store.time.monotonic", return_value=1010.0):
            assert await store.get("k") is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_unread_expired_keys_are_swept_on_write(self):
        """Test that keys nobody reads again are dropped once expired."""
        store = InMemorySessionStore()
        with patch("toolchat.services.store.time.monotonic", return_value=1000.0):
            for i in range(1000):
                await store.put(f"conversation:{i}", "[]", 1)
        assert len(store) == 1000

        with patch("toolchat.services.store.time.monotonic", return_value=1001.1):
            await store.put("session:new", "{}", 1)
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_sweep_keeps_overwritten_keys(self):
        store = InMemorySessionStore()
        with patch("toolchat.services.store.time.monotonic", return_value=1000.0):
            await store.put("k", "old", 10)
        with patch("toolchat.services.store.time.monotonic", return_value=1005.0):
            await store.put("k", "new", 100)
        with patch("toolchat.services.store.time.monotonic", return_value=1011.0):
            await store.put("other", "v", 10)
            assert await store.get("k") == "new"
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_zero_ttl_never_expires(self):
        store = InMemorySessionStore()
        await store.put("k", "v", 0)
        with patch("toolchat.services.store.time.monotonic", return_value=10**9):
            assert await store.get("k") == "v"


class TestRedisSessionStore:
    """Tests for the Redis store against a mocked client."""

    @pytest.fixture
    def redis_store(self):
        store = RedisSessionStore("redis://localhost:6379/0")
        store._client = AsyncMock()
        return store

    @pytest.mark.asyncio
    async def test_put_uses_setex(self, redis_store):
        await redis_store.put("session:1", "{}", 86400)
        redis_store.client.setex.assert_awaited_once_with("session:1", 86400, "{}")

    @pytest.mark.asyncio
    async def test_put_without_ttl(self, redis_store):
        await redis_store.put("session:1", "{}", 0)
        redis_store.client.set.assert_awaited_once_with("session:1", "{}")

    @pytest.mark.asyncio
    async def test_get(self, redis_store):
        redis_store.client.get.return_value = '{"id": "1"}'
        assert await redis_store.get("session:1") == '{"id": "1"}'

        redis_store.client.get.return_value = None
        assert await redis_store.get("session:1") is None

    @pytest.mark.asyncio
    async def test_failed_read_is_a_miss(self, redis_store):
        redis_store.client.get.side_effect = RedisConnectionError("refused")
        assert await redis_store.get("session:1") is None

    @pytest.mark.asyncio
    async def test_failed_write_raises(self, redis_store):
        redis_store.client.setex.side_effect = RedisConnectionError("refused")
        with pytest.raises(StoreError):
            await redis_store.put("session:1", "{}", 60)

    @pytest.mark.asyncio
    async def test_server_error_on_read_is_a_miss(self, redis_store):
        redis_store.client.get.side_effect = ResponseError("WRONGTYPE Operation against a key holding the wrong kind of value")
        assert await redis_store.get("session:1") is None

    @pytest.mark.asyncio
    async def test_server_error_on_write_raises(self, redis_store):
        redis_store.client.setex.side_effect = ResponseError("OOM command not allowed")
        with pytest.raises(StoreError, match="OOM"):
            await redis_store.put("session:1", "{}", 60)

    @pytest.mark.asyncio
    async def test_ping(self, redis_store):
        redis_store.client.ping.return_value = True
        assert await redis_store.ping() is True

        redis_store.client.ping.side_effect = RedisConnectionError("refused")
        assert await redis_store.ping() is False

    @pytest.mark.asyncio
    async def test_close(self, redis_store):
        client = redis_store.client
        await redis_store.close()
        client.aclose.assert_awaited_once()
        assert redis_store._client is None


class TestBuildSessionStore:
    """Tests for store selection from settings."""

    def test_memory(self):
        assert isinstance(build_session_store(Settings(store_backend="memory")), InMemorySessionStore)

    def test_disabled(self):
        assert build_session_store(Settings(store_backend="disabled")) is None

    def test_redis(self):
        store = build_session_store(Settings(store_backend="redis", redis_url="redis://cache:6379/0"))
        assert isinstance(store, RedisSessionStore)

    def test_redis_requires_url(self):
        with pytest.raises(ConfigurationError):
            build_session_store(Settings(store_backend="redis", redis_url=None))
