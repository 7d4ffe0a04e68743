"""
Unit tests for recipient cache adapters.
"""
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import redis.asyncio as redis

from notifications_email.infrastructure.cache import (
    InMemoryTTLCache,
    RedisCacheSettings,
    RedisRecipientCache,
)

from conftest import FakeClock


class TestInMemoryTTLCache:
    """Tests for InMemoryTTLCache."""

    @pytest.mark.asyncio
    async def test_set_and_get(self, cache):
        """Test stored values are returned as copies."""
        await cache.set("k", ["a@x.com"], 1000)

        value = await cache.get("k")
        value.append("b@x.com")

        assert await cache.get("k") == ["a@x.com"]

    @pytest.mark.asyncio
    async def test_expiry(self, cache, clock):
        """Test entries expire after their TTL."""
        await cache.set("k", [], 1000)

        clock.advance(0.999)
        assert await cache.get("k") == []
        clock.advance(0.002)
        assert await cache.get("k") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_missing_key(self, cache):
        """Test an unknown key is a miss."""
        assert await cache.get("nope") is None

    @pytest.mark.asyncio
    async def test_cleanup_expired(self, cache, clock):
        """Test expired entries are swept."""
        await cache.set("short", ["a@x.com"], 100)
        await cache.set("long", ["b@x.com"], 10_000)
        clock.advance(1)

        assert cache.cleanup_expired() == 1
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_bounded_size(self):
        """Test the entry closest to expiry is evicted when full."""
        cache = InMemoryTTLCache(clock=FakeClock(), max_entries=2)
        await cache.set("a", ["a@x.com"], 100)
        await cache.set("b", ["b@x.com"], 5000)
        await cache.set("c", ["c@x.com"], 5000)

        assert len(cache) == 2
        assert await cache.get("a") is None
        assert await cache.get("c") == ["c@x.com"]


class TestRedisRecipientCache:
    """Tests for RedisRecipientCache."""

    @pytest.mark.asyncio
    async def test_set_uses_prefix_and_px(self):
        """Test values are stored as JSON with a millisecond TTL."""
        client = AsyncMock()
        cache = RedisRecipientCache(client, key_prefix="test:")

        await cache.set("user-emails:all", ["a@x.com"], 60_000)

        client.set.assert_awaited_once_with("test:user-emails:all", json.dumps(["a@x.com"]), px=60_000)

    @pytest.mark.asyncio
    async def test_get_hit(self):
        """Test cached JSON lists are decoded."""
        client = AsyncMock()
        client.get.return_value = '["a@x.com", "b@x.com"]'
        cache = RedisRecipientCache(client)

        assert await cache.get("k") == ["a@x.com", "b@x.com"]

    @pytest.mark.asyncio
    async def test_get_miss(self):
        """Test a missing key is a miss."""
        client = AsyncMock()
        client.get.return_value = None

        assert await RedisRecipientCache(client).get("k") is None

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_miss(self):
        """Test undecodable entries are treated as misses."""
        client = AsyncMock()
        client.get.return_value = '{"not": "a list"}'

        assert await RedisRecipientCache(client).get("k") is None

    @pytest.mark.asyncio
    async def test_connection_errors_swallowed(self):
        """Test Redis failures never propagate."""
        client = AsyncMock()
        client.get.side_effect = redis.ConnectionError("down")
        client.set.side_effect = redis.ConnectionError("down")
        cache = RedisRecipientCache(client)

        assert await cache.get("k") is None
        await cache.set("k", ["a@x.com"], 1000)

    def test_from_settings(self):
        """Test the client is created from URL settings."""
        settings = RedisCacheSettings(url="redis://cache:6379/2", key_prefix="mail:")

        with patch("notifications_email.infrastructure.cache.redis.from_url",
                   return_value=MagicMock()) as mock_from_url:
            cache = RedisRecipientCache.from_settings(settings)

        assert mock_from_url.call_args.args[0] == "redis://cache:6379/2"
        assert mock_from_url.call_args.kwargs["decode_responses"] is True
        assert cache._make_key("k") == "mail:k"

    @pytest.mark.asyncio
    async def test_close(self):
        """Test close releases the client."""
        client = AsyncMock()
        await RedisRecipientCache(client).close()
        client.aclose.assert_awaited_once()
