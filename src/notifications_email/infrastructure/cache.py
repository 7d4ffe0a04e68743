"""
Email Notification Processor - Recipient Caches.

Cache adapters for resolved recipient lists. Both adapters swallow storage
failures: a failed read is a miss and a failed write is dropped.
"""
from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import Any

import redis.asyncio as redis
import structlog
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..errors import CacheError

logger = structlog.get_logger(__name__)


class InMemoryTTLCache:
    """Process-local cache with per-entry expiry."""
    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries: int = 10_000) -> None:
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[str, tuple[float, list[str]]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> list[str] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return list(value)

    async def set(self, key: str, value: list[str], ttl_ms: int) -> None:
        if len(self._entries) >= self._max_entries and key not in self._entries:
            self.cleanup_expired()
            if len(self._entries) >= self._max_entries:
                # evict the entry closest to expiry
                oldest = min(self._entries, key=lambda k: self._entries[k][0])
                del self._entries[oldest]
        self._entries[key] = (self._clock() + ttl_ms / 1000, list(value))

    def cleanup_expired(self) -> int:
        now = self._clock()
        expired = [k for k, (expires_at, _) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)


class RedisCacheSettings(BaseSettings):
    """Redis connection settings for the recipient cache."""
    url: str = Field(default="redis://localhost:6379/0")
    password: SecretStr | None = Field(default=None)
    key_prefix: str = Field(default="notifications:email:")
    socket_timeout: float = Field(default=5.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="NOTIFICATIONS_EMAIL_REDIS_", env_file=".env", extra="ignore")


class RedisRecipientCache:
    """Redis-backed recipient cache storing JSON lists with millisecond TTLs."""
    def __init__(self, client: redis.Redis, key_prefix: str = "notifications:email:") -> None:
        self._client = client
        self._key_prefix = key_prefix

    @classmethod
    def from_settings(cls, settings: RedisCacheSettings | None = None) -> RedisRecipientCache:
        settings = settings or RedisCacheSettings()
        client = redis.from_url(
            settings.url,
            password=settings.password.get_secret_value() if settings.password else None,
            socket_timeout=settings.socket_timeout,
            decode_responses=True,
        )
        logger.info("redis_recipient_cache_created", key_prefix=settings.key_prefix)
        return cls(client, settings.key_prefix)

    def _make_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def get(self, key: str) -> list[str] | None:
        try:
            raw = await self._client.get(self._make_key(key))
            return self._deserialize(raw)
        except (redis.RedisError, OSError, CacheError) as e:
            logger.warning("redis_get_error", key=key, error=str(e))
            return None

    async def set(self, key: str, value: list[str], ttl_ms: int) -> None:
        try:
            await self._client.set(self._make_key(key), json.dumps(list(value)), px=max(1, int(ttl_ms)))
        except (redis.RedisError, OSError) as e:
            logger.warning("redis_set_error", key=key, error=str(e))

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _deserialize(raw: Any) -> list[str] | None:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            value = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise CacheError(f"Corrupt cache entry: {e}", cause=e) from e
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            raise CacheError("Cache entry is not a list of strings")
        return value
