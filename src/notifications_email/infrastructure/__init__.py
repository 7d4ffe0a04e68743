"""Email Notification Processor - Infrastructure adapters."""
from .cache import InMemoryTTLCache, RedisCacheSettings, RedisRecipientCache
from .directory import CatalogDirectoryClient, DirectorySettings, parse_entity_ref

__all__ = [
    "InMemoryTTLCache",
    "RedisCacheSettings",
    "RedisRecipientCache",
    "CatalogDirectoryClient",
    "DirectorySettings",
    "parse_entity_ref",
]
