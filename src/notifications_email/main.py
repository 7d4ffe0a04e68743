"""
Email Notification Processor - Application Wiring.

Builds a ready-to-use processor from settings: logging, recipient cache,
catalog directory client and optional templates.
"""
from __future__ import annotations

import structlog

from .config import EmailProcessorSettings, get_settings
from .domain.ports import CacheFacade, TemplateRenderer
from .domain.processor import NotificationsEmailProcessor
from .infrastructure.cache import InMemoryTTLCache, RedisCacheSettings, RedisRecipientCache
from .infrastructure.directory import CatalogDirectoryClient, DirectorySettings
from .observability import configure_logging

logger = structlog.get_logger(__name__)


def create_cache(settings: EmailProcessorSettings) -> CacheFacade:
    if settings.cache.store == "redis":
        return RedisRecipientCache.from_settings(RedisCacheSettings())
    return InMemoryTTLCache()


def create_processor(
    settings: EmailProcessorSettings | None = None,
    directory_settings: DirectorySettings | None = None,
    template_renderer: TemplateRenderer | None = None,
) -> NotificationsEmailProcessor:
    """Create the email processor from environment-backed settings."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)
    logger.info("email_processor_starting",
                transport=settings.transport.transport,
                cache_store=settings.cache.store,
                templates=template_renderer is not None)
    return NotificationsEmailProcessor(
        settings,
        CatalogDirectoryClient(directory_settings),
        create_cache(settings),
        template_renderer,
    )
