"""
Email Notification Processor - Recipient Resolution.

Resolves the email addresses a notification should be delivered to. Broadcast
notifications go to nobody, a fixed list, or every user in the directory;
targeted notifications go to the addressed user's profile email. Directory
results, empty ones included, are cached for the configured TTL.

Architecture Layer: Domain
Principles: Cache-Aside, Dependency Inversion, Async I/O
"""
from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Any

import structlog

from ..errors import ResolutionError, UnsupportedReceiverError
from .entities import Notification, RecipientType, SendOptions
from .ports import CacheFacade, DirectoryClient

logger = structlog.get_logger(__name__)

CATALOG_SERVICE = "catalog"
BROADCAST_CACHE_KEY = "user-emails:all"


class BroadcastReceiver(str, Enum):
    """Broadcast receiver modes."""
    NONE = "none"
    CONFIG = "config"
    USERS = "users"


def user_cache_key(entity_ref: str) -> str:
    return f"user-emails:{entity_ref}"


def unique_emails(emails: Iterable[str | None]) -> list[str]:
    """Drop empty values and duplicates, keeping first-seen order."""
    seen: dict[str, None] = {}
    for email in emails:
        if email:
            seen.setdefault(email, None)
    return list(seen)


def profile_email(entity: dict[str, Any] | None) -> str | None:
    """Extract ``spec.profile.email`` from a directory entity, if present."""
    if not entity:
        return None
    profile = (entity.get("spec") or {}).get("profile") or {}
    email = profile.get("email")
    return email if isinstance(email, str) and email else None


class RecipientResolver:
    """
    Resolves a notification to a deduplicated list of email addresses.

    Holds no state between calls beyond the injected collaborators; the cache
    is always consulted before the directory.
    """
    def __init__(
        self,
        directory: DirectoryClient,
        cache: CacheFacade | None = None,
        *,
        broadcast_receiver: str = BroadcastReceiver.NONE.value,
        broadcast_emails: Iterable[str] = (),
        cache_ttl_ms: int = 3_600_000,
    ) -> None:
        self._directory = directory
        self._cache = cache
        self._receiver = broadcast_receiver
        self._broadcast_emails = list(broadcast_emails)
        self._cache_ttl_ms = cache_ttl_ms

    async def resolve(self, notification: Notification, options: SendOptions) -> list[str]:
        """
        Resolve recipient emails for a notification.

        Raises:
            ResolutionError: credential acquisition or a directory call failed
            UnsupportedReceiverError: the broadcast receiver mode is unknown
        """
        if options.recipients.type == RecipientType.BROADCAST or notification.user is None:
            if options.recipients.type != RecipientType.BROADCAST:
                logger.warning("targeted_send_without_user", notification_id=notification.id)
            emails = await self._broadcast_emails_for_receiver()
        else:
            emails = await self._user_emails(notification.user)
        logger.debug("recipients_resolved", notification_id=notification.id, count=len(emails))
        return emails

    async def _broadcast_emails_for_receiver(self) -> list[str]:
        receiver = self._receiver
        if receiver == BroadcastReceiver.NONE.value:
            return []
        if receiver == BroadcastReceiver.CONFIG.value:
            return list(self._broadcast_emails)
        if receiver == BroadcastReceiver.USERS.value:
            return await self._all_user_emails()
        raise UnsupportedReceiverError(receiver)

    async def _all_user_emails(self) -> list[str]:
        cached = await self._cache_get(BROADCAST_CACHE_KEY)
        if cached is not None:
            return cached

        try:
            credential = await self._directory.acquire_service_credential(CATALOG_SERVICE)
            entities = await self._directory.query_users_with_email(credential)
        except Exception as e:
            raise ResolutionError(f"Failed to fetch broadcast user emails: {e}", cause=e,
                                  details={"scope": "broadcast"}) from e

        emails = unique_emails(profile_email(entity) for entity in entities)
        await self._cache_set(BROADCAST_CACHE_KEY, emails)
        logger.info("broadcast_emails_fetched", count=len(emails))
        return emails

    async def _user_emails(self, entity_ref: str) -> list[str]:
        key = user_cache_key(entity_ref)
        cached = await self._cache_get(key)
        if cached is not None:
            return cached

        try:
            credential = await self._directory.acquire_service_credential(CATALOG_SERVICE)
            entity = await self._directory.get_entity_by_ref(entity_ref, credential)
        except Exception as e:
            raise ResolutionError(f"Failed to fetch email for {entity_ref}: {e}", cause=e,
                                  details={"entity_ref": entity_ref}) from e

        email = profile_email(entity)
        emails = [email] if email else []
        if entity is None:
            logger.info("recipient_entity_not_found", entity_ref=entity_ref)
        await self._cache_set(key, emails)
        return emails

    async def _cache_get(self, key: str) -> list[str] | None:
        if self._cache is None:
            return None
        try:
            cached = await self._cache.get(key)
        except Exception as e:
            logger.warning("recipient_cache_get_failed", key=key, error=str(e))
            return None
        if cached is not None:
            logger.debug("recipient_cache_hit", key=key)
            return list(cached)
        return None

    async def _cache_set(self, key: str, emails: list[str]) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set(key, emails, self._cache_ttl_ms)
        except Exception as e:
            logger.warning("recipient_cache_set_failed", key=key, error=str(e))
