"""
Email Notification Processor - Notification Orchestration.

Entry point called by the notifications backend after a notification is
stored. Resolves recipients, renders the message and dispatches it through
the throttled fan-out, building the mail transport once on first use.

Architecture Layer: Domain
Principles: Facade Pattern, Lazy Initialization, Failure Isolation
"""
from __future__ import annotations

import asyncio
from enum import Enum

from pydantic import BaseModel, Field
import structlog

from ..config import EmailProcessorSettings
from ..errors import ResolutionError
from .dispatch import DispatchSummary, ThrottledDispatcher
from .entities import Notification, SendOptions
from .ports import CacheFacade, DirectoryClient, MailTransport, TemplateRenderer
from .recipients import RecipientResolver
from .rendering import MessageRendering, select_rendering
from .transports import create_transport

logger = structlog.get_logger(__name__)


class ProcessingState(str, Enum):
    """Lifecycle of a single ``post_process`` call."""
    UNINITIALIZED = "uninitialized"
    TRANSPORT_READY = "transport_ready"
    RECIPIENTS_RESOLVED = "recipients_resolved"
    SKIPPED = "skipped"
    DISPATCHED = "dispatched"
    FAILED = "failed"


class ProcessingOutcome(BaseModel):
    """Terminal state reached for one notification."""
    notification_id: str
    state: ProcessingState
    recipients: list[str] = Field(default_factory=list)
    summary: DispatchSummary | None = None
    error_message: str | None = None


class NotificationsEmailProcessor:
    """
    Email processor for notifications.

    Configuration is read once here. The transport is built on the first
    ``post_process`` call and reused for the processor's lifetime.
    """
    def __init__(
        self,
        settings: EmailProcessorSettings,
        directory: DirectoryClient,
        cache: CacheFacade | None = None,
        template_renderer: TemplateRenderer | None = None,
    ) -> None:
        self._settings = settings
        self._transport: MailTransport | None = None
        self._transport_lock = asyncio.Lock()
        self._resolver = RecipientResolver(
            directory,
            cache,
            broadcast_receiver=settings.broadcast_receiver,
            broadcast_emails=settings.broadcast_receiver_emails,
            cache_ttl_ms=settings.cache_ttl_ms,
        )
        self._rendering: MessageRendering = select_rendering(
            template_renderer, settings.sender, settings.reply_to,
        )
        self._dispatcher = ThrottledDispatcher(
            concurrency_limit=settings.concurrency_limit,
            throttle_interval_ms=settings.throttle_interval_ms,
        )
        logger.info("email_processor_initialized",
                    transport=settings.transport.transport,
                    rendering=self._rendering.name,
                    broadcast_receiver=settings.broadcast_receiver,
                    cache_enabled=cache is not None)

    def get_name(self) -> str:
        return "Email"

    async def get_transport(self) -> MailTransport:
        """Build the transport on first use; concurrent first callers share one build."""
        if self._transport is not None:
            return self._transport
        async with self._transport_lock:
            # Double-check after acquiring lock
            if self._transport is None:
                self._transport = await create_transport(self._settings.transport)
                logger.info("email_transport_initialized", transport=self._transport.kind)
        return self._transport

    async def post_process(self, notification: Notification, options: SendOptions) -> ProcessingOutcome:
        """
        Deliver a notification by email.

        Resolution failures abort this notification only and are logged.
        Configuration errors (unknown transport or broadcast receiver) propagate.
        """
        transport = await self.get_transport()

        try:
            emails = await self._resolver.resolve(notification, options)
        except ResolutionError as e:
            logger.error("recipient_resolution_failed", notification_id=notification.id, error=str(e))
            return ProcessingOutcome(notification_id=notification.id, state=ProcessingState.FAILED,
                                     error_message=str(e))

        if not emails:
            logger.info("email_recipients_empty", notification_id=notification.id,
                        message=f"No email recipients found for notification: {notification.id}, skipping")
            return ProcessingOutcome(notification_id=notification.id, state=ProcessingState.SKIPPED)

        template = self._rendering.render(notification)
        summary = await self._dispatcher.dispatch(transport, template, emails)
        logger.info("email_notification_processed", notification_id=notification.id,
                    recipients=len(emails), succeeded=summary.succeeded, failed=len(summary.failed))
        return ProcessingOutcome(notification_id=notification.id, state=ProcessingState.DISPATCHED,
                                 recipients=emails, summary=summary)


def create_email_processor(
    settings: EmailProcessorSettings,
    directory: DirectoryClient,
    cache: CacheFacade | None = None,
    template_renderer: TemplateRenderer | None = None,
) -> NotificationsEmailProcessor:
    """
    Factory function to create a configured email processor.

    Uses an in-memory TTL cache when no cache is supplied.
    """
    from ..infrastructure.cache import InMemoryTTLCache

    return NotificationsEmailProcessor(
        settings,
        directory,
        cache if cache is not None else InMemoryTTLCache(),
        template_renderer,
    )
