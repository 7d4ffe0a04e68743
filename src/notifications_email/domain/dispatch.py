"""
Email Notification Processor - Throttled Dispatch.

Fans a rendered message out to every recipient through the throttle. Each
send is its own task; a failing recipient is logged and counted without
affecting the others, and the dispatch as a whole never raises.

Architecture Layer: Domain
Principles: Best-Effort Fan-Out, Failure Isolation, Async I/O
"""
from __future__ import annotations

import asyncio

from pydantic import BaseModel, Field
import structlog

from .entities import MailMessage
from .ports import MailTransport
from .throttle import Throttle

logger = structlog.get_logger(__name__)


class DispatchSummary(BaseModel):
    """Outcome of one dispatch call."""
    attempted: int = 0
    succeeded: int = 0
    failed: list[str] = Field(default_factory=list)


class ThrottledDispatcher:
    """Sends one message per recipient, at most ``limit`` per ``interval_ms`` window."""
    def __init__(self, concurrency_limit: int = 2, throttle_interval_ms: int = 100) -> None:
        self._concurrency_limit = concurrency_limit
        self._throttle_interval_ms = throttle_interval_ms

    async def dispatch(
        self,
        transport: MailTransport,
        template: MailMessage,
        recipients: list[str],
    ) -> DispatchSummary:
        """Send ``template`` to every recipient and wait for all attempts."""
        # one window per call
        throttle = Throttle(self._concurrency_limit, self._throttle_interval_ms)
        send = throttle.wrap(self._send_one)

        results = await asyncio.gather(
            *(send(transport, template.for_recipient(email)) for email in recipients)
        )

        summary = DispatchSummary(
            attempted=len(results),
            succeeded=sum(1 for ok in results if ok),
            failed=[email for email, ok in zip(recipients, results) if not ok],
        )
        logger.info("email_dispatch_completed", attempted=summary.attempted,
                    succeeded=summary.succeeded, failed=len(summary.failed))
        return summary

    async def _send_one(self, transport: MailTransport, message: MailMessage) -> bool:
        try:
            message_id = await transport.send(message)
        except Exception as e:
            logger.error("email_send_failed", to=message.to,
                         transport=getattr(transport, "kind", None), error=str(e))
            return False
        logger.debug("email_sent", to=message.to, message_id=message_id)
        return True
