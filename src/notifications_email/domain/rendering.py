"""
Email Notification Processor - Message Rendering.

Turns a notification into a transport-agnostic mail message. The strategy is
chosen once: plain rendering from the payload, or template rendering through
an injected renderer. A Jinja2-backed renderer is provided.

Architecture Layer: Domain
Principles: Strategy Pattern, Template Method Pattern, Immutability
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from jinja2 import BaseLoader, Environment, StrictUndefined, TemplateError
import structlog

from ..errors import TemplateRenderError
from .entities import MailMessage, Notification
from .ports import TemplateRenderer

logger = structlog.get_logger(__name__)


class MessageRendering(ABC):
    """Base class for rendering strategies."""
    def __init__(self, sender: str, reply_to: str | None = None) -> None:
        self._sender = sender
        self._reply_to = reply_to

    @property
    @abstractmethod
    def name(self) -> str:
        """Strategy name, for logging."""

    @abstractmethod
    def render(self, notification: Notification) -> MailMessage:
        """Build the message template for a notification."""


class PlainRendering(MessageRendering):
    """Subject from the title, body from the description and link."""

    @property
    def name(self) -> str:
        return "plain"

    def render(self, notification: Notification) -> MailMessage:
        parts: list[str] = []
        if notification.payload.description:
            parts.append(notification.payload.description)
        if notification.payload.link:
            parts.append(notification.payload.link)

        return MailMessage(
            sender=self._sender,
            subject=notification.payload.title,
            html=f"<p>{'<br/>'.join(parts)}</p>" if parts else "",
            text="\n\n".join(parts),
            reply_to=self._reply_to,
        )


class TemplateRendering(MessageRendering):
    """Subject and bodies from the renderer's accessors, each optional."""
    def __init__(self, renderer: TemplateRenderer, sender: str, reply_to: str | None = None) -> None:
        super().__init__(sender, reply_to)
        self._renderer = renderer

    @property
    def name(self) -> str:
        return "template"

    def _call(self, accessor: str, notification: Notification) -> str | None:
        fn: Callable[[Notification], str | None] | None = getattr(self._renderer, accessor, None)
        if fn is None:
            return None
        return fn(notification)

    def render(self, notification: Notification) -> MailMessage:
        subject = self._call("get_subject", notification)
        return MailMessage(
            sender=self._sender,
            subject=subject if subject is not None else notification.payload.title,
            html=self._call("get_html", notification),
            text=self._call("get_text", notification),
            reply_to=self._reply_to,
        )


def select_rendering(
    renderer: TemplateRenderer | None,
    sender: str,
    reply_to: str | None = None,
) -> MessageRendering:
    """Pick the rendering strategy for the lifetime of a processor."""
    if renderer is None:
        return PlainRendering(sender, reply_to)
    return TemplateRendering(renderer, sender, reply_to)


class JinjaTemplateRenderer:
    """
    Jinja2-based template renderer.

    Templates see ``notification``, ``payload`` and any extra ``context``.
    HTML is autoescaped; undefined variables fail the render.
    """
    def __init__(
        self,
        subject_template: str | None = None,
        html_template: str | None = None,
        text_template: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self._html_env = Environment(loader=BaseLoader(), autoescape=True, undefined=StrictUndefined)
        self._text_env = Environment(loader=BaseLoader(), autoescape=False, undefined=StrictUndefined)
        self._templates = {
            "subject": self._text_env.from_string(subject_template) if subject_template else None,
            "html": self._html_env.from_string(html_template) if html_template else None,
            "text": self._text_env.from_string(text_template) if text_template else None,
        }
        self._context = context or {}
        logger.info("jinja_renderer_initialized",
                    templates=[k for k, v in self._templates.items() if v is not None])

    def _render(self, field: str, notification: Notification) -> str | None:
        template = self._templates[field]
        if template is None:
            return None
        try:
            return template.render(notification=notification, payload=notification.payload, **self._context)
        except TemplateError as e:
            logger.error("template_render_failed", field=field, notification_id=notification.id, error=str(e))
            raise TemplateRenderError(field, str(e), cause=e) from e

    def get_subject(self, notification: Notification) -> str | None:
        subject = self._render("subject", notification)
        return subject.strip() if subject is not None else None

    def get_html(self, notification: Notification) -> str | None:
        return self._render("html", notification)

    def get_text(self, notification: Notification) -> str | None:
        return self._render("text", notification)
