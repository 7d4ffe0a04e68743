"""
Email Notification Processor - Ports.

Interfaces of the collaborators the processor consumes but does not own:
the recipient cache, the user directory, the mail transport and an optional
template renderer.
"""
from __future__ import annotations

from typing import Any, Protocol

from .entities import MailMessage, Notification


class CacheFacade(Protocol):
    """Typed cache with per-entry TTL. Implementations must not raise."""

    async def get(self, key: str) -> list[str] | None:  # pragma: no cover - protocol
        ...

    async def set(self, key: str, value: list[str], ttl_ms: int) -> None:  # pragma: no cover - protocol
        ...


class DirectoryClient(Protocol):
    """Resolves user entities and their profile emails."""

    async def acquire_service_credential(self, target_service: str) -> str:  # pragma: no cover - protocol
        ...

    async def query_users_with_email(self, credential: str) -> list[dict[str, Any]]:  # pragma: no cover - protocol
        ...

    async def get_entity_by_ref(self, ref: str, credential: str) -> dict[str, Any] | None:  # pragma: no cover - protocol
        ...


class MailTransport(Protocol):
    """Sends a single, fully addressed message; raises on failure."""

    @property
    def kind(self) -> str:  # pragma: no cover - protocol
        ...

    async def send(self, message: MailMessage) -> str | None:  # pragma: no cover - protocol
        ...


class TemplateRenderer(Protocol):
    """
    Optional renderer for templated emails.

    Any of ``get_subject``, ``get_html`` and ``get_text`` may be omitted by an
    implementation; the processor treats a missing accessor as "no value".
    """

    def get_subject(self, notification: Notification) -> str | None:  # pragma: no cover - protocol
        ...

    def get_html(self, notification: Notification) -> str | None:  # pragma: no cover - protocol
        ...

    def get_text(self, notification: Notification) -> str | None:  # pragma: no cover - protocol
        ...
