"""
Pytest configuration and fixtures for email processor tests.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any
from unittest.mock import AsyncMock

import pytest

from notifications_email.config import EmailProcessorSettings, reset_settings
from notifications_email.domain.entities import MailMessage, Notification, NotificationPayload
from notifications_email.errors import SendError
from notifications_email.infrastructure.cache import InMemoryTTLCache


class FakeClock:
    """Manually advanced monotonic clock."""
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingTransport:
    """Transport double that records sent messages and send start times."""
    def __init__(self, fail_for: set[str] | None = None, delay: float = 0.0) -> None:
        self.fail_for = fail_for or set()
        self.delay = delay
        self.sent: list[MailMessage] = []
        self.started_at: list[float] = []

    @property
    def kind(self) -> str:
        return "recording"

    async def send(self, message: MailMessage) -> str | None:
        self.started_at.append(time.monotonic())
        if self.delay:
            await asyncio.sleep(self.delay)
        self.sent.append(message)
        if message.to in self.fail_for:
            raise SendError(self.kind, message.to, "mailbox unavailable")
        return f"id-{len(self.sent)}"


def make_settings(**overrides: Any) -> EmailProcessorSettings:
    values: dict[str, Any] = {
        "transport": {"transport": "smtp", "hostname": "smtp.test.com"},
        "sender": "notifications@example.com",
    }
    values.update(overrides)
    return EmailProcessorSettings(**values)


def make_notification(
    user: str | None = "user:default/jdoe",
    title: str = "Build failed",
    description: str | None = "The nightly build failed.",
    link: str | None = "https://ci.example.com/builds/42",
    notification_id: str = "notif-1",
) -> Notification:
    return Notification(
        id=notification_id,
        user=user,
        payload=NotificationPayload(title=title, description=description, link=link),
    )


def user_entity(email: str | None, name: str = "jdoe") -> dict[str, Any]:
    profile: dict[str, Any] = {"displayName": name}
    if email is not None:
        profile["email"] = email
    return {"kind": "User", "metadata": {"name": name}, "spec": {"profile": profile}}


@pytest.fixture(autouse=True)
def _reset_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return InMemoryTTLCache(clock=clock)


@pytest.fixture
def directory():
    """Directory double with one user entity and three broadcast users."""
    mock = AsyncMock()
    mock.acquire_service_credential.return_value = "service-token"
    mock.query_users_with_email.return_value = [
        user_entity("alice@example.com", "alice"),
        user_entity("bob@example.com", "bob"),
        user_entity("alice@example.com", "alice-dup"),
    ]
    mock.get_entity_by_ref.return_value = user_entity("jdoe@example.com")
    return mock


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def settings():
    return make_settings()
