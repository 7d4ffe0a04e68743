"""
Email Notification Processor - Domain Entities.

Notifications as received from the notifications backend, the send options
that accompany them, and the mail message built from them.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class RecipientType(str, Enum):
    """Addressing mode requested by the sender."""
    BROADCAST = "broadcast"
    ENTITY = "entity"


class NotificationSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class NotificationPayload(BaseModel):
    """User-facing content of a notification."""
    title: str = Field(..., min_length=1)
    description: str | None = Field(default=None)
    link: str | None = Field(default=None)
    severity: NotificationSeverity = Field(default=NotificationSeverity.NORMAL)
    topic: str | None = Field(default=None)

    model_config = {"frozen": True}


class Notification(BaseModel):
    """
    A notification event.

    ``user`` is the entity ref of the addressed user; ``None`` marks a
    broadcast notification.
    """
    id: str = Field(..., min_length=1)
    user: str | None = Field(default=None)
    payload: NotificationPayload
    origin: str | None = Field(default=None)
    created: datetime | None = Field(default=None)

    model_config = {"frozen": True}


class RecipientDirective(BaseModel):
    type: RecipientType
    entity_ref: str | list[str] | None = Field(default=None)

    model_config = {"frozen": True}

    @field_validator("type", mode="before")
    @classmethod
    def accept_targeted_alias(cls, v: Any) -> Any:
        if v == "targeted":
            return RecipientType.ENTITY
        return v


class SendOptions(BaseModel):
    """Options passed alongside a notification by the notifications backend."""
    recipients: RecipientDirective

    model_config = {"frozen": True}

    @classmethod
    def broadcast(cls) -> SendOptions:
        return cls(recipients=RecipientDirective(type=RecipientType.BROADCAST))

    @classmethod
    def for_entity(cls, entity_ref: str | list[str]) -> SendOptions:
        return cls(recipients=RecipientDirective(type=RecipientType.ENTITY, entity_ref=entity_ref))


class MailMessage(BaseModel):
    """
    Transport-agnostic email.

    Built once per notification with ``to`` unset, then copied per recipient.
    """
    sender: str
    subject: str
    html: str | None = None
    text: str | None = None
    reply_to: str | None = None
    to: str | None = None

    model_config = {"frozen": True}

    def for_recipient(self, email: str) -> MailMessage:
        return self.model_copy(update={"to": email})
