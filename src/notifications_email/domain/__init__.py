"""
Email Notification Processor - Domain Layer.

Recipient resolution, message rendering, throttled dispatch, mail transports
and the orchestrating processor.
"""
from .entities import (
    MailMessage,
    Notification,
    NotificationPayload,
    NotificationSeverity,
    RecipientDirective,
    RecipientType,
    SendOptions,
)
from .recipients import (
    BroadcastReceiver,
    RecipientResolver,
)
from .rendering import (
    JinjaTemplateRenderer,
    MessageRendering,
    PlainRendering,
    TemplateRendering,
    select_rendering,
)
from .throttle import Throttle
from .dispatch import (
    DispatchSummary,
    ThrottledDispatcher,
)
from .transports import (
    SendmailTransport,
    SesTransport,
    SmtpTransport,
    TransportKind,
    create_transport,
)
from .processor import (
    NotificationsEmailProcessor,
    ProcessingOutcome,
    ProcessingState,
    create_email_processor,
)

__all__ = [
    # Entities
    "MailMessage",
    "Notification",
    "NotificationPayload",
    "NotificationSeverity",
    "RecipientDirective",
    "RecipientType",
    "SendOptions",
    # Recipients
    "BroadcastReceiver",
    "RecipientResolver",
    # Rendering
    "JinjaTemplateRenderer",
    "MessageRendering",
    "PlainRendering",
    "TemplateRendering",
    "select_rendering",
    # Dispatch
    "Throttle",
    "DispatchSummary",
    "ThrottledDispatcher",
    # Transports
    "SendmailTransport",
    "SesTransport",
    "SmtpTransport",
    "TransportKind",
    "create_transport",
    # Processor
    "NotificationsEmailProcessor",
    "ProcessingOutcome",
    "ProcessingState",
    "create_email_processor",
]
