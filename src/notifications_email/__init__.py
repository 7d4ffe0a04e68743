"""
Email Notification Processor.

Delivers notifications by email to recipients resolved at send time, with
recipient caching, plain or templated rendering, and throttled per-recipient
dispatch.

Architecture:
    - Domain Layer: recipient resolution, rendering, throttled dispatch, transports
    - Infrastructure Layer: recipient caches, catalog directory client

Usage:
    from notifications_email import NotificationsEmailProcessor, EmailProcessorSettings
    from notifications_email.main import create_processor
"""
from .config import EmailProcessorSettings
from .domain import Notification, NotificationsEmailProcessor, SendOptions

__version__ = "1.0.0"

__all__ = [
    "EmailProcessorSettings",
    "Notification",
    "NotificationsEmailProcessor",
    "SendOptions",
]
