"""
Email Notification Processor - Exception Hierarchy.

Structured exceptions carrying an error code, details, and the underlying cause.
Configuration errors are fatal to the processor; everything else is contained
per notification or per recipient.
"""
from __future__ import annotations

from typing import Any


class EmailProcessorError(Exception):
    """Base exception for all email processor errors."""
    error_code: str = "EMAIL_PROCESSOR_ERROR"

    def __init__(self, message: str, *, cause: Exception | None = None,
                 details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"code": self.error_code, "message": self.message,
                                  "details": self.details}
        if self.cause:
            result["cause"] = {"type": type(self.cause).__name__, "message": str(self.cause)}
        return result


class ConfigurationError(EmailProcessorError):
    error_code = "CONFIGURATION_ERROR"


class UnsupportedTransportError(ConfigurationError):
    """Raised when the configured transport kind is not recognised."""
    error_code = "UNSUPPORTED_TRANSPORT"

    def __init__(self, transport: str, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        details["transport"] = transport
        super().__init__(f"Unsupported transport: {transport}", details=details, **kwargs)
        self.transport = transport


class UnsupportedReceiverError(ConfigurationError):
    """Raised when the broadcast receiver mode is not recognised."""
    error_code = "UNSUPPORTED_RECEIVER"

    def __init__(self, receiver: str, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        details["receiver"] = receiver
        super().__init__(f"Unsupported broadcast receiver: {receiver}", details=details, **kwargs)
        self.receiver = receiver


class ResolutionError(EmailProcessorError):
    """Raised when recipient emails cannot be resolved from the directory."""
    error_code = "RESOLUTION_ERROR"


class DirectoryError(EmailProcessorError):
    """Raised by directory adapters on credential or lookup failures."""
    error_code = "DIRECTORY_ERROR"

    def __init__(self, message: str, *, status_code: int | None = None, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details=details, **kwargs)
        self.status_code = status_code


class SendError(EmailProcessorError):
    """Raised when a transport fails to deliver a single message."""
    error_code = "SEND_ERROR"

    def __init__(self, transport: str, recipient: str | None, reason: str, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        details.update({"transport": transport, "recipient": recipient})
        super().__init__(f"[{transport}] Failed to send email to {recipient}: {reason}",
                         details=details, **kwargs)
        self.transport = transport
        self.recipient = recipient
        self.reason = reason


class TemplateRenderError(EmailProcessorError):
    """Raised when a notification template fails to render."""
    error_code = "TEMPLATE_RENDER_ERROR"

    def __init__(self, field: str, reason: str, **kwargs: Any) -> None:
        details = kwargs.pop("details", {})
        details["field"] = field
        super().__init__(f"Failed to render email {field}: {reason}", details=details, **kwargs)
        self.field = field
        self.reason = reason


class CacheError(EmailProcessorError):
    error_code = "CACHE_ERROR"
