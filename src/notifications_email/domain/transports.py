"""
Email Notification Processor - Mail Transports.

Concrete mail transports (SMTP, Amazon SES, local sendmail) and the factory
that picks one from configuration.

Architecture Layer: Domain/Infrastructure
Principles: Strategy Pattern, Dependency Inversion, Async I/O
"""
from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from email.header import Header
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, make_msgid, parseaddr
from enum import Enum
from typing import Any

import aiosmtplib
import structlog

from ..config import TransportConfig
from ..errors import ConfigurationError, SendError, UnsupportedTransportError
from .entities import MailMessage

logger = structlog.get_logger(__name__)


# Newlines and control characters that could inject extra headers
_HEADER_INJECTION_PATTERN = re.compile(r'[\r\n\x00\x0b\x0c]')
_EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')


def _sanitize_header(value: str | None, max_length: int = 998) -> str:
    """
    Sanitize a string for safe use in email headers.

    Args:
        value: The header value to sanitize.
        max_length: Maximum length for the header value (RFC 5322 recommends 998).

    Returns:
        Sanitized string safe for use in email headers.
    """
    if not value:
        return ""
    sanitized = _HEADER_INJECTION_PATTERN.sub('', value)
    return sanitized[:max_length].strip()


def _validate_email_address(email: str) -> bool:
    if not email or len(email) > 254:  # RFC 5321 max length
        return False
    return _EMAIL_PATTERN.match(email) is not None


def _format_address(value: str) -> str:
    name, address = parseaddr(_sanitize_header(value))
    return formataddr((name, address)) if name else address


class TransportKind(str, Enum):
    """Supported mail transport kinds."""
    SMTP = "smtp"
    SES = "ses"
    SENDMAIL = "sendmail"


def build_mime_message(message: MailMessage) -> MIMEMultipart:
    """Build a multipart/alternative MIME message with sanitized headers."""
    recipient = _sanitize_header(message.to)
    if not _validate_email_address(recipient):
        raise SendError("mime", message.to, f"Invalid email address format: {str(message.to)[:50]}")

    mime = MIMEMultipart("alternative")
    # Header gives RFC 2047 encoding for non-ASCII subjects
    mime["Subject"] = Header(_sanitize_header(message.subject, max_length=200), "utf-8")
    mime["From"] = _format_address(message.sender)
    mime["To"] = recipient
    if message.reply_to:
        mime["Reply-To"] = _format_address(message.reply_to)
    mime["Message-ID"] = make_msgid()

    if message.text is not None or not message.html:
        mime.attach(MIMEText(message.text or "", "plain", "utf-8"))
    if message.html:
        mime.attach(MIMEText(message.html, "html", "utf-8"))
    return mime


class BaseMailTransport(ABC):
    """Base class for mail transports."""
    def __init__(self, config: TransportConfig) -> None:
        self._config = config

    @property
    @abstractmethod
    def kind(self) -> str:
        """Transport kind name."""

    @abstractmethod
    async def send(self, message: MailMessage) -> str | None:
        """Send one addressed message, returning the provider message id if any."""


class SmtpTransport(BaseMailTransport):
    """Mail transport using SMTP."""

    @property
    def kind(self) -> str:
        return TransportKind.SMTP.value

    async def send(self, message: MailMessage) -> str | None:
        mime = build_mime_message(message)
        password = self._config.password.get_secret_value() if self._config.password else ""
        try:
            async with aiosmtplib.SMTP(
                hostname=self._config.hostname,
                port=self._config.port,
                use_tls=self._config.secure,
                # implicit TLS already covers require_tls
                start_tls=True if self._config.require_tls and not self._config.secure else None,
                timeout=self._config.timeout_seconds,
            ) as smtp:
                if self._config.username:
                    await smtp.login(self._config.username, password)
                response = await smtp.send_message(mime)
        except Exception as e:
            raise SendError(self.kind, message.to, str(e), cause=e) from e
        return str(mime["Message-ID"]) if response else None


class SesTransport(BaseMailTransport):
    """Mail transport using the Amazon SES v2 API."""
    def __init__(self, config: TransportConfig, client: Any | None = None) -> None:
        super().__init__(config)
        self._client = client

    @property
    def kind(self) -> str:
        return TransportKind.SES.value

    async def connect(self) -> Any:
        if self._client is not None:
            return self._client
        try:
            import boto3
        except ImportError as e:
            raise ConfigurationError("boto3 package not installed. Install with: pip install boto3",
                                     cause=e) from e
        kwargs: dict[str, Any] = {}
        if self._config.region:
            kwargs["region_name"] = self._config.region
        if self._config.endpoint:
            kwargs["endpoint_url"] = self._config.endpoint
        if self._config.access_key_id and self._config.secret_access_key:
            kwargs["aws_access_key_id"] = self._config.access_key_id
            kwargs["aws_secret_access_key"] = self._config.secret_access_key.get_secret_value()
        self._client = await asyncio.to_thread(boto3.client, "sesv2", **kwargs)
        logger.info("ses_client_initialized", region=self._config.region)
        return self._client

    def _build_request(self, message: MailMessage) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if message.text is not None or not message.html:
            body["Text"] = {"Data": message.text or "", "Charset": "UTF-8"}
        if message.html:
            body["Html"] = {"Data": message.html, "Charset": "UTF-8"}
        request: dict[str, Any] = {
            "FromEmailAddress": message.sender,
            "Destination": {"ToAddresses": [message.to]},
            "Content": {
                "Simple": {
                    "Subject": {"Data": _sanitize_header(message.subject, max_length=200), "Charset": "UTF-8"},
                    "Body": body,
                },
            },
        }
        if message.reply_to:
            request["ReplyToAddresses"] = [message.reply_to]
        if self._config.configuration_set:
            request["ConfigurationSetName"] = self._config.configuration_set
        return request

    async def send(self, message: MailMessage) -> str | None:
        if not message.to or not _validate_email_address(_sanitize_header(message.to)):
            raise SendError(self.kind, message.to, "Invalid email address format")
        client = await self.connect()
        try:
            response = await asyncio.to_thread(client.send_email, **self._build_request(message))
        except Exception as e:
            raise SendError(self.kind, message.to, str(e), cause=e) from e
        return response.get("MessageId")


class SendmailTransport(BaseMailTransport):
    """Mail transport piping RFC 5322 messages to a local sendmail binary."""

    @property
    def kind(self) -> str:
        return TransportKind.SENDMAIL.value

    async def send(self, message: MailMessage) -> str | None:
        mime = build_mime_message(message)
        linesep = "\r\n" if self._config.newline == "windows" else "\n"
        raw = mime.as_bytes(policy=mime.policy.clone(linesep=linesep))
        try:
            process = await asyncio.create_subprocess_exec(
                self._config.path, "-i", "-t",
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await asyncio.wait_for(process.communicate(raw), self._config.timeout_seconds)
        except Exception as e:
            raise SendError(self.kind, message.to, str(e), cause=e) from e
        if process.returncode != 0:
            reason = stderr.decode(errors="replace").strip()[:200] if stderr else ""
            raise SendError(self.kind, message.to, f"sendmail exited with {process.returncode}: {reason}")
        return str(mime["Message-ID"])


async def create_transport(config: TransportConfig) -> BaseMailTransport:
    """
    Create the mail transport selected by ``config.transport``.

    Raises:
        UnsupportedTransportError: the transport kind is not smtp, ses or sendmail
    """
    kind = config.transport
    if kind == TransportKind.SMTP.value:
        transport: BaseMailTransport = SmtpTransport(config)
    elif kind == TransportKind.SES.value:
        ses = SesTransport(config)
        await ses.connect()
        transport = ses
    elif kind == TransportKind.SENDMAIL.value:
        transport = SendmailTransport(config)
    else:
        raise UnsupportedTransportError(kind)
    logger.info("email_transport_created", transport=kind)
    return transport
