"""
Unit tests for mail transports and the transport factory.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from notifications_email.config import TransportConfig
from notifications_email.domain.entities import MailMessage
from notifications_email.domain.transports import (
    SendmailTransport,
    SesTransport,
    SmtpTransport,
    build_mime_message,
    create_transport,
)
from notifications_email.errors import SendError, UnsupportedTransportError


@pytest.fixture
def message():
    return MailMessage(
        sender="Notifications <notifications@example.com>",
        subject="Build failed",
        html="<p>failed</p>",
        text="failed",
        reply_to="support@example.com",
        to="jdoe@example.com",
    )


class TestBuildMimeMessage:
    """Tests for MIME message construction."""

    def test_headers_and_parts(self, message):
        """Test headers are set and both bodies are attached."""
        mime = build_mime_message(message)

        assert mime["To"] == "jdoe@example.com"
        assert mime["From"] == "Notifications <notifications@example.com>"
        assert mime["Reply-To"] == "support@example.com"
        assert mime["Message-ID"]
        assert [part.get_content_type() for part in mime.get_payload()] == ["text/plain", "text/html"]

    def test_html_only(self, message):
        """Test a message without text carries only the html part."""
        mime = build_mime_message(message.model_copy(update={"text": None}))

        assert [part.get_content_type() for part in mime.get_payload()] == ["text/html"]

    def test_header_injection_stripped(self, message):
        """Test newlines in the subject cannot add headers."""
        mime = build_mime_message(message.model_copy(update={"subject": "Hi\r\nBcc: evil@example.com"}))

        assert mime["Bcc"] is None
        assert "\n" not in str(mime["Subject"])

    def test_invalid_recipient(self, message):
        """Test an invalid recipient address is rejected."""
        with pytest.raises(SendError):
            build_mime_message(message.model_copy(update={"to": "not-an-address"}))


class TestSmtpTransport:
    """Tests for SmtpTransport."""

    @pytest.mark.asyncio
    async def test_send_success(self, message):
        """Test successful SMTP send with login."""
        config = TransportConfig(transport="smtp", hostname="smtp.test.com", port=465, secure=True,
                                 username="mailer", password="secret")
        transport = SmtpTransport(config)

        with patch("aiosmtplib.SMTP") as mock_smtp:
            mock_instance = AsyncMock()
            mock_instance.send_message.return_value = ({}, "OK")
            mock_smtp.return_value.__aenter__.return_value = mock_instance

            message_id = await transport.send(message)

        assert message_id
        assert mock_smtp.call_args.kwargs["hostname"] == "smtp.test.com"
        assert mock_smtp.call_args.kwargs["use_tls"] is True
        mock_instance.login.assert_awaited_once_with("mailer", "secret")
        mock_instance.send_message.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_login_without_username(self, message):
        """Test anonymous SMTP skips login."""
        transport = SmtpTransport(TransportConfig(transport="smtp", require_tls=True))

        with patch("aiosmtplib.SMTP") as mock_smtp:
            mock_instance = AsyncMock()
            mock_instance.send_message.return_value = ({}, "OK")
            mock_smtp.return_value.__aenter__.return_value = mock_instance

            await transport.send(message)

        assert mock_smtp.call_args.kwargs["start_tls"] is True
        mock_instance.login.assert_not_called()

    @pytest.mark.asyncio
    async def test_secure_with_require_tls(self, message):
        """Test implicit TLS is not combined with STARTTLS when both are configured."""
        transport = SmtpTransport(TransportConfig(transport="smtp", port=465, secure=True, require_tls=True))

        with patch("aiosmtplib.SMTP") as mock_smtp:
            mock_instance = AsyncMock()
            mock_instance.send_message.return_value = ({}, "OK")
            mock_smtp.return_value.__aenter__.return_value = mock_instance

            assert await transport.send(message)

        assert mock_smtp.call_args.kwargs["use_tls"] is True
        assert mock_smtp.call_args.kwargs["start_tls"] is None
        mock_instance.send_message.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_send_failure(self, message):
        """Test SMTP errors surface as SendError."""
        transport = SmtpTransport(TransportConfig(transport="smtp"))

        with patch("aiosmtplib.SMTP") as mock_smtp:
            mock_smtp.return_value.__aenter__.side_effect = ConnectionRefusedError("refused")

            with pytest.raises(SendError) as exc_info:
                await transport.send(message)

        assert exc_info.value.recipient == "jdoe@example.com"
        assert exc_info.value.transport == "smtp"


class TestSesTransport:
    """Tests for SesTransport."""

    @pytest.mark.asyncio
    async def test_send_builds_sesv2_request(self, message):
        """Test the SES request carries destination, content and reply-to."""
        client = MagicMock()
        client.send_email.return_value = {"MessageId": "ses-123"}
        config = TransportConfig(transport="ses", region="eu-west-1", configuration_set="tracking")
        transport = SesTransport(config, client=client)

        assert await transport.send(message) == "ses-123"

        kwargs = client.send_email.call_args.kwargs
        assert kwargs["Destination"] == {"ToAddresses": ["jdoe@example.com"]}
        assert kwargs["ReplyToAddresses"] == ["support@example.com"]
        assert kwargs["ConfigurationSetName"] == "tracking"
        body = kwargs["Content"]["Simple"]["Body"]
        assert body["Html"]["Data"] == "<p>failed</p>"
        assert body["Text"]["Data"] == "failed"

    @pytest.mark.asyncio
    async def test_send_failure(self, message):
        """Test SES client errors surface as SendError."""
        client = MagicMock()
        client.send_email.side_effect = RuntimeError("throttled")
        transport = SesTransport(TransportConfig(transport="ses"), client=client)

        with pytest.raises(SendError):
            await transport.send(message)

    @pytest.mark.asyncio
    async def test_connect_creates_client_once(self):
        """Test the boto3 client is built lazily and reused."""
        config = TransportConfig(transport="ses", region="us-east-1")
        transport = SesTransport(config)

        with patch("boto3.client") as mock_client:
            first = await transport.connect()
            second = await transport.connect()

        assert first is second
        mock_client.assert_called_once_with("sesv2", region_name="us-east-1")


class TestSendmailTransport:
    """Tests for SendmailTransport."""

    def _process(self, returncode: int = 0, stderr: bytes = b""):
        process = MagicMock()
        process.communicate = AsyncMock(return_value=(b"", stderr))
        process.returncode = returncode
        return process

    @pytest.mark.asyncio
    async def test_pipes_message_to_binary(self, message):
        """Test the rendered message is written to sendmail's stdin."""
        transport = SendmailTransport(TransportConfig(transport="sendmail", path="/usr/sbin/sendmail"))
        process = self._process()

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)) as mock_exec:
            assert await transport.send(message)

        assert mock_exec.call_args.args[:3] == ("/usr/sbin/sendmail", "-i", "-t")
        raw = process.communicate.call_args.args[0]
        assert b"To: jdoe@example.com" in raw
        assert b"\r\n" not in raw

    @pytest.mark.asyncio
    async def test_windows_newlines(self, message):
        """Test the windows newline option uses CRLF."""
        transport = SendmailTransport(TransportConfig(transport="sendmail", newline="windows"))
        process = self._process()

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            await transport.send(message)

        assert b"\r\n" in process.communicate.call_args.args[0]

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, message):
        """Test a failing sendmail exit code raises SendError."""
        transport = SendmailTransport(TransportConfig(transport="sendmail"))
        process = self._process(returncode=75, stderr=b"queue full")

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=process)):
            with pytest.raises(SendError) as exc_info:
                await transport.send(message)

        assert "queue full" in exc_info.value.reason


class TestCreateTransport:
    """Tests for the transport factory."""

    @pytest.mark.asyncio
    async def test_smtp(self):
        """Test smtp config builds an SMTP transport."""
        transport = await create_transport(TransportConfig(transport="smtp"))
        assert isinstance(transport, SmtpTransport)
        assert transport.kind == "smtp"

    @pytest.mark.asyncio
    async def test_sendmail(self):
        """Test sendmail config builds a sendmail transport."""
        assert isinstance(await create_transport(TransportConfig(transport="sendmail")), SendmailTransport)

    @pytest.mark.asyncio
    async def test_ses(self):
        """Test ses config builds a connected SES transport."""
        with patch("boto3.client") as mock_client:
            transport = await create_transport(TransportConfig(transport="ses", region="eu-west-1"))

        assert isinstance(transport, SesTransport)
        mock_client.assert_called_once()

    @pytest.mark.asyncio
    async def test_unsupported(self):
        """Test an unknown transport kind is rejected."""
        with pytest.raises(UnsupportedTransportError) as exc_info:
            await create_transport(TransportConfig(transport="pigeon"))

        assert str(exc_info.value) == "Unsupported transport: pigeon"
