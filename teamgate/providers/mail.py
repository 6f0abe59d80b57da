# -*- coding: utf-8 -*-
"""Location: ./teamgate/providers/mail.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Mail Providers.
Delivery of fully rendered mail. ``SmtpMailProvider`` talks to an SMTP relay
from a worker thread; ``MockMailProvider`` keeps messages in memory for local
development.
"""

# Standard
import asyncio
from email.message import EmailMessage
from email.utils import make_msgid
import smtplib
from typing import List, Optional

# First-Party
from teamgate.config import settings
from teamgate.schemas import MailMessage, MailReceipt
from teamgate.services.logging_service import LoggingService

logging_service = LoggingService()
logger = logging_service.get_logger(__name__)


class MailProviderError(Exception):
    """Raised when a mail provider cannot deliver a message.

    Examples:
        >>> str(MailProviderError("relay refused"))
        'relay refused'
    """


class MailProvider:
    """Interface of a mail provider."""

    name = "base"

    async def send_mail(self, message: MailMessage) -> MailReceipt:
        """Deliver a message.

        Args:
            message: Rendered message

        Returns:
            MailReceipt: Delivery receipt

        Raises:
            NotImplementedError: Always, subclasses implement delivery
        """
        raise NotImplementedError


class SmtpMailProvider(MailProvider):
    """Deliver mail through an SMTP relay."""

    name = "smtp"

    def __init__(self, host: Optional[str] = None, port: Optional[int] = None, user: Optional[str] = None, password: Optional[str] = None, use_tls: Optional[bool] = None, sender: Optional[str] = None, timeout: Optional[float] = None):
        """Initialize the provider, defaulting every option from settings.

        Args:
            host: SMTP host
            port: SMTP port
            user: SMTP user
            password: SMTP password
            use_tls: Whether to STARTTLS
            sender: From address
            timeout: Socket timeout in seconds
        """
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.user = user if user is not None else settings.smtp_user
        if password is None and settings.smtp_password is not None:
            password = settings.smtp_password.get_secret_value()
        self.password = password
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls
        self.sender = sender or settings.smtp_from
        self.timeout = timeout or settings.smtp_timeout

    def build_message(self, message: MailMessage) -> EmailMessage:
        """Build the MIME message.

        Args:
            message: Rendered message

        Returns:
            EmailMessage: HTML message with a plain text fallback

        Examples:
            >>> provider = SmtpMailProvider(sender="noreply@contoso.com")
            >>> mime = provider.build_message(MailMessage(to=["a@contoso.com", "b@contoso.com"], subject="Hi", content="<p>x</p>", correlation_id="c1"))
            >>> str(mime["To"])
            'a@contoso.com, b@contoso.com'
            >>> str(mime["X-Correlation-ID"])
            'c1'
        """
        mime = EmailMessage()
        mime["From"] = self.sender
        mime["To"] = ", ".join(message.to)
        mime["Subject"] = message.subject
        mime["Message-ID"] = make_msgid()
        if message.correlation_id:
            mime["X-Correlation-ID"] = message.correlation_id
        mime.set_content(message.reason or message.subject)
        mime.add_alternative(message.content, subtype="html")
        return mime

    def _deliver(self, mime: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.user and self.password:
                server.login(self.user, self.password)
            server.send_message(mime)

    async def send_mail(self, message: MailMessage) -> MailReceipt:
        """Deliver a message through the relay.

        Args:
            message: Rendered message

        Returns:
            MailReceipt: Receipt carrying the Message-ID

        Raises:
            MailProviderError: If the relay refuses or cannot be reached
        """
        mime = self.build_message(message)
        try:
            await asyncio.to_thread(self._deliver, mime)
        except (smtplib.SMTPException, OSError) as e:
            raise MailProviderError(f"SMTP delivery via {self.host}:{self.port} failed: {e}") from e
        logger.info(f"Mail '{message.subject}' sent to {len(message.to)} recipient(s)")
        return MailReceipt(provider=self.name, message_id=str(mime["Message-ID"]), accepted=list(message.to))


class MockMailProvider(MailProvider):
    """Keep sent messages in memory.

    Examples:
        >>> import asyncio
        >>> provider = MockMailProvider()
        >>> receipt = asyncio.run(provider.send_mail(MailMessage(to="a@contoso.com", subject="Hi", content="x")))
        >>> receipt.accepted, len(provider.sent)
        (['a@contoso.com'], 1)
    """

    name = "mock"

    def __init__(self) -> None:
        """Initialize an empty outbox."""
        self.sent: List[MailMessage] = []

    async def send_mail(self, message: MailMessage) -> MailReceipt:
        """Record a message.

        Args:
            message: Rendered message

        Returns:
            MailReceipt: Receipt with a sequential message id
        """
        self.sent.append(message)
        logger.debug(f"Mock mail '{message.subject}' recorded for {message.to}")
        return MailReceipt(provider=self.name, message_id=f"mock-{len(self.sent)}", accepted=list(message.to))


def create_mail_provider() -> Optional[MailProvider]:
    """Build the configured mail provider.

    Returns:
        Optional[MailProvider]: The provider, or None when ``mail_provider`` is "none"
    """
    if settings.mail_provider == "smtp":
        return SmtpMailProvider()
    if settings.mail_provider == "mock":
        return MockMailProvider()
    return None
