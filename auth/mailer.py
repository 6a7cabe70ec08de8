"""
auth/mailer.py -- Outbound email for verification and password-reset links.

The service only sees the Mailer protocol: send(to, subject, body), raising
MailError on failure. Delivery is fire-and-forget from the service's point of
view -- no retries, no queue.

Implementations:
  SmtpMailer -- smtplib over implicit TLS (port 465) or STARTTLS.
  LogMailer  -- used when MAIL_HOST is empty. Logs recipient and subject; the
                body (which contains a live link) only in debug mode.

build_mailer(settings) picks one at startup.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Protocol

from auth.errors import MailError
from core.config import Settings

logger = logging.getLogger("sessiongate.mail")

VERIFICATION_SUBJECT = "Account Verification"
PASSWORD_RESET_SUBJECT = "Password Reset"


class Mailer(Protocol):
    def send(self, to: str, subject: str, body: str) -> None: ...


def verification_message(link: str) -> tuple[str, str]:
    return VERIFICATION_SUBJECT, f"Click the link to verify your account: {link}"


def password_reset_message(link: str) -> tuple[str, str]:
    return PASSWORD_RESET_SUBJECT, f"Please use the following link to reset your password: {link}"


class SmtpMailer:
    """Send plain-text mail through an SMTP relay.

    A new connection per message keeps the mailer stateless and thread-safe;
    auth mail volume is low.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str = "",
        password: str = "",
        sender: str = "",
        use_ssl: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username
        self.use_ssl = use_ssl
        self.timeout = timeout

    def send(self, to: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        context = ssl.create_default_context()
        try:
            if self.use_ssl:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context) as server:
                    self._deliver(server, message)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    self._deliver(server, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Mail to %s failed: %s", to, exc)
            raise MailError(detail=str(exc)) from exc
        logger.info("Sent %r to %s", subject, to)

    def _deliver(self, server: smtplib.SMTP, message: EmailMessage) -> None:
        if self.username:
            server.login(self.username, self.password)
        server.send_message(message)


class LogMailer:
    """Stand-in transport for development: nothing leaves the process."""

    def __init__(self, include_body: bool = False) -> None:
        self.include_body = include_body

    def send(self, to: str, subject: str, body: str) -> None:
        if self.include_body:
            logger.info("Mail transport not configured; %r to %s: %s", subject, to, body)
        else:
            logger.warning("Mail transport not configured; dropped %r to %s", subject, to)


def build_mailer(settings: Settings) -> Mailer:
    if not settings.mail_host:
        return LogMailer(include_body=settings.debug)
    return SmtpMailer(
        host=settings.mail_host,
        port=settings.mail_port,
        username=settings.mail_username,
        password=settings.mail_password,
        sender=settings.mail_sender,
        use_ssl=settings.mail_use_ssl,
        timeout=settings.mail_timeout_seconds,
    )
