from __future__ import annotations

import logging
import os
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


class EmailProvider:
    """Mail transport. `send` returns on success and raises on failure."""

    def send(
        self,
        *,
        recipient: str,
        subject: str,
        html_body: str,
        correlation_id: str | None = None,
    ) -> None:
        raise NotImplementedError


class NoopProvider(EmailProvider):
    def send(
        self,
        *,
        recipient: str,
        subject: str,
        html_body: str,
        correlation_id: str | None = None,
    ) -> None:
        return None


class SmtpProvider(EmailProvider):
    """
    One SMTP connection per message. Implicit TLS when `use_ssl` is set,
    otherwise STARTTLS is attempted when the server advertises it.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: str,
        sender_name: Optional[str] = None,
        use_ssl: bool = False,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.sender_name = sender_name
        self.use_ssl = use_ssl
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "SmtpProvider":
        host = os.getenv("SMTP_HOST", "").strip()
        sender = (os.getenv("SMTP_FROM") or os.getenv("SMTP_USER") or "").strip()
        if not host or not sender:
            raise ValueError("SMTP_HOST and SMTP_FROM (or SMTP_USER) must be set for the smtp provider")
        return cls(
            host=host,
            port=int(os.getenv("SMTP_PORT", "587")),
            username=os.getenv("SMTP_USER") or None,
            password=os.getenv("SMTP_PASS") or None,
            sender=sender,
            sender_name=os.getenv("SMTP_SENDER_NAME") or None,
            use_ssl=os.getenv("SMTP_USE_SSL", "false").lower() in {"1", "true", "yes", "on"},
            timeout=float(os.getenv("SMTP_TIMEOUT_SEC", "30")),
        )

    def _build_message(self, *, recipient: str, subject: str, html_body: str, correlation_id: str | None) -> EmailMessage:
        message = EmailMessage()
        message["From"] = formataddr((self.sender_name or "", self.sender))
        message["To"] = recipient
        message["Subject"] = subject
        if correlation_id:
            message["X-Correlation-ID"] = correlation_id
        message.set_content("This message requires an HTML capable mail client.")
        message.add_alternative(html_body, subtype="html")
        return message

    def send(
        self,
        *,
        recipient: str,
        subject: str,
        html_body: str,
        correlation_id: str | None = None,
    ) -> None:
        message = self._build_message(
            recipient=recipient,
            subject=subject,
            html_body=html_body,
            correlation_id=correlation_id,
        )
        if self.use_ssl:
            client = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            client = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        with client:
            if not self.use_ssl:
                client.ehlo()
                if client.has_extn("starttls"):
                    client.starttls()
                    client.ehlo()
            if self.username and self.password:
                client.login(self.username, self.password)
            client.send_message(message)
        logger.debug("smtp message sent", extra={"recipient": recipient, "correlation_id": correlation_id})


def get_email_provider() -> Tuple[EmailProvider, bool]:
    provider_name = (
        os.getenv("NOTIFICATIONS_EMAIL_PROVIDER")
        or os.getenv("EMAIL_PROVIDER")
        or ""
    ).strip().lower()
    if not provider_name or provider_name in {"none", "noop", "disabled"}:
        return NoopProvider(), False
    if provider_name == "smtp":
        return SmtpProvider.from_env(), True
    raise ValueError(f"Unsupported email provider: {provider_name}")
