"""Email provider implementations used by the application."""
from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Dict, Optional, Sequence

from .config import EmailConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailAttachment:
    filename: str
    content: bytes
    content_type: str = "application/pdf"


class EmailProvider:
    """Base provider for outbound email delivery."""

    name = "base"

    def __init__(self, *, from_email: str, from_name: Optional[str] = None) -> None:
        self.from_email = from_email
        self.from_name = from_name

    @property
    def sender(self) -> str:
        if self.from_name:
            return formataddr((self.from_name, self.from_email))
        return self.from_email

    def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
        attachments: Sequence[EmailAttachment] = (),
    ) -> None:
        raise NotImplementedError

    def describe(self) -> Dict[str, str]:
        return {"email_provider": self.name, "email_sender": self.from_email}


class DevPrintProvider(EmailProvider):
    """Development provider that logs messages instead of sending them."""

    name = "dev"

    def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
        attachments: Sequence[EmailAttachment] = (),
    ) -> None:
        logger.info(
            "Dev email dispatch",
            extra={
                "email_recipient": to,
                "email_subject": subject,
                "email_sender": self.from_email,
                "email_attachments": [attachment.filename for attachment in attachments],
            },
        )


class SMTPProvider(EmailProvider):
    """Simple SMTP-based provider for production use."""

    name = "smtp"

    def __init__(
        self,
        *,
        from_email: str,
        host: str,
        port: int,
        username: Optional[str],
        password: Optional[str],
        use_tls: bool,
        from_name: Optional[str] = None,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(from_email=from_email, from_name=from_name)
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_message(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
        attachments: Sequence[EmailAttachment] = (),
    ) -> MIMEMultipart:
        body = MIMEMultipart("alternative")
        body.attach(MIMEText(text_body, "plain", "utf-8"))
        body.attach(MIMEText(html_body, "html", "utf-8"))

        if attachments:
            message = MIMEMultipart("mixed")
            message.attach(body)
            for attachment in attachments:
                subtype = attachment.content_type.split("/", 1)[-1]
                part = MIMEApplication(attachment.content, _subtype=subtype)
                part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
                message.attach(part)
        else:
            message = body

        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        return message

    def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        text_body: str,
        attachments: Sequence[EmailAttachment] = (),
    ) -> None:
        payload = self._build_message(to, subject, html_body, text_body, attachments).as_string()
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as client:
            if self.use_tls:
                client.starttls()
            if self.username and self.password:
                client.login(self.username, self.password)
            client.sendmail(self.from_email, [to], payload)


def create_email_provider(config: EmailConfig) -> EmailProvider:
    provider = (config.provider_name or "dev").strip().lower()
    if provider == "smtp" and config.smtp_host:
        return SMTPProvider(
            from_email=config.from_email,
            from_name=config.from_name,
            host=config.smtp_host,
            port=config.smtp_port,
            username=config.smtp_username,
            password=config.smtp_password,
            use_tls=config.smtp_use_tls,
            timeout=config.smtp_timeout,
        )
    if provider != "dev":
        logger.warning("Email provider %s is not usable; falling back to dev output", provider)
    return DevPrintProvider(from_email=config.from_email, from_name=config.from_name)


__all__ = [
    "DevPrintProvider",
    "EmailAttachment",
    "EmailProvider",
    "SMTPProvider",
    "create_email_provider",
]
