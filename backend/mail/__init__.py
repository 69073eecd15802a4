"""Outbound email configuration, providers and rendering."""

from .config import EmailConfig, load_email_config
from .providers import (
    DevPrintProvider,
    EmailAttachment,
    EmailProvider,
    SMTPProvider,
    create_email_provider,
)
from .renderer import render_invoice_email

__all__ = [
    "DevPrintProvider",
    "EmailAttachment",
    "EmailConfig",
    "EmailProvider",
    "SMTPProvider",
    "create_email_provider",
    "load_email_config",
    "render_invoice_email",
]
