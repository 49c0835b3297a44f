"""SMTP email transport."""

from bulk_notify.transports.email.config import SMTPConfig
from bulk_notify.transports.email.transport import EmailTransport, classify_smtp_error, create_transport

__all__ = ["EmailTransport", "SMTPConfig", "classify_smtp_error", "create_transport"]
