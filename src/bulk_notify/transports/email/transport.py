"""Email transport delivering one message per recipient over SMTP.

Each call opens its own SMTP session through ``aiosmtplib.send``; pacing
between calls is the queue's job. Failures are classified from the SMTP reply
code first and the error text second:

- 4xx replies, timeouts, dropped or refused connections: transient
- 421/450/451 and "too many connections" style replies: transient and rate limited
- 5xx replies, authentication failures, TLS mismatches, bad payloads: permanent
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Final

import aiosmtplib

from bulk_notify.transports.email.config import SMTPConfig
from bulk_notify.transports.email.message import InvalidEmailPayloadError, build_email_message
from bulk_notify.types.models import Channel, RecipientTask, SendOutcome
from bulk_notify.utils.sanitization import sanitize_exception

__all__ = ["EmailTransport", "classify_smtp_error", "create_transport"]

type SMTPSender = Callable[..., Awaitable[object]]

_RATE_LIMIT_CODES: Final[frozenset[int]] = frozenset({421, 450, 451})

_RATE_LIMIT_MARKERS: Final[tuple[str, ...]] = (
    "too many connections",
    "too many concurrent",
    "concurrent connections",
    "rate limit",
    "throttl",
)

_TEMPORARY_MARKERS: Final[tuple[str, ...]] = (
    "timeout",
    "timed out",
    "connection refused",
    "connection reset",
    "temporarily unavailable",
    "try again",
)

_PERMANENT_MARKERS: Final[tuple[str, ...]] = (
    "wrong_version_number",
    "certificate verify failed",
    "ssl handshake",
    "certificate_unknown",
    "unknown_ca",
    "certificate has expired",
    "self signed certificate",
    "authentication failed",
    "authentication credentials invalid",
)


def _smtp_code(exc: BaseException) -> int | None:
    if isinstance(exc, aiosmtplib.SMTPRecipientsRefused):
        codes = [refused.code for refused in exc.recipients]
        if not codes:
            return None
        # One refused recipient per message; a permanent refusal wins over a temporary one
        return max(codes)
    code: object = getattr(exc, "code", None)
    return code if isinstance(code, int) and code > 0 else None


def classify_smtp_error(exc: BaseException) -> SendOutcome:
    """Translate an SMTP failure into a send outcome.

    Examples:
        >>> classify_smtp_error(aiosmtplib.SMTPResponseException(550, "No such user")).error_class
        <ErrorClass.PERMANENT: 'permanent'>
        >>> classify_smtp_error(aiosmtplib.SMTPResponseException(421, "Too many connections")).rate_limited
        True
    """
    message = f"SMTP error: {sanitize_exception(exc)}"
    text = str(exc).lower()
    code = _smtp_code(exc)

    if isinstance(exc, aiosmtplib.SMTPAuthenticationError):
        return SendOutcome.permanent(message)

    if code is not None:
        if 400 <= code < 500:
            rate_limited = code in _RATE_LIMIT_CODES or any(marker in text for marker in _RATE_LIMIT_MARKERS)
            return SendOutcome.transient(message, rate_limited=rate_limited)
        if 500 <= code < 600:
            return SendOutcome.permanent(message)

    if any(marker in text for marker in _PERMANENT_MARKERS):
        return SendOutcome.permanent(message)

    if any(marker in text for marker in _RATE_LIMIT_MARKERS):
        return SendOutcome.transient(message, rate_limited=True)

    if isinstance(exc, (TimeoutError, ConnectionError, OSError)):
        return SendOutcome.transient(message)

    if any(marker in text for marker in _TEMPORARY_MARKERS):
        return SendOutcome.transient(message)

    if isinstance(exc, aiosmtplib.SMTPNotSupported):
        return SendOutcome.permanent(message)

    return SendOutcome.transient(message)


@dataclass(slots=True)
class EmailTransport:
    """Transport client sending one email per recipient task."""

    config: SMTPConfig
    sender: SMTPSender = aiosmtplib.send
    channel: Channel = field(default=Channel.EMAIL, init=False)
    _logger: logging.Logger = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    async def send_one(self, task: RecipientTask) -> SendOutcome:
        """Build and send the message for one recipient."""
        try:
            message = build_email_message(
                task,
                sender=self.config.sender,
                sender_name=self.config.sender_name,
            )
        except InvalidEmailPayloadError as exc:
            self._logger.warning("Rejected email payload for %s: %s", task.label, exc)
            return SendOutcome.permanent(f"Invalid email payload: {exc}")

        try:
            _ = await self.sender(
                message,
                sender=self.config.sender,
                recipients=[message["To"]],
                hostname=self.config.host,
                port=self.config.port,
                username=self.config.username,
                password=self.config.password,
                use_tls=self.config.implicit_tls,
                start_tls=self.config.use_tls and not self.config.implicit_tls,
                timeout=self.config.timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            outcome = classify_smtp_error(exc)
            self._logger.debug(
                "SMTP send to %s failed (%s, rate_limited=%s): %s",
                task.label,
                outcome.error_class,
                outcome.rate_limited,
                outcome.message,
            )
            return outcome

        return SendOutcome.ok()

    def validate_config(self) -> bool:
        """Validate SMTP settings needed to send anything."""
        if not self.config.host:
            self._logger.error("SMTP host is missing")
            return False
        if not self.config.sender:
            self._logger.error("SMTP sender address is missing")
            return False
        if (self.config.username is None) != (self.config.password is None):
            self._logger.error("SMTP username and password must be configured together")
            return False
        return True


def create_transport(*, config: SMTPConfig, sender: SMTPSender | None = None) -> EmailTransport:
    """Factory for creating EmailTransport instances."""
    if sender is None:
        return EmailTransport(config=config)
    return EmailTransport(config=config, sender=sender)
