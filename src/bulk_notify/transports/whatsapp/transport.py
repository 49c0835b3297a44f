"""WhatsApp transport delivering a worker's QR code through a message template.

Payload keys:
- ``name``: worker name placed in the template body
- ``qr_code``: PNG image as base64 text or a ``data:image/png;base64,`` URL
- ``language``: optional UI language (``zh-CN``, ``en-US``, ``zh-TW``)
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Final

from bulk_notify.transports.whatsapp.client import (
    WhatsAppAPIClient,
    WhatsAppAPIError,
    WhatsAppAuthenticationError,
)
from bulk_notify.transports.whatsapp.config import WhatsAppConfig
from bulk_notify.types.models import Channel, RecipientTask, SendOutcome
from bulk_notify.types.protocols import HTTPClient

__all__ = [
    "WhatsAppTransport",
    "classify_api_error",
    "create_transport",
    "normalize_phone_number",
    "resolve_template",
]

_PHONE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\+\d{6,15}$")

# UI language -> (API language code, template suffix)
_LANGUAGES: Final[Mapping[str, tuple[str, str]]] = {
    "zh-CN": ("zh_CN", "_cn"),
    "en-US": ("en", "_en"),
    "zh-TW": ("zh_HK", "_tw"),
}
_DEFAULT_LANGUAGE: Final[str] = "zh-TW"
_TEMPLATE_SUFFIXES: Final[tuple[str, ...]] = tuple(suffix for _, suffix in _LANGUAGES.values())


def resolve_template(template_name: str, language: str | None) -> tuple[str, str]:
    """Return the template name and API language code for a UI language.

    Unknown or missing languages fall back to Traditional Chinese. A template
    name that already carries a language suffix is used unchanged.

    Examples:
        >>> resolve_template("worker_qrcode", "en-US")
        ('worker_qrcode_en', 'en')
        >>> resolve_template("worker_qrcode", None)
        ('worker_qrcode_tw', 'zh_HK')
        >>> resolve_template("worker_qrcode_tw", "zh-CN")
        ('worker_qrcode_tw', 'zh_CN')
    """
    language_code, suffix = _LANGUAGES.get(language or _DEFAULT_LANGUAGE, _LANGUAGES[_DEFAULT_LANGUAGE])
    if template_name.endswith(_TEMPLATE_SUFFIXES):
        return template_name, language_code
    return f"{template_name}{suffix}", language_code


def normalize_phone_number(number: str) -> str:
    """Return the number in ``+<digits>`` form.

    Raises:
        ValueError: If the number does not contain 6-15 digits
    """
    cleaned = re.sub(r"[\s\-()]", "", number)
    if not cleaned.startswith("+"):
        cleaned = f"+{cleaned}"
    if not _PHONE_PATTERN.match(cleaned):
        msg = f"Invalid WhatsApp number: {number!r}"
        raise ValueError(msg)
    return cleaned


def _decode_image(value: object) -> bytes:
    if not isinstance(value, str) or not value.strip():
        msg = "WhatsApp payload requires a base64 'qr_code' image"
        raise ValueError(msg)
    encoded = value.split(";base64,", 1)[-1]
    try:
        content = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        msg = "qr_code is not valid base64"
        raise ValueError(msg) from exc
    if not content:
        msg = "qr_code image is empty"
        raise ValueError(msg)
    return content


def classify_api_error(error: WhatsAppAPIError) -> SendOutcome:
    """Translate a messaging API failure into a send outcome."""
    message = f"WhatsApp API error (status={error.status}): {error}"
    if isinstance(error, WhatsAppAuthenticationError):
        return SendOutcome.permanent(message)
    if error.status == 429:
        return SendOutcome.transient(message, rate_limited=True, retry_after=error.retry_after)
    if error.status in (0, 408) or error.status >= 500:
        return SendOutcome.transient(message, retry_after=error.retry_after)
    return SendOutcome.permanent(message)


@dataclass(slots=True)
class WhatsAppTransport:
    """Transport client sending a QR code template message per recipient."""

    config: WhatsAppConfig
    http_client: HTTPClient
    channel: Channel = field(default=Channel.WHATSAPP, init=False)
    client: WhatsAppAPIClient = field(init=False, repr=False)
    _logger: logging.Logger = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.client = WhatsAppAPIClient(config=self.config, http_client=self.http_client)
        self._logger = logging.getLogger(__name__)

    async def send_one(self, task: RecipientTask) -> SendOutcome:
        """Upload the recipient's QR code and send the template message."""
        payload = task.payload
        try:
            to = normalize_phone_number(task.address)
            image = _decode_image(payload.get("qr_code"))
            name = payload.get("name")
            if not isinstance(name, str) or not name.strip():
                msg = "WhatsApp payload requires a non-empty 'name'"
                raise ValueError(msg)
            language = payload.get("language")
            template_name, language_code = resolve_template(
                self.config.template_name,
                language if isinstance(language, str) else None,
            )
        except ValueError as exc:
            self._logger.warning("Rejected WhatsApp payload for %s: %s", task.label, exc)
            return SendOutcome.permanent(f"Invalid WhatsApp payload: {exc}")

        try:
            media_id = await self.client.upload_media(filename="qrcode.png", content=image)
            _ = await self.client.send_template(
                to=to,
                template_name=template_name,
                language_code=language_code,
                media_id=media_id,
                body_text=name.strip(),
            )
        except WhatsAppAPIError as exc:
            outcome = classify_api_error(exc)
            self._logger.debug(
                "WhatsApp send to %s failed (%s, rate_limited=%s): %s",
                task.label,
                outcome.error_class,
                outcome.rate_limited,
                outcome.message,
            )
            return outcome

        self._logger.debug("WhatsApp template %s sent to %s", template_name, task.label)
        return SendOutcome.ok()

    def validate_config(self) -> bool:
        """Validate API credentials and sender number."""
        if not self.config.api_key.strip():
            self._logger.error("WhatsApp api_key is missing")
            return False
        if any(ord(char) < 0x20 or char.isspace() for char in self.config.api_key):
            self._logger.error("WhatsApp api_key contains whitespace or control characters")
            return False
        try:
            _ = normalize_phone_number(self.config.sender_number)
        except ValueError:
            self._logger.error("WhatsApp sender_number is invalid")
            return False
        return True


def create_transport(*, config: WhatsAppConfig, http_client: HTTPClient) -> WhatsAppTransport:
    """Factory for creating WhatsAppTransport instances."""
    return WhatsAppTransport(config=config, http_client=http_client)
