"""Build MIME messages from render-ready email payloads.

Payload keys:
- ``subject``: message subject (required)
- ``text``: plain-text body
- ``html``: HTML body, sent as an alternative part when ``text`` is also given
- ``attachments``: list of ``{filename, content, mime_type}`` where ``content``
  is raw bytes or base64 text (a ``data:`` URL prefix is accepted)
"""

from __future__ import annotations

import base64
import binascii
import mimetypes
from collections.abc import Mapping, Sequence
from email.errors import HeaderParseError
from email.headerregistry import Address
from email.message import EmailMessage
from email.utils import formataddr

from bulk_notify.types.models import RecipientTask

__all__ = ["InvalidEmailPayloadError", "build_email_message", "decode_content"]


class InvalidEmailPayloadError(ValueError):
    """Raised when a payload cannot be turned into a valid message."""


def decode_content(content: object, *, filename: str) -> bytes:
    """Return attachment bytes from raw bytes or base64 text.

    Raises:
        InvalidEmailPayloadError: If the content is neither bytes nor valid base64
    """
    if isinstance(content, (bytes, bytearray)):
        return bytes(content)
    if isinstance(content, str):
        encoded = content.split(";base64,", 1)[-1]
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            msg = f"Attachment {filename!r} is not valid base64"
            raise InvalidEmailPayloadError(msg) from exc
    msg = f"Attachment {filename!r} has unsupported content type {type(content).__name__}"
    raise InvalidEmailPayloadError(msg)


def _split_mime_type(mime_type: object, filename: str) -> tuple[str, str]:
    if isinstance(mime_type, str) and "/" in mime_type:
        maintype, subtype = mime_type.split("/", 1)
        return maintype, subtype
    guessed, _ = mimetypes.guess_type(filename)
    if guessed is None:
        return "application", "octet-stream"
    maintype, subtype = guessed.split("/", 1)
    return maintype, subtype


def _validate_address(address: str) -> str:
    try:
        parsed = Address(addr_spec=address.strip())
    except (HeaderParseError, ValueError, IndexError) as exc:
        msg = f"Invalid recipient address: {address!r}"
        raise InvalidEmailPayloadError(msg) from exc
    if not parsed.username or not parsed.domain or "." not in parsed.domain:
        msg = f"Invalid recipient address: {address!r}"
        raise InvalidEmailPayloadError(msg)
    return parsed.addr_spec


def _attachments(payload: Mapping[str, object]) -> Sequence[Mapping[str, object]]:
    raw = payload.get("attachments") or []
    if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
        msg = "attachments must be a list"
        raise InvalidEmailPayloadError(msg)
    items: list[Mapping[str, object]] = []
    for item in raw:
        if not isinstance(item, Mapping):
            msg = "each attachment must be a mapping"
            raise InvalidEmailPayloadError(msg)
        items.append(item)  # pyright: ignore[reportUnknownArgumentType]
    return items


def build_email_message(
    task: RecipientTask,
    *,
    sender: str,
    sender_name: str | None = None,
) -> EmailMessage:
    """Build the message for one recipient.

    Args:
        task: Recipient address and payload
        sender: From address
        sender_name: Optional display name for the From header

    Returns:
        Ready-to-send EmailMessage

    Raises:
        InvalidEmailPayloadError: If the address or payload is invalid
    """
    payload = task.payload
    recipient = _validate_address(task.address)

    subject = payload.get("subject")
    if not isinstance(subject, str) or not subject.strip():
        msg = "Email payload requires a non-empty 'subject'"
        raise InvalidEmailPayloadError(msg)

    text = payload.get("text")
    html = payload.get("html")
    if not isinstance(text, str) and not isinstance(html, str):
        msg = "Email payload requires 'text' or 'html'"
        raise InvalidEmailPayloadError(msg)

    message = EmailMessage()
    message["From"] = formataddr((sender_name, sender)) if sender_name else sender
    message["To"] = recipient
    message["Subject"] = subject

    if isinstance(text, str):
        message.set_content(text)
        if isinstance(html, str):
            message.add_alternative(html, subtype="html")
    elif isinstance(html, str):
        message.set_content(html, subtype="html")

    for attachment in _attachments(payload):
        filename = str(attachment.get("filename") or "attachment.bin")
        content = decode_content(attachment.get("content"), filename=filename)
        maintype, subtype = _split_mime_type(attachment.get("mime_type"), filename)
        message.add_attachment(content, maintype=maintype, subtype=subtype, filename=filename)

    return message
