"""WhatsApp messaging API configuration schema."""

from __future__ import annotations

import re
from typing import Annotated, Final, override

from pydantic import BaseModel, Field, field_validator

from bulk_notify.utils.sanitization import REDACTED

_PHONE_NUMBER_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\+?\d{6,15}$")

DEFAULT_API_BASE_URL: Final[str] = "https://api.ycloud.com/v2"


class WhatsAppConfig(BaseModel):
    """Pydantic schema for the WhatsApp Business messaging API."""

    api_key: Annotated[
        str,
        Field(
            min_length=1,
            description="API key sent in the X-API-Key header",
        ),
    ]
    sender_number: Annotated[
        str,
        Field(
            description="Registered business phone number messages are sent from",
        ),
    ]
    api_base_url: Annotated[
        str,
        Field(
            pattern=r"^https?://",
            description="Base URL of the messaging API",
        ),
    ] = DEFAULT_API_BASE_URL
    template_name: Annotated[
        str,
        Field(
            min_length=1,
            description="Template base name; the language suffix is appended",
        ),
    ] = "worker_qrcode"
    request_timeout: Annotated[
        float,
        Field(
            gt=0,
            description="Timeout for each API request in seconds",
        ),
    ] = 20.0

    @field_validator("sender_number")
    @classmethod
    def validate_sender_number(cls, value: str) -> str:
        """Validate sender number format."""
        cleaned = value.strip().replace(" ", "")
        if not _PHONE_NUMBER_PATTERN.match(cleaned):
            msg = "Sender number must contain 6-15 digits with an optional leading '+'"
            raise ValueError(msg)
        return cleaned

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        """Normalize the base URL so endpoint paths can be appended."""
        return value.rstrip("/")

    @override
    def __repr__(self) -> str:
        """Return sanitized representation preventing API key exposure."""
        return (
            f"WhatsAppConfig("
            f"api_key={REDACTED!r}, "
            f"sender_number={self.sender_number!r}, "
            f"api_base_url={self.api_base_url!r}, "
            f"template_name={self.template_name!r}, "
            f"request_timeout={self.request_timeout!r})"
        )
